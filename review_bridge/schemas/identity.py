"""Pydantic schemas for virtual identities and their review mappings."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from review_bridge.core.clock import utcnow


class VirtualIdentity(BaseModel):
    """Chat-side identity the bridge puppets on behalf of a reviewer."""

    identity_key: str
    review_id: str
    display_name: str
    avatar_url: Optional[str] = None
    is_virtual: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)


class IdentityMapping(BaseModel):
    """Review id <-> identity key <-> account name <-> app id."""

    id: str
    review_id: str
    identity_key: str
    account_name: str
    app_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
