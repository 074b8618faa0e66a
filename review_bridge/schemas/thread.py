"""Pydantic schemas for conversation threads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from review_bridge.core.clock import utcnow
from review_bridge.schemas.message import MessageKind


class ThreadStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class Thread(BaseModel):
    """
    A review and all of its reply traffic.

    generation grows on every status-affecting change so that deferred work
    issued for an older state can tell it is stale.
    """

    thread_id: str
    root_event_id: str
    review_id: str
    app_id: str
    room_id: str
    room_ids: list[str] = Field(default_factory=list)
    participants: list[str] = Field(default_factory=list)
    event_ids: list[str] = Field(default_factory=list)
    message_count: int = 0
    status: ThreadStatus = ThreadStatus.ACTIVE
    tags: list[str] = Field(default_factory=list)
    generation: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    resolved_by: Optional[str] = None
    resolved_reason: Optional[str] = None
    resolved_at: Optional[datetime] = None


class ThreadMessage(BaseModel):
    thread_id: str
    event_id: str
    user_id: str
    content: dict[str, Any] = Field(default_factory=dict)
    kind: MessageKind
    is_bridge_originated: bool = False
    timestamp: datetime = Field(default_factory=utcnow)


class ThreadRef(BaseModel):
    """Single-valued secondary index entry (review id or event id -> thread)."""

    key: str
    thread_id: str


class ThreadSet(BaseModel):
    """Multi-valued secondary index entry (room or participant -> threads)."""

    key: str
    thread_ids: list[str] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    resolved_by: str = Field(..., min_length=1)
    reason: Optional[str] = None
