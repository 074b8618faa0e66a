"""Pydantic schemas for chat messages and review <-> event mappings."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from review_bridge.core.clock import utcnow


class MessageKind(str, Enum):
    REVIEW = "review"
    REPLY = "reply"
    NOTIFICATION = "notification"


class MessageMapping(BaseModel):
    id: str
    review_id: str
    event_id: str
    room_id: str
    kind: MessageKind
    app_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(BaseModel):
    """A chat event the bridge observed or produced."""

    event_id: str
    room_id: str
    sender: str
    content: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    is_bridge_originated: bool = False
    review_id: Optional[str] = None


class ReviewEventIndex(BaseModel):
    """Ordered event ids recorded for one review, oldest first."""

    review_id: str
    event_ids: list[str] = Field(default_factory=list)
