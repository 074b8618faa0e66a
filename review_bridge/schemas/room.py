"""Pydantic schemas for chat rooms and app-to-room bindings."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from review_bridge.core.clock import utcnow


class RoomType(str, Enum):
    REVIEWS = "reviews"
    ADMIN = "admin"
    GENERAL = "general"


class RoomPolicy(BaseModel):
    """Forwarding policy of a room. min_rating_to_forward=0 disables the rating gate."""

    forward_reviews: bool = True
    allow_replies: bool = True
    min_rating_to_forward: int = Field(default=0, ge=0, le=5)
    updates_only: bool = False


class RoomPolicyUpdate(BaseModel):
    """Field-by-field policy overrides. Unset fields keep their current value."""

    forward_reviews: Optional[bool] = None
    allow_replies: Optional[bool] = None
    min_rating_to_forward: Optional[int] = Field(default=None, ge=0, le=5)
    updates_only: Optional[bool] = None


class ChatRoom(BaseModel):
    room_id: str
    name: Optional[str] = None
    topic: Optional[str] = None
    bridge_joined: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)


class RoomMapping(BaseModel):
    id: str
    app_id: str
    app_name: str
    room_id: str
    room_type: RoomType = RoomType.REVIEWS
    policy: RoomPolicy = Field(default_factory=RoomPolicy)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AppRoom(BaseModel):
    """Shortcut record: which rooms an app is bridged into."""

    app_id: str
    app_name: str
    room_id: str
    is_primary: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class RoomMappingRequest(BaseModel):
    """Request body for binding an app to a room."""

    app_id: str = Field(..., min_length=1)
    app_name: str = ""
    room_type: RoomType = RoomType.REVIEWS
    policy: Optional[RoomPolicyUpdate] = None


class RoomRead(ChatRoom):
    """Room with its current binding, if any."""

    mapping: Optional[RoomMapping] = None
