"""Pydantic schemas for reviews delivered by the review source."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReviewRecord(BaseModel):
    """
    Canonical copy of an app-store review and its developer reply.

    Timestamps are only ever the source's own; the bridge never fills them in.
    Naive values are taken as UTC.
    """

    review_id: str
    app_id: str
    author_name: str = ""
    text: str = ""
    rating: int = Field(..., ge=1, le=5)
    locale: Optional[str] = None
    device: Optional[str] = None
    os_version: Optional[str] = None
    app_version: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    has_reply: bool = False
    reply_text: Optional[str] = None
    replied_at: Optional[datetime] = None

    @field_validator("created_at", "modified_at", "replied_at")
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def has_device_info(self) -> bool:
        return bool(self.device or self.os_version)

    @property
    def last_changed_at(self) -> Optional[datetime]:
        return self.modified_at or self.created_at

    def is_update_of(self, previous: Optional[ReviewRecord]) -> bool:
        """
        True when the source reports a modification after the stored copy.

        Only an explicit modified_at counts; a redelivery without one is the
        same review.
        """
        if previous is None or self.modified_at is None:
            return False
        known = previous.last_changed_at
        return known is None or self.modified_at > known


class ReviewForwardResult(BaseModel):
    review_id: str
    identity_key: str
    forwarded_rooms: list[str] = Field(default_factory=list)
    skipped_rooms: list[str] = Field(default_factory=list)
    event_ids: list[str] = Field(default_factory=list)
    thread_id: Optional[str] = None


class ReplyStatus(BaseModel):
    """Acknowledgement from the review source for a submitted reply."""

    review_id: str
    success: bool
    reply_text: Optional[str] = None
    error: Optional[str] = None
