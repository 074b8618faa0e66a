from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc
    )
