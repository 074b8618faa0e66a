"""
BridgeRecord model: generic keyed storage for the bridge registries.

One row per (namespace, record_key). The payload is the JSON dump of the
pydantic record owned by that namespace (identities, room_mappings, threads, ...).
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, Index, String
from sqlalchemy.dialects.postgresql import JSONB

from review_bridge.db import Base
from review_bridge.models.mixins import TimestampMixin


class BridgeRecord(Base, TimestampMixin):
    __tablename__ = "bridge_records"

    namespace = Column(String(64), primary_key=True)
    record_key = Column(String(512), primary_key=True)
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    __table_args__ = (
        Index("ix_bridge_records_namespace_created", "namespace", "created_at"),
    )
