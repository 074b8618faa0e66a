"""Chat events as delivered to the bridge by the homeserver."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ChatEvent(BaseModel):
    event_id: str
    room_id: str
    sender: str
    type: str
    content: dict[str, Any] = Field(default_factory=dict)
    state_key: Optional[str] = None
    origin_server_ts: Optional[int] = None

    @property
    def body(self) -> str:
        return str(self.content.get("body") or "")

    @property
    def in_reply_to(self) -> Optional[str]:
        relates = self.content.get("m.relates_to") or {}
        reply = relates.get("m.in_reply_to") or {}
        return reply.get("event_id")

    @property
    def thread_root(self) -> Optional[str]:
        relates = self.content.get("m.relates_to") or {}
        if relates.get("rel_type") == "m.thread":
            return relates.get("event_id")
        return None
