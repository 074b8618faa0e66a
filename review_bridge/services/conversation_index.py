"""ConversationIndex: review/reply <-> chat event mappings, keyed both ways."""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from review_bridge.core.clock import Clock, utcnow
from review_bridge.errors import DuplicateMappingError, InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.repositories.base import RepositoryFactory
from review_bridge.schemas.message import (
    ChatMessage,
    MessageKind,
    MessageMapping,
    ReviewEventIndex,
)

logger = get_logger("conversation_index")


class ConversationIndex:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._mappings = repository_factory("message_mappings", MessageMapping)
        self._by_review = repository_factory("review_event_index", ReviewEventIndex)
        self._chat_messages = repository_factory("chat_messages", ChatMessage)
        self._clock = clock or utcnow

    def record_message(
        self,
        review_id: str,
        event_id: str,
        room_id: str,
        kind: MessageKind,
        app_id: str,
    ) -> MessageMapping:
        """
        Record that event_id in room_id carries review_id.

        Raises:
            InvalidOperationError: If review_id or event_id is empty.
            DuplicateMappingError: If event_id is already mapped. This means
                the event was delivered or sent twice and must not be counted again.
        """
        if not review_id or not event_id:
            raise InvalidOperationError("review id and event id must not be empty")
        if self._mappings.get(event_id) is not None:
            raise DuplicateMappingError(event_id, review_id)

        now = self._clock()
        mapping = MessageMapping(
            id=f"{review_id}_{event_id}",
            review_id=review_id,
            event_id=event_id,
            room_id=room_id,
            kind=MessageKind(kind),
            app_id=app_id,
            created_at=now,
            updated_at=now,
        )
        self._mappings.put(event_id, mapping)

        index = self._by_review.get(review_id) or ReviewEventIndex(review_id=review_id)
        index.event_ids.append(event_id)
        self._by_review.put(review_id, index)
        logger.debug("Mapped %s event %s to review %s", mapping.kind.value, event_id, review_id)
        return mapping

    def find_by_event(self, event_id: str) -> Optional[MessageMapping]:
        if not event_id:
            return None
        return self._mappings.get(event_id)

    def find_by_review(self, review_id: str) -> Optional[MessageMapping]:
        """Most recently recorded mapping for the review."""
        history = self.list_all_for_review(review_id)
        return history[-1] if history else None

    def list_all_for_review(self, review_id: str) -> list[MessageMapping]:
        index = self._by_review.get(review_id) if review_id else None
        if index is None:
            return []
        mappings = []
        for event_id in index.event_ids:
            mapping = self._mappings.get(event_id)
            if mapping is not None:
                mappings.append(mapping)
        return mappings

    def list_for_room(self, room_id: str) -> list[MessageMapping]:
        return [m for m in self._mappings.list() if m.room_id == room_id]

    def latest_review_in_room(self, room_id: str, app_id: Optional[str] = None) -> Optional[MessageMapping]:
        latest = None
        for mapping in self.list_for_room(room_id):
            if mapping.kind != MessageKind.REVIEW:
                continue
            if app_id is not None and mapping.app_id != app_id:
                continue
            latest = mapping
        return latest

    def record_chat_message(self, message: ChatMessage) -> ChatMessage:
        self._chat_messages.put(message.event_id, message)
        return message

    def get_chat_message(self, event_id: str) -> Optional[ChatMessage]:
        return self._chat_messages.get(event_id)

    def stats(self) -> dict[str, Any]:
        """Reporting snapshot only."""
        mappings = self._mappings.list()
        by_kind = Counter(m.kind.value for m in mappings)
        return {
            "total_mappings": len(mappings),
            "by_kind": {kind.value: by_kind.get(kind.value, 0) for kind in MessageKind},
            "total_chat_messages": len(self._chat_messages.list()),
        }
