"""
Command to bring an inbound review into chat.

Resolves the reviewer's virtual identity, forwards the review to every room of
its app that accepts it, records the resulting events and threads them.
Registries are only written after the transport confirmed a send.
"""

from __future__ import annotations

from typing import Optional

from review_bridge.adapters.base import TransportError
from review_bridge.core.app_state import BridgeState
from review_bridge.errors import InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.schemas.identity import VirtualIdentity
from review_bridge.schemas.message import ChatMessage, MessageKind
from review_bridge.schemas.review import ReviewForwardResult, ReviewRecord
from review_bridge.schemas.thread import Thread, ThreadStatus
from review_bridge.utils.formatting import format_notice, format_review_content

logger = get_logger("process_review")


class ProcessReviewCommand:
    """Forward one review (first sighting or update) into its app's rooms."""

    def __init__(self, state: BridgeState) -> None:
        self.state = state
        self.settings = state.settings

    async def execute(self, review: ReviewRecord) -> ReviewForwardResult:
        """
        Forward the review and record what was sent.

        Args:
            review: Review as delivered by the review source.

        Returns:
            ReviewForwardResult: Rooms the review reached or skipped, the event
                ids produced and the review's thread id.

        Raises:
            InvalidOperationError: If review_id or app_id is empty.
            TransportError: If every attempted room failed to receive it.
        """
        if not review.review_id.strip() or not review.app_id.strip():
            raise InvalidOperationError("review id and app id must not be empty")

        async with self.state.locks.hold(review.review_id):
            return await self._forward(review)

    async def _forward(self, review: ReviewRecord) -> ReviewForwardResult:
        state = self.state
        previous = state.reviews.get(review.review_id)
        is_update = review.is_update_of(previous)

        identity = self._resolve_identity(review)
        await state.room_intent.ensure_identity(identity.identity_key, identity.display_name)

        result = ReviewForwardResult(review_id=review.review_id, identity_key=identity.identity_key)
        last_error: Optional[TransportError] = None

        for app_room in state.rooms.rooms_for_app(review.app_id):
            room_id = app_room.room_id
            kind = self._decide(review, room_id, is_update)
            if kind is None:
                result.skipped_rooms.append(room_id)
                continue

            content = format_review_content(
                review,
                source_name=self.settings.review_source_name,
                updated=is_update,
            )
            thread = state.threads.by_review(review.review_id)
            if kind == MessageKind.NOTIFICATION and thread is not None:
                content["m.relates_to"] = {"rel_type": "m.thread", "event_id": thread.root_event_id}
            try:
                await state.room_intent.join_room(room_id, sender=identity.identity_key)
                event_id = await state.room_intent.send_message(
                    room_id, content, sender=identity.identity_key
                )
            except TransportError as e:
                logger.warning(
                    "Failed to forward review %s to %s: %s", review.review_id, room_id, e
                )
                last_error = e
                result.skipped_rooms.append(room_id)
                continue

            state.conversations.record_message(
                review.review_id, event_id, room_id, kind, review.app_id
            )
            state.conversations.record_chat_message(
                ChatMessage(
                    event_id=event_id,
                    room_id=room_id,
                    sender=identity.identity_key,
                    content=content,
                    is_bridge_originated=True,
                    review_id=review.review_id,
                )
            )
            result.forwarded_rooms.append(room_id)
            result.event_ids.append(event_id)
            thread = await self._thread_event(review, room_id, event_id, identity, kind, content)
            if thread is not None:
                result.thread_id = thread.thread_id

        if last_error is not None and not result.forwarded_rooms:
            raise last_error

        state.reviews.upsert(review)
        if result.forwarded_rooms:
            logger.info(
                "Forwarded review %s to %d room(s)", review.review_id, len(result.forwarded_rooms)
            )
        if result.thread_id is None:
            thread = state.threads.by_review(review.review_id)
            result.thread_id = thread.thread_id if thread else None
        return result

    def _resolve_identity(self, review: ReviewRecord) -> VirtualIdentity:
        identities = self.state.identities
        mapping = identities.find_mapping_by_review(review.review_id)
        if mapping is not None:
            identity = identities.touch(mapping.identity_key)
            if identity is None:
                # reaped while idle; the mapping survived, so recreate under the same key
                identity = identities.resolve_or_create_identity(review.review_id, review.author_name)
            elif review.author_name and review.author_name != mapping.account_name:
                identities.update_profile(identity.identity_key, display_name=review.author_name)
                identities.create_account_mapping(
                    review.review_id, identity.identity_key, review.author_name, review.app_id
                )
            return identity

        identity = identities.resolve_or_create_identity(review.review_id, review.author_name)
        identities.create_account_mapping(
            review.review_id, identity.identity_key, review.author_name, review.app_id
        )
        return identity

    def _decide(self, review: ReviewRecord, room_id: str, is_update: bool) -> Optional[MessageKind]:
        """Kind of message to send into room_id, or None to skip the room."""
        rooms = self.state.rooms
        if not rooms.should_forward(review.app_id, room_id, review.rating):
            return None
        already_forwarded = any(
            m.room_id == room_id and m.kind == MessageKind.REVIEW
            for m in self.state.conversations.list_all_for_review(review.review_id)
        )
        if already_forwarded:
            return MessageKind.NOTIFICATION if is_update else None
        mapping = rooms.mapping_for_room(room_id)
        if mapping is not None and mapping.policy.updates_only and not is_update:
            return None
        return MessageKind.REVIEW

    async def _thread_event(
        self,
        review: ReviewRecord,
        room_id: str,
        event_id: str,
        identity: VirtualIdentity,
        kind: MessageKind,
        content: dict,
    ) -> Optional[Thread]:
        if not self.settings.threading_enabled:
            return None
        threads = self.state.threads
        thread = threads.by_review(review.review_id)
        if thread is None:
            thread = threads.create_thread(
                review, room_id, event_id, review.app_id, reviewer_key=identity.identity_key
            )
            if self.settings.notify_on_new_thread:
                await self._notify_new_thread(thread)
            return thread
        if thread.status == ThreadStatus.ARCHIVED:
            logger.info(
                "Not threading %s: %s is archived", event_id, thread.thread_id
            )
            return thread
        threads.append_message(
            thread.thread_id,
            event_id,
            identity.identity_key,
            content,
            kind,
            is_bridge_originated=True,
            room_id=room_id,
        )
        return threads.get_thread(thread.thread_id)

    async def _notify_new_thread(self, thread: Thread) -> None:
        notice = format_notice(
            f"New conversation thread for review {thread.review_id}"
            f" ({', '.join(thread.tags)})",
            thread_root=thread.root_event_id,
        )
        try:
            await self.state.room_intent.send_message(thread.room_id, notice)
        except TransportError as e:
            logger.warning("Failed to post new-thread notice for %s: %s", thread.thread_id, e)
