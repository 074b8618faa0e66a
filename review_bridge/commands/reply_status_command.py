"""Command to handle the review source's acknowledgement of a submitted reply."""

from __future__ import annotations

from typing import Any

from review_bridge.core.app_state import BridgeState
from review_bridge.errors import InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.schemas.message import MessageKind
from review_bridge.schemas.review import ReplyStatus
from review_bridge.schemas.thread import ThreadStatus
from review_bridge.utils.formatting import format_reply_confirmation

logger = get_logger("reply_status")


class ReplyStatusCommand:
    def __init__(self, state: BridgeState) -> None:
        self.state = state

    async def execute(self, status: ReplyStatus) -> dict[str, Any]:
        """
        Record the outcome of a reply and announce it in the review's room.

        Raises:
            InvalidOperationError: If the review is unknown.
            TransportError: If the notice could not be posted. The review is
                still marked replied on success.
        """
        state = self.state
        review = state.reviews.get(status.review_id)
        if review is None:
            raise InvalidOperationError(f"Unknown review {status.review_id}")

        async with state.locks.hold(review.review_id):
            if status.success:
                state.reviews.mark_replied(review.review_id, status.reply_text or "")
            else:
                logger.warning("Reply to review %s failed: %s", review.review_id, status.error)

            thread = state.threads.by_review(review.review_id)
            if thread is not None:
                room_id = thread.room_id
            else:
                primary = state.rooms.primary_room_for_app(review.app_id)
                room_id = primary.room_id if primary else None
            if room_id is None:
                return {"status": "ok", "event_id": None}

            content = format_reply_confirmation(
                review.review_id,
                status.success,
                status.error,
                source_name=state.settings.review_source_name,
                thread_root=thread.root_event_id if thread else None,
            )
            event_id = await state.room_intent.send_message(room_id, content)
            state.conversations.record_message(
                review.review_id, event_id, room_id, MessageKind.NOTIFICATION, review.app_id
            )
            if thread is not None and thread.status != ThreadStatus.ARCHIVED:
                state.threads.append_message(
                    thread.thread_id,
                    event_id,
                    state.settings.bot_user_id,
                    content,
                    MessageKind.NOTIFICATION,
                    is_bridge_originated=True,
                    room_id=room_id,
                )
            return {"status": "ok", "event_id": event_id}
