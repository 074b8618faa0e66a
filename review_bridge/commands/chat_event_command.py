"""
Command to handle an event delivered by the homeserver.

Room lifecycle events keep the room registry current; room messages are
logged and then treated as bridge commands or as developer replies to a
review. User-caused errors are answered with a notice in the room and never
propagate out of execute().
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from review_bridge.adapters.base import TransportError
from review_bridge.core.app_state import BridgeState
from review_bridge.errors import DuplicateMappingError, InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.schemas.events import ChatEvent
from review_bridge.schemas.message import ChatMessage, MessageKind
from review_bridge.schemas.thread import ThreadStatus
from review_bridge.utils.formatting import (
    format_error,
    format_notice,
    format_reply_confirmation,
)

logger = get_logger("chat_event")

REPLY_PREFIX = "reply:"

HELP_TEXT = "\n".join(
    [
        "Review bridge commands:",
        "!bridge stats - bridge statistics",
        "!bridge help - this help",
        "!reply <reviewId> <text> - reply to a review",
        "!resolve <reviewId> [reason] - resolve the review's thread",
        "!archive <reviewId> - archive the review's thread",
        "!summary <reviewId> - summarize the review's thread",
        "reply: <text> - reply to the latest review in this room",
    ]
)


class ChatEventCommand:
    def __init__(self, state: BridgeState) -> None:
        self.state = state
        self.settings = state.settings

    async def execute(self, event: ChatEvent) -> dict[str, Any]:
        """
        Handle one chat event.

        Returns:
            dict: {"status": "ok", "action": <what was done>}.
        """
        if event.type == "m.room.create":
            self.state.rooms.register_room(event.room_id, name=event.content.get("name"))
            action = "room_registered"
        elif event.type == "m.room.name":
            self.state.rooms.register_room(event.room_id, name=event.content.get("name"))
            action = "room_updated"
        elif event.type == "m.room.topic":
            self.state.rooms.register_room(event.room_id, topic=event.content.get("topic"))
            action = "room_updated"
        elif event.type == "m.room.member":
            action = await self._handle_membership(event)
        elif event.type == "m.room.message":
            action = await self._handle_message(event)
        else:
            action = "ignored"
        return {"status": "ok", "action": action}

    async def _handle_membership(self, event: ChatEvent) -> str:
        if event.state_key != self.settings.bot_user_id:
            return "ignored"
        membership = event.content.get("membership")
        if membership == "invite":
            await self.state.room_intent.join_room(event.room_id)
            self.state.rooms.mark_joined(event.room_id)
            return "joined"
        if membership == "join":
            self.state.rooms.mark_joined(event.room_id)
            return "joined"
        logger.info("Bot membership in %s is now %s", event.room_id, membership)
        return "ignored"

    async def _handle_message(self, event: ChatEvent) -> str:
        sender = event.sender
        if sender == self.settings.bot_user_id or self.state.identities.is_bridge_owned_identity(sender):
            return "ignored"

        self.state.rooms.register_room(event.room_id)
        self.state.conversations.record_chat_message(
            ChatMessage(
                event_id=event.event_id,
                room_id=event.room_id,
                sender=sender,
                content=event.content,
                timestamp=_event_time(event),
            )
        )

        body = event.body.strip()
        try:
            if body.startswith("!"):
                return await self._handle_command(event, body)
            target = self._reply_target(event, body)
            if target is None:
                return "logged"
            review_id, text = target
            return await self._handle_reply(event, review_id, text)
        except (DuplicateMappingError, InvalidOperationError) as e:
            logger.warning("Rejected %s from %s in %s: %s", event.event_id, sender, event.room_id, e)
            await self._notify(event.room_id, format_error(str(e)))
            return "rejected"
        except TransportError as e:
            logger.warning("Transport failure handling %s: %s", event.event_id, e)
            await self._notify(event.room_id, format_error(str(e)))
            return "failed"

    async def _handle_command(self, event: ChatEvent, body: str) -> str:
        parts = body.split(maxsplit=2)
        command = parts[0].lower()

        if command == "!bridge":
            sub = parts[1].lower() if len(parts) > 1 else "help"
            if sub == "stats":
                await self._notify(event.room_id, format_notice(self._stats_text()))
                return "stats"
            await self._notify(event.room_id, format_notice(HELP_TEXT))
            return "help"

        if command == "!reply":
            if len(parts) < 3:
                raise InvalidOperationError("Usage: !reply <reviewId> <text>")
            return await self._handle_reply(event, parts[1], parts[2])

        if command in ("!resolve", "!archive", "!summary"):
            if len(parts) < 2:
                raise InvalidOperationError(f"Usage: {command} <reviewId>")
            review_id = parts[1]
            async with self.state.locks.hold(review_id):
                thread = self.state.threads.by_review(review_id)
                if thread is None:
                    raise InvalidOperationError(f"No thread for review {review_id}")
                if command == "!resolve":
                    reason = parts[2] if len(parts) > 2 else None
                    await self.state.threads.resolve(thread.thread_id, event.sender, reason)
                    return "resolved"
                if command == "!archive":
                    self.state.threads.archive(thread.thread_id)
                    await self._notify(
                        event.room_id,
                        format_notice(f"Thread for review {review_id} archived", thread.root_event_id),
                    )
                    return "archived"
                summary = self.state.threads.summary(thread.thread_id) or ""
                await self._notify(event.room_id, format_notice(summary, thread.root_event_id))
                return "summary"

        return "ignored"

    def _reply_target(self, event: ChatEvent, body: str) -> Optional[tuple[str, str]]:
        """(review_id, reply text) if the message is a reply to a review."""
        conversations = self.state.conversations
        if body.lower().startswith(REPLY_PREFIX):
            mapping = self.state.rooms.mapping_for_room(event.room_id)
            latest = conversations.latest_review_in_room(
                event.room_id, mapping.app_id if mapping else None
            )
            if latest is None:
                raise InvalidOperationError("No review to reply to in this room")
            return latest.review_id, body[len(REPLY_PREFIX):]

        if event.in_reply_to:
            mapping = conversations.find_by_event(event.in_reply_to)
            if mapping is not None:
                return mapping.review_id, _strip_reply_fallback(body)

        if event.thread_root:
            thread = self.state.threads.by_event(event.thread_root)
            if thread is not None:
                return thread.review_id, body
        return None

    async def _handle_reply(self, event: ChatEvent, review_id: str, text: str) -> str:
        state = self.state
        room_id = event.room_id
        async with state.locks.hold(review_id):
            if not state.rooms.can_reply(room_id):
                raise InvalidOperationError("Replies are not allowed in this room")
            review = state.reviews.get(review_id)
            if review is None:
                raise InvalidOperationError(f"Unknown review {review_id}")
            mapping = state.rooms.mapping_for_room(room_id)
            if mapping is None or mapping.app_id != review.app_id:
                raise InvalidOperationError(
                    f"Review {review_id} does not belong to the app of this room"
                )
            already_replied = review.has_reply or any(
                m.kind == MessageKind.REPLY for m in state.conversations.list_all_for_review(review_id)
            )
            if already_replied:
                raise InvalidOperationError(f"Review {review_id} already has a reply")
            text = text.strip()
            if not text:
                raise InvalidOperationError("Reply text must not be empty")
            limit = self.settings.reply_max_length
            if len(text) > limit:
                raise InvalidOperationError(
                    f"Reply is too long ({len(text)} characters, maximum {limit})"
                )
            if state.conversations.find_by_event(event.event_id) is not None:
                raise DuplicateMappingError(event.event_id, review_id)
            if state.reply_client is None:
                raise InvalidOperationError("Reply submission is not configured")

            thread = state.threads.by_review(review_id)
            thread_root = thread.root_event_id if thread else None
            try:
                await state.reply_client.submit_reply(review_id, review.app_id, text)
            except TransportError as e:
                logger.warning("Reply to review %s failed: %s", review_id, e)
                await self._notify(
                    room_id,
                    format_reply_confirmation(
                        review_id,
                        False,
                        str(e),
                        source_name=self.settings.review_source_name,
                        thread_root=thread_root,
                    ),
                )
                return "reply_failed"

            state.conversations.record_message(
                review_id, event.event_id, room_id, MessageKind.REPLY, review.app_id
            )
            if thread is not None and thread.status != ThreadStatus.ARCHIVED:
                state.threads.append_message(
                    thread.thread_id,
                    event.event_id,
                    event.sender,
                    event.content,
                    MessageKind.REPLY,
                    is_bridge_originated=False,
                    room_id=room_id,
                )
            logger.info("Submitted reply from %s for review %s", event.sender, review_id)
            return "reply_submitted"

    async def _notify(self, room_id: str, content: dict[str, Any]) -> None:
        try:
            await self.state.room_intent.send_message(room_id, content)
        except TransportError as e:
            logger.warning("Could not post notice to %s: %s", room_id, e)

    def _stats_text(self) -> str:
        stats = self.state.stats()
        identities = stats["identities"]
        rooms = stats["rooms"]
        messages = stats["messages"]
        threads = stats["threads"]
        return "\n".join(
            [
                "Bridge statistics:",
                f"Virtual identities: {identities['total_identities']}"
                f" ({identities['total_mappings']} mapped reviews)",
                f"Rooms: {rooms['total_rooms']} ({rooms['bridge_joined_rooms']} joined,"
                f" {rooms['total_room_mappings']} bound)",
                f"Message mappings: {messages['total_mappings']}"
                + "".join(f", {k}: {v}" for k, v in messages["by_kind"].items()),
                f"Threads: {threads['total_threads']} ({threads['active_threads']} active,"
                f" {threads['resolved_threads']} resolved, {threads['archived_threads']} archived)",
            ]
        )


def _event_time(event: ChatEvent) -> datetime:
    if event.origin_server_ts:
        return datetime.fromtimestamp(event.origin_server_ts / 1000, tz=timezone.utc)
    return datetime.now(timezone.utc)


def _strip_reply_fallback(body: str) -> str:
    """Drop the quoted '> ' fallback lines clients prepend to replies."""
    lines = body.splitlines()
    while lines and lines[0].startswith(">"):
        lines.pop(0)
    return "\n".join(lines).strip()
