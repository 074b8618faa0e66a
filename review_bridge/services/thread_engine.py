"""
ThreadEngine: groups a review and its replies into one conversation thread.

Lifecycle::

    [none] --create_thread--> active
    active --resolve--> resolved
    resolved --append_message--> active
    resolved --deferred archive--> archived
    active/resolved --archive--> archived
    archived is terminal

Secondary indices (review, event, room, participant) are kept in their own
repositories and are always updated together with the thread.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

from review_bridge.adapters.base import RoomIntent
from review_bridge.core.clock import Clock, utcnow
from review_bridge.errors import InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.repositories.base import Repository, RepositoryFactory
from review_bridge.schemas.message import MessageKind
from review_bridge.schemas.review import ReviewRecord
from review_bridge.schemas.thread import (
    Thread,
    ThreadMessage,
    ThreadRef,
    ThreadSet,
    ThreadStatus,
)
from review_bridge.services.archive_scheduler import ArchiveScheduler
from review_bridge.services.identity_registry import IdentityRegistry
from review_bridge.utils.formatting import format_notice

logger = get_logger("thread_engine")


def derive_tags(review: ReviewRecord) -> list[str]:
    """Room-side search tags for a new thread."""
    if review.rating <= 2:
        tags = ["negative"]
    elif review.rating >= 4:
        tags = ["positive"]
    else:
        tags = ["neutral"]
    if review.has_device_info:
        tags.append("device-info")
    if review.app_version:
        tags.append(f"version-{review.app_version.replace('.', '_')}")
    return tags


def _add_to_set(repo: Repository, key: str, thread_id: str) -> None:
    entry = repo.get(key) or ThreadSet(key=key)
    if thread_id not in entry.thread_ids:
        entry.thread_ids.append(thread_id)
        repo.put(key, entry)


def _remove_from_set(repo: Repository, key: str, thread_id: str) -> None:
    entry = repo.get(key)
    if entry is None or thread_id not in entry.thread_ids:
        return
    entry.thread_ids.remove(thread_id)
    if entry.thread_ids:
        repo.put(key, entry)
    else:
        repo.delete(key)


class ThreadEngine:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        identity_registry: IdentityRegistry,
        room_intent: Optional[RoomIntent] = None,
        *,
        scheduler: Optional[ArchiveScheduler] = None,
        auto_resolve_after_hours: float = 24.0,
        archive_resolved_threads: bool = True,
        clock: Optional[Clock] = None,
    ) -> None:
        self._threads = repository_factory("threads", Thread)
        self._by_review = repository_factory("thread_review_index", ThreadRef)
        self._by_event = repository_factory("thread_event_index", ThreadRef)
        self._by_room = repository_factory("thread_room_index", ThreadSet)
        self._by_participant = repository_factory("thread_participant_index", ThreadSet)
        self._identities = identity_registry
        self._intent = room_intent
        self.scheduler = scheduler or ArchiveScheduler()
        self.auto_resolve_after_hours = auto_resolve_after_hours
        self.archive_resolved_threads = archive_resolved_threads
        self._clock = clock or utcnow

    # -- mutations -----------------------------------------------------------

    def create_thread(
        self,
        review: ReviewRecord,
        room_id: str,
        root_event_id: str,
        app_id: Optional[str] = None,
        reviewer_key: Optional[str] = None,
    ) -> Thread:
        """
        Open the thread for a review, anchored at root_event_id.

        reviewer_key is the identity the review was posted as; it defaults to
        the key derived on the registry's own domain.

        Raises:
            InvalidOperationError: If the review already has a thread (check
                by_review first), or root_event_id is empty or already indexed.
        """
        if not root_event_id:
            raise InvalidOperationError("root event id must not be empty")
        if self._by_review.get(review.review_id) is not None:
            raise InvalidOperationError(f"review {review.review_id} already has a thread")
        if self._by_event.get(root_event_id) is not None:
            raise InvalidOperationError(f"event {root_event_id} already belongs to a thread")

        now = self._clock()
        reviewer = reviewer_key or self._identities.identity_key_for(review.review_id)
        thread = Thread(
            thread_id=f"thread_{uuid4().hex}",
            root_event_id=root_event_id,
            review_id=review.review_id,
            app_id=app_id or review.app_id,
            room_id=room_id,
            room_ids=[room_id],
            participants=[reviewer],
            event_ids=[root_event_id],
            message_count=1,
            tags=derive_tags(review),
            created_at=now,
            last_activity=now,
        )
        self._threads.put(thread.thread_id, thread)
        self._by_review.put(review.review_id, ThreadRef(key=review.review_id, thread_id=thread.thread_id))
        self._by_event.put(root_event_id, ThreadRef(key=root_event_id, thread_id=thread.thread_id))
        _add_to_set(self._by_room, room_id, thread.thread_id)
        _add_to_set(self._by_participant, reviewer, thread.thread_id)
        logger.info("Created %s for review %s in %s", thread.thread_id, review.review_id, room_id)
        return thread

    def append_message(
        self,
        thread_id: str,
        event_id: str,
        user_id: str,
        content: Optional[dict[str, Any]] = None,
        kind: MessageKind = MessageKind.REPLY,
        is_bridge_originated: bool = False,
        room_id: Optional[str] = None,
    ) -> ThreadMessage:
        """
        Add a message to a thread and reopen it.

        Any activity puts the thread back to active and drops a pending
        deferred archive.

        Raises:
            InvalidOperationError: If the thread does not exist or is archived,
                or event_id is empty or already indexed.
        """
        thread = self._require(thread_id)
        if thread.status == ThreadStatus.ARCHIVED:
            raise InvalidOperationError(f"thread {thread_id} is archived")
        if not event_id:
            raise InvalidOperationError("event id must not be empty")
        if self._by_event.get(event_id) is not None:
            raise InvalidOperationError(f"event {event_id} already belongs to a thread")

        now = self._clock()
        if user_id and user_id not in thread.participants:
            thread.participants.append(user_id)
            _add_to_set(self._by_participant, user_id, thread_id)
        if room_id and room_id not in thread.room_ids:
            thread.room_ids.append(room_id)
            _add_to_set(self._by_room, room_id, thread_id)
        thread.event_ids.append(event_id)
        thread.message_count += 1
        thread.last_activity = now
        if thread.status != ThreadStatus.ACTIVE:
            logger.info("Reopened %s on new activity", thread_id)
        thread.status = ThreadStatus.ACTIVE
        thread.generation += 1
        self.scheduler.cancel(thread_id)

        self._threads.put(thread_id, thread)
        self._by_event.put(event_id, ThreadRef(key=event_id, thread_id=thread_id))
        return ThreadMessage(
            thread_id=thread_id,
            event_id=event_id,
            user_id=user_id,
            content=content or {},
            kind=MessageKind(kind),
            is_bridge_originated=is_bridge_originated,
            timestamp=now,
        )

    async def resolve(
        self,
        thread_id: str,
        resolved_by: str,
        reason: Optional[str] = None,
    ) -> Thread:
        """
        Mark a thread resolved and announce it in the thread's room.

        The notice is sent first; if the transport fails nothing changes.
        With archive_resolved_threads set, an archive is scheduled after
        auto_resolve_after_hours for the generation produced here.

        Raises:
            InvalidOperationError: If the thread does not exist or is archived.
            TransportError: If the notice could not be sent.
        """
        thread = self._require(thread_id)
        if thread.status == ThreadStatus.ARCHIVED:
            raise InvalidOperationError(f"thread {thread_id} is archived")

        if self._intent is not None:
            message = f"Thread resolved by {resolved_by}"
            if reason:
                message += f": {reason}"
            await self._intent.send_message(
                thread.room_id, format_notice(message, thread_root=thread.root_event_id)
            )

        # state may have moved while the notice was in flight
        thread = self._require(thread_id)
        if thread.status == ThreadStatus.ARCHIVED:
            raise InvalidOperationError(f"thread {thread_id} is archived")
        now = self._clock()
        thread.status = ThreadStatus.RESOLVED
        thread.resolved_by = resolved_by
        thread.resolved_reason = reason
        thread.resolved_at = now
        thread.last_activity = now
        thread.generation += 1
        self._threads.put(thread_id, thread)
        logger.info("Resolved %s by %s", thread_id, resolved_by)

        if self.archive_resolved_threads:
            self.scheduler.schedule(
                thread_id,
                thread.generation,
                self.auto_resolve_after_hours * 3600,
                self.archive_if_current,
            )
        return thread

    def archive(self, thread_id: str) -> Thread:
        """Archive a thread. Archiving an archived thread is a no-op."""
        thread = self._require(thread_id)
        if thread.status == ThreadStatus.ARCHIVED:
            return thread
        thread.status = ThreadStatus.ARCHIVED
        thread.generation += 1
        self.scheduler.cancel(thread_id)
        self._threads.put(thread_id, thread)
        logger.info("Archived %s", thread_id)
        return thread

    def archive_if_current(self, thread_id: str, generation: int) -> bool:
        """Archive only if the thread is still resolved at the given generation."""
        thread = self._threads.get(thread_id)
        if thread is None:
            return False
        if thread.status != ThreadStatus.RESOLVED or thread.generation != generation:
            logger.debug(
                "Skipping stale archive of %s (generation %d, current %d)",
                thread_id,
                generation,
                thread.generation,
            )
            return False
        self.archive(thread_id)
        return True

    def cleanup_expired(
        self,
        max_age_hours: float,
        exclude: Optional[Callable[[str], bool]] = None,
    ) -> int:
        """
        Remove resolved or archived threads idle for longer than max_age_hours.

        Active threads are never removed. A removed thread disappears from
        every secondary index. exclude is called with the review id and can
        veto removal.
        """
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        removed = 0
        for thread in self._threads.list():
            if thread.status == ThreadStatus.ACTIVE or thread.last_activity >= cutoff:
                continue
            if exclude is not None and exclude(thread.review_id):
                continue
            self._remove(thread)
            removed += 1
        if removed:
            logger.info("Cleaned up %d expired threads", removed)
        return removed

    def _remove(self, thread: Thread) -> None:
        thread_id = thread.thread_id
        self.scheduler.cancel(thread_id)
        ref = self._by_review.get(thread.review_id)
        if ref is not None and ref.thread_id == thread_id:
            self._by_review.delete(thread.review_id)
        for event_id in thread.event_ids:
            ref = self._by_event.get(event_id)
            if ref is not None and ref.thread_id == thread_id:
                self._by_event.delete(event_id)
        for room_id in thread.room_ids:
            _remove_from_set(self._by_room, room_id, thread_id)
        for user_id in thread.participants:
            _remove_from_set(self._by_participant, user_id, thread_id)
        self._threads.delete(thread_id)

    # -- lookups -------------------------------------------------------------

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        return self._threads.get(thread_id) if thread_id else None

    def by_review(self, review_id: str) -> Optional[Thread]:
        ref = self._by_review.get(review_id) if review_id else None
        return self._threads.get(ref.thread_id) if ref else None

    def by_event(self, event_id: str) -> Optional[Thread]:
        ref = self._by_event.get(event_id) if event_id else None
        return self._threads.get(ref.thread_id) if ref else None

    def by_room(self, room_id: str) -> list[Thread]:
        return self._resolve_set(self._by_room, room_id)

    def by_participant(self, user_id: str) -> list[Thread]:
        return self._resolve_set(self._by_participant, user_id)

    def active_threads(self) -> list[Thread]:
        return [t for t in self._threads.list() if t.status == ThreadStatus.ACTIVE]

    def list_threads(self) -> list[Thread]:
        return sorted(self._threads.list(), key=lambda t: t.last_activity, reverse=True)

    def _resolve_set(self, repo: Repository, key: str) -> list[Thread]:
        entry = repo.get(key) if key else None
        if entry is None:
            return []
        threads = [t for t in (self._threads.get(tid) for tid in entry.thread_ids) if t]
        return sorted(threads, key=lambda t: t.last_activity, reverse=True)

    def _require(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id) if thread_id else None
        if thread is None:
            raise InvalidOperationError(f"unknown thread {thread_id!r}")
        return thread

    # -- reporting -----------------------------------------------------------

    def summary(self, thread_id: str) -> Optional[str]:
        thread = self.get_thread(thread_id)
        if thread is None:
            return None
        age = self._clock() - thread.created_at
        hours = int(age.total_seconds() // 3600)
        lines = [
            f"Thread {thread.thread_id}",
            f"Review: {thread.review_id} ({thread.app_id})",
            f"Status: {thread.status.value}",
            f"Messages: {thread.message_count}",
            f"Participants: {len(thread.participants)}",
            f"Age: {hours}h",
            f"Last activity: {thread.last_activity.isoformat()}",
        ]
        if thread.tags:
            lines.append(f"Tags: {', '.join(thread.tags)}")
        if thread.resolved_by:
            resolved = f"Resolved by: {thread.resolved_by}"
            if thread.resolved_reason:
                resolved += f" ({thread.resolved_reason})"
            lines.append(resolved)
        return "\n".join(lines)

    def stats(self) -> dict[str, Any]:
        threads = self._threads.list()
        by_status = Counter(t.status.value for t in threads)
        participants: Counter = Counter()
        for t in threads:
            participants.update(t.participants)
        total = len(threads)
        return {
            "total_threads": total,
            "active_threads": by_status.get(ThreadStatus.ACTIVE.value, 0),
            "resolved_threads": by_status.get(ThreadStatus.RESOLVED.value, 0),
            "archived_threads": by_status.get(ThreadStatus.ARCHIVED.value, 0),
            "average_messages_per_thread": (
                round(sum(t.message_count for t in threads) / total, 2) if total else 0.0
            ),
            "top_participants": [
                {"user_id": user_id, "threads": count}
                for user_id, count in participants.most_common(5)
            ],
            "pending_archives": len(self.scheduler),
        }

    def export(self, room_id: Optional[str] = None) -> str:
        threads = self.by_room(room_id) if room_id else self.list_threads()
        return json.dumps(
            {
                "exported_at": self._clock().isoformat(),
                "room_id": room_id,
                "threads": [t.model_dump(mode="json") for t in threads],
            },
            indent=2,
        )
