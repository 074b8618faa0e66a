"""Process-wide bridge state: registries, transport and locks, built from settings."""

from __future__ import annotations

from typing import Optional

from review_bridge.adapters.base import ReviewReplyClient, RoomIntent
from review_bridge.adapters.matrix import MatrixRoomIntent
from review_bridge.adapters.review_source import HttpReviewReplyClient
from review_bridge.config import Settings, get_settings
from review_bridge.core.clock import Clock
from review_bridge.core.keyed_lock import KeyedLock
from review_bridge.repositories import RepositoryFactory, create_repository_factory
from review_bridge.services.archive_scheduler import ArchiveScheduler
from review_bridge.services.conversation_index import ConversationIndex
from review_bridge.services.identity_registry import IdentityRegistry
from review_bridge.services.review_store import ReviewStore
from review_bridge.services.room_registry import RoomRegistry
from review_bridge.services.thread_engine import ThreadEngine


class BridgeState:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        repository_factory: Optional[RepositoryFactory] = None,
        room_intent: Optional[RoomIntent] = None,
        reply_client: Optional[ReviewReplyClient] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or get_settings()
        factory = repository_factory or create_repository_factory(
            backend=self.settings.store_backend,
            database_url=self.settings.database_url,
        )
        self.room_intent = room_intent or _default_room_intent(self.settings)
        self.reply_client = reply_client or _default_reply_client(self.settings)
        self.locks = KeyedLock()

        self.identities = IdentityRegistry(
            factory,
            identity_prefix=self.settings.identity_prefix,
            home_domain=self.settings.homeserver_domain,
            source_name=self.settings.review_source_name,
            clock=clock,
        )
        self.rooms = RoomRegistry(factory, clock=clock)
        self.conversations = ConversationIndex(factory, clock=clock)
        self.reviews = ReviewStore(factory, clock=clock)
        self.threads = ThreadEngine(
            factory,
            self.identities,
            self.room_intent,
            scheduler=ArchiveScheduler(),
            auto_resolve_after_hours=self.settings.auto_resolve_after_hours,
            archive_resolved_threads=self.settings.archive_resolved_threads,
            clock=clock,
        )

    def stats(self) -> dict:
        return {
            "identities": self.identities.stats(),
            "rooms": self.rooms.stats(),
            "messages": self.conversations.stats(),
            "threads": self.threads.stats(),
        }


def _default_room_intent(settings: Settings) -> RoomIntent:
    return MatrixRoomIntent(
        homeserver_url=settings.homeserver_url,
        as_token=settings.as_token or "",
        bot_user_id=settings.bot_user_id,
        timeout=settings.transport_timeout_seconds,
    )


def _default_reply_client(settings: Settings) -> Optional[ReviewReplyClient]:
    if not settings.review_source_url:
        return None
    return HttpReviewReplyClient(
        base_url=settings.review_source_url,
        token=settings.review_source_token,
        timeout=settings.transport_timeout_seconds,
    )
