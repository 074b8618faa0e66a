"""Fixtures for the bridge registries, a fake transport and the API client."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from review_bridge.adapters.base import ReviewReplyClient, RoomIntent, TransportError
from review_bridge.config import get_settings
from review_bridge.core.app_state import BridgeState
from review_bridge.main import create_app
from review_bridge.repositories import in_memory_factory
from review_bridge.services.conversation_index import ConversationIndex
from review_bridge.services.identity_registry import IdentityRegistry
from review_bridge.services.review_store import ReviewStore
from review_bridge.services.room_registry import RoomRegistry
from review_bridge.services.thread_engine import ThreadEngine

HOME_DOMAIN = "domain"
BOT_USER_ID = f"@reviewbot:{HOME_DOMAIN}"
APP_ID = "app.example"
ROOM_ID = "!R:domain"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRoomIntent(RoomIntent):
    """Records every call; event ids are $e1:domain, $e2:domain, ..."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any], Optional[str]]] = []
        self.joined: list[tuple[str, Optional[str]]] = []
        self.identities: list[str] = []
        self.fail_rooms: set[str] = set()
        self.fail_all = False
        self._counter = 0

    async def send_message(self, room_id, content, sender=None):
        if self.fail_all or room_id in self.fail_rooms:
            raise TransportError(f"send to {room_id} timed out")
        self._counter += 1
        self.sent.append((room_id, content, sender))
        return f"$e{self._counter}:{HOME_DOMAIN}"

    async def join_room(self, room_id, sender=None):
        if self.fail_all or room_id in self.fail_rooms:
            raise TransportError(f"join {room_id} timed out")
        self.joined.append((room_id, sender))

    async def get_profile(self, identity_key):
        return {"displayname": identity_key}

    async def ensure_identity(self, identity_key, display_name=None):
        self.identities.append(identity_key)

    def bodies(self) -> list[str]:
        return [content.get("body", "") for _, content, _ in self.sent]


class FakeReplyClient(ReviewReplyClient):
    def __init__(self) -> None:
        self.submitted: list[tuple[str, str, str]] = []
        self.fail = False

    async def submit_reply(self, review_id, app_id, text):
        if self.fail:
            raise TransportError("review source unavailable")
        self.submitted.append((review_id, app_id, text))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def repository_factory():
    return in_memory_factory()


@pytest.fixture
def room_intent():
    return FakeRoomIntent()


@pytest.fixture
def reply_client():
    return FakeReplyClient()


@pytest.fixture
def settings():
    return get_settings().model_copy(
        update={
            "homeserver_domain": HOME_DOMAIN,
            "bot_localpart": "reviewbot",
            "identity_prefix": "bridge_",
            "store_backend": "inmemory",
            "threading_enabled": True,
            "archive_resolved_threads": True,
            "auto_resolve_after_hours": 24.0,
            "notify_on_new_thread": False,
            "reply_max_length": 350,
        }
    )


@pytest.fixture
def identity_registry(repository_factory, clock):
    return IdentityRegistry(repository_factory, home_domain=HOME_DOMAIN, clock=clock)


@pytest.fixture
def room_registry(repository_factory, clock):
    return RoomRegistry(repository_factory, clock=clock)


@pytest.fixture
def conversation_index(repository_factory, clock):
    return ConversationIndex(repository_factory, clock=clock)


@pytest.fixture
def review_store(repository_factory, clock):
    return ReviewStore(repository_factory, clock=clock)


@pytest.fixture
def thread_engine(repository_factory, identity_registry, room_intent, clock):
    return ThreadEngine(
        repository_factory,
        identity_registry,
        room_intent,
        auto_resolve_after_hours=24.0,
        clock=clock,
    )


@pytest.fixture
def bridge_state(settings, repository_factory, room_intent, reply_client, clock):
    return BridgeState(
        settings,
        repository_factory=repository_factory,
        room_intent=room_intent,
        reply_client=reply_client,
        clock=clock,
    )


@pytest.fixture
def bound_state(bridge_state):
    """Bridge state with APP_ID bound to ROOM_ID using the default policy."""
    bridge_state.rooms.bind_app_to_room(APP_ID, "Example", ROOM_ID)
    return bridge_state


@pytest.fixture
def client(bridge_state):
    app = create_app(testing=True, state=bridge_state)
    with TestClient(app) as c:
        yield c
