"""Tests for ProcessReviewCommand."""

from datetime import datetime, timedelta, timezone

import pytest

from review_bridge.adapters.base import TransportError
from review_bridge.commands.process_review_command import ProcessReviewCommand
from review_bridge.errors import InvalidOperationError
from review_bridge.schemas.message import MessageKind
from review_bridge.schemas.thread import ThreadStatus

APP = "app.example"
ROOM = "!R:domain"


@pytest.mark.asyncio
async def test_new_review_single_room(bound_state, room_intent, make_review):
    result = await ProcessReviewCommand(bound_state).execute(make_review(author_name="Jane"))

    assert result.identity_key == "@bridge_r1:domain"
    assert result.forwarded_rooms == [ROOM]
    assert result.event_ids == ["$e1:domain"]

    identity = bound_state.identities.get_identity("@bridge_r1:domain")
    assert identity.display_name == "Jane"
    assert bound_state.identities.find_mapping_by_review("r1").app_id == APP

    room_id, content, sender = room_intent.sent[0]
    assert (room_id, sender) == (ROOM, "@bridge_r1:domain")
    assert content["review_bridge.review_id"] == "r1"
    assert (ROOM, "@bridge_r1:domain") in room_intent.joined

    mapping = bound_state.conversations.find_by_event("$e1:domain")
    assert (mapping.review_id, mapping.kind, mapping.app_id) == ("r1", MessageKind.REVIEW, APP)

    thread = bound_state.threads.by_review("r1")
    assert result.thread_id == thread.thread_id
    assert thread.status == ThreadStatus.ACTIVE
    assert thread.message_count == 1
    assert thread.participants == ["@bridge_r1:domain"]
    assert thread.root_event_id == "$e1:domain"


@pytest.mark.asyncio
async def test_low_rating_is_suppressed(bridge_state, room_intent, make_review):
    bridge_state.rooms.bind_app_to_room(APP, "Example", ROOM, policy_overrides={"min_rating_to_forward": 4})

    result = await ProcessReviewCommand(bridge_state).execute(make_review(rating=2))

    assert result.forwarded_rooms == []
    assert result.skipped_rooms == [ROOM]
    assert room_intent.sent == []
    assert bridge_state.conversations.find_by_review("r1") is None
    assert bridge_state.threads.by_review("r1") is None


@pytest.mark.asyncio
async def test_reprocessing_same_review_is_idempotent(bound_state, room_intent, make_review):
    command = ProcessReviewCommand(bound_state)
    review = make_review()
    first = await command.execute(review)
    second = await command.execute(review)

    assert second.identity_key == first.identity_key
    assert second.forwarded_rooms == []
    assert second.thread_id == first.thread_id
    assert len(room_intent.sent) == 1
    assert bound_state.identities.stats() == {"total_identities": 1, "total_mappings": 1}
    assert bound_state.conversations.stats()["total_mappings"] == 1


@pytest.mark.asyncio
async def test_redelivery_without_source_timestamps_is_not_an_update(bound_state, room_intent, make_review):
    command = ProcessReviewCommand(bound_state)
    await command.execute(make_review(created_at=None))
    second = await command.execute(make_review(created_at=None, text="same review, resent"))

    assert second.forwarded_rooms == []
    assert len(room_intent.sent) == 1
    assert bound_state.conversations.stats()["by_kind"]["notification"] == 0


@pytest.mark.asyncio
async def test_redelivery_dropping_modified_at_is_not_an_update(bound_state, room_intent, make_review):
    created = datetime(2026, 1, 1, tzinfo=timezone.utc)
    command = ProcessReviewCommand(bound_state)
    await command.execute(make_review(created_at=created))
    await command.execute(make_review(created_at=created, modified_at=created + timedelta(hours=1)))
    third = await command.execute(make_review(created_at=created))
    fourth = await command.execute(make_review(created_at=created, modified_at=created + timedelta(hours=1)))

    assert third.forwarded_rooms == []
    assert fourth.forwarded_rooms == []
    assert len(room_intent.sent) == 2


@pytest.mark.asyncio
async def test_modified_review_is_posted_as_update_in_thread(bound_state, room_intent, make_review):
    command = ProcessReviewCommand(bound_state)
    created = datetime(2026, 1, 1, 11, 0, tzinfo=timezone.utc)
    await command.execute(make_review(created_at=created))
    result = await command.execute(
        make_review(created_at=created, modified_at=created + timedelta(hours=2), text="edited")
    )

    assert result.forwarded_rooms == [ROOM]
    _, content, _ = room_intent.sent[-1]
    assert content["body"].startswith("Updated")
    assert content["m.relates_to"] == {"rel_type": "m.thread", "event_id": "$e1:domain"}
    assert bound_state.conversations.find_by_review("r1").kind == MessageKind.NOTIFICATION
    assert bound_state.threads.by_review("r1").message_count == 2


@pytest.mark.asyncio
async def test_updates_only_room_skips_first_sightings(bridge_state, room_intent, make_review):
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!main:domain")
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!updates:domain", policy_overrides={"updates_only": True})
    command = ProcessReviewCommand(bridge_state)
    created = datetime(2026, 1, 1, 11, 0, tzinfo=timezone.utc)

    first = await command.execute(make_review(created_at=created))
    assert first.forwarded_rooms == ["!main:domain"]
    assert first.skipped_rooms == ["!updates:domain"]

    second = await command.execute(make_review(created_at=created, modified_at=created + timedelta(days=1)))
    assert sorted(second.forwarded_rooms) == ["!main:domain", "!updates:domain"]
    thread = bridge_state.threads.by_review("r1")
    assert set(thread.room_ids) == {"!main:domain", "!updates:domain"}


@pytest.mark.asyncio
async def test_multiple_rooms_share_one_thread(bridge_state, make_review):
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!a:domain")
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!b:domain")

    result = await ProcessReviewCommand(bridge_state).execute(make_review())

    assert result.forwarded_rooms == ["!a:domain", "!b:domain"]
    thread = bridge_state.threads.by_review("r1")
    assert thread.message_count == 2
    assert thread.room_id == "!a:domain"
    assert bridge_state.threads.by_event("$e2:domain").thread_id == thread.thread_id


@pytest.mark.asyncio
async def test_transport_failure_commits_nothing(bound_state, room_intent, make_review):
    room_intent.fail_all = True
    with pytest.raises(TransportError):
        await ProcessReviewCommand(bound_state).execute(make_review())

    assert bound_state.conversations.find_by_review("r1") is None
    assert bound_state.threads.by_review("r1") is None
    assert bound_state.reviews.get("r1") is None

    room_intent.fail_all = False
    result = await ProcessReviewCommand(bound_state).execute(make_review())
    assert result.forwarded_rooms == [ROOM]
    assert bound_state.identities.stats()["total_mappings"] == 1


@pytest.mark.asyncio
async def test_failing_room_is_skipped_when_others_succeed(bridge_state, room_intent, make_review):
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!a:domain")
    bridge_state.rooms.bind_app_to_room(APP, "Example", "!b:domain")
    room_intent.fail_rooms = {"!a:domain"}

    result = await ProcessReviewCommand(bridge_state).execute(make_review())

    assert result.forwarded_rooms == ["!b:domain"]
    assert result.skipped_rooms == ["!a:domain"]
    assert bridge_state.conversations.list_for_room("!a:domain") == []
    assert bridge_state.threads.by_review("r1").root_event_id == result.event_ids[0]


@pytest.mark.asyncio
async def test_app_without_rooms_stores_review_only(bridge_state, room_intent, make_review):
    result = await ProcessReviewCommand(bridge_state).execute(make_review())
    assert result.forwarded_rooms == []
    assert room_intent.sent == []
    assert bridge_state.reviews.get("r1") is not None
    assert bridge_state.identities.find_mapping_by_review("r1") is not None


@pytest.mark.asyncio
async def test_empty_ids_are_rejected(bound_state, make_review):
    with pytest.raises(InvalidOperationError):
        await ProcessReviewCommand(bound_state).execute(make_review(review_id=" "))
    with pytest.raises(InvalidOperationError):
        await ProcessReviewCommand(bound_state).execute(make_review(app_id=""))


@pytest.mark.asyncio
async def test_reaped_identity_is_recreated_from_mapping(bound_state, clock, make_review):
    command = ProcessReviewCommand(bound_state)
    created = datetime(2026, 1, 1, 11, 0, tzinfo=timezone.utc)
    await command.execute(make_review(created_at=created, author_name="Jane"))
    clock.advance(days=10)
    bound_state.identities.reap_inactive(timedelta(days=7))
    assert bound_state.identities.list_identities() == []

    result = await command.execute(
        make_review(created_at=created, modified_at=created + timedelta(days=9), author_name="Jane")
    )

    assert result.identity_key == "@bridge_r1:domain"
    assert bound_state.identities.get_identity("@bridge_r1:domain") is not None
    assert bound_state.identities.stats()["total_mappings"] == 1


@pytest.mark.asyncio
async def test_author_rename_updates_identity_and_mapping(bound_state, make_review):
    command = ProcessReviewCommand(bound_state)
    await command.execute(make_review(author_name="Jane"))
    await command.execute(make_review(author_name="Jane D."))
    assert bound_state.identities.get_identity("@bridge_r1:domain").display_name == "Jane D."
    assert bound_state.identities.find_mapping_by_review("r1").account_name == "Jane D."


@pytest.mark.asyncio
async def test_notify_on_new_thread(bound_state, room_intent, make_review):
    bound_state.settings.notify_on_new_thread = True
    await ProcessReviewCommand(bound_state).execute(make_review())
    assert len(room_intent.sent) == 2
    _, notice, sender = room_intent.sent[1]
    assert sender is None
    assert notice["msgtype"] == "m.notice"
    assert notice["m.relates_to"]["event_id"] == "$e1:domain"


@pytest.mark.asyncio
async def test_threading_disabled(bound_state, make_review):
    bound_state.settings.threading_enabled = False
    result = await ProcessReviewCommand(bound_state).execute(make_review())
    assert result.thread_id is None
    assert bound_state.threads.by_review("r1") is None
    assert bound_state.conversations.find_by_review("r1") is not None
