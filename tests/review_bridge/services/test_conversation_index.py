"""Tests for ConversationIndex."""

import pytest

from review_bridge.errors import DuplicateMappingError, InvalidOperationError
from review_bridge.schemas.message import ChatMessage, MessageKind


def test_record_message(conversation_index):
    mapping = conversation_index.record_message(
        "r1", "$e1:domain", "!R:domain", MessageKind.REVIEW, "app.example"
    )
    assert mapping.id == "r1_$e1:domain"
    assert mapping.kind == MessageKind.REVIEW
    assert conversation_index.find_by_event("$e1:domain") == mapping
    assert conversation_index.find_by_review("r1") == mapping


def test_duplicate_event_is_rejected(conversation_index):
    conversation_index.record_message("r1", "$e1:domain", "!R:domain", "review", "app.example")
    with pytest.raises(DuplicateMappingError) as exc_info:
        conversation_index.record_message("r1", "$e1:domain", "!R:domain", "review", "app.example")
    assert exc_info.value.event_id == "$e1:domain"
    assert exc_info.value.review_id == "r1"
    with pytest.raises(DuplicateMappingError):
        conversation_index.record_message("r2", "$e1:domain", "!R:domain", "reply", "app.example")
    assert conversation_index.stats()["total_mappings"] == 1


def test_empty_ids_are_rejected(conversation_index):
    with pytest.raises(InvalidOperationError):
        conversation_index.record_message("", "$e1:domain", "!R:domain", "review", "app")
    with pytest.raises(InvalidOperationError):
        conversation_index.record_message("r1", "", "!R:domain", "review", "app")


def test_find_by_review_returns_latest_and_history_is_ordered(conversation_index, clock):
    conversation_index.record_message("r1", "$e1:domain", "!R:domain", "review", "app")
    clock.advance(minutes=1)
    conversation_index.record_message("r1", "$e2:domain", "!R:domain", "reply", "app")
    clock.advance(minutes=1)
    conversation_index.record_message("r1", "$e3:domain", "!R:domain", "notification", "app")

    assert conversation_index.find_by_review("r1").event_id == "$e3:domain"
    history = conversation_index.list_all_for_review("r1")
    assert [m.event_id for m in history] == ["$e1:domain", "$e2:domain", "$e3:domain"]


def test_lookups_return_empty_when_missing(conversation_index):
    assert conversation_index.find_by_event("$nope:domain") is None
    assert conversation_index.find_by_review("nope") is None
    assert conversation_index.list_all_for_review("nope") == []
    assert conversation_index.list_for_room("!nope:domain") == []
    assert conversation_index.latest_review_in_room("!nope:domain") is None


def test_latest_review_in_room(conversation_index):
    conversation_index.record_message("r1", "$e1:domain", "!R:domain", "review", "app.example")
    conversation_index.record_message("r2", "$e2:domain", "!R:domain", "review", "app.example")
    conversation_index.record_message("r2", "$e3:domain", "!R:domain", "reply", "app.example")
    conversation_index.record_message("r3", "$e4:domain", "!R:domain", "review", "other.app")

    assert conversation_index.latest_review_in_room("!R:domain", "app.example").review_id == "r2"
    assert conversation_index.latest_review_in_room("!R:domain").review_id == "r3"


def test_chat_message_log(conversation_index):
    message = ChatMessage(event_id="$m1:domain", room_id="!R:domain", sender="@alice:domain")
    conversation_index.record_chat_message(message)
    assert conversation_index.get_chat_message("$m1:domain").sender == "@alice:domain"
    assert conversation_index.get_chat_message("$other:domain") is None


def test_stats(conversation_index):
    conversation_index.record_message("r1", "$e1:domain", "!R:domain", "review", "app")
    conversation_index.record_message("r1", "$e2:domain", "!R:domain", "reply", "app")
    conversation_index.record_chat_message(
        ChatMessage(event_id="$e2:domain", room_id="!R:domain", sender="@alice:domain")
    )
    assert conversation_index.stats() == {
        "total_mappings": 2,
        "by_kind": {"review": 1, "reply": 1, "notification": 0},
        "total_chat_messages": 1,
    }
