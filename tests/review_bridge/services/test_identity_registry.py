"""Tests for IdentityRegistry."""

from datetime import timedelta

import pytest

from review_bridge.errors import InvalidOperationError


def test_resolve_creates_identity_from_review_id(identity_registry):
    identity = identity_registry.resolve_or_create_identity("r1", "Jane Doe", "domain")
    assert identity.identity_key == "@bridge_r1:domain"
    assert identity.display_name == "Jane Doe"
    assert identity.is_virtual is True
    assert identity_registry.get_identity("@bridge_r1:domain") is not None


def test_resolve_is_idempotent(identity_registry, clock):
    first = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    clock.advance(minutes=5)
    second = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    assert first.identity_key == second.identity_key
    assert second.created_at == first.created_at
    assert second.last_active_at == clock.now
    assert len(identity_registry.list_identities()) == 1


def test_resolve_twice_creates_single_account_mapping(identity_registry):
    for _ in range(2):
        identity = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
        identity_registry.create_account_mapping("r1", identity.identity_key, "Jane", "app.example")
    assert identity_registry.stats() == {"total_identities": 1, "total_mappings": 1}


def test_identity_keys_do_not_depend_on_other_reviews(identity_registry):
    a = identity_registry.resolve_or_create_identity("r1", "Same Name", "domain")
    b = identity_registry.resolve_or_create_identity("r2", "Same Name", "domain")
    assert a.identity_key != b.identity_key
    assert identity_registry.identity_key_for("r1", "domain") == a.identity_key


def test_empty_display_name_uses_placeholder(identity_registry):
    identity = identity_registry.resolve_or_create_identity("r9", "  ", "domain")
    assert identity.display_name == "Google Play user r9"


def test_resighting_updates_display_name(identity_registry):
    identity_registry.resolve_or_create_identity("r1", "Old", "domain")
    identity = identity_registry.resolve_or_create_identity("r1", "New", "domain")
    assert identity.display_name == "New"
    kept = identity_registry.resolve_or_create_identity("r1", "", "domain")
    assert kept.display_name == "New"


@pytest.mark.parametrize("review_id", ["", "   "])
def test_empty_review_id_is_rejected(identity_registry, review_id):
    with pytest.raises(InvalidOperationError):
        identity_registry.resolve_or_create_identity(review_id, "Jane", "domain")
    with pytest.raises(InvalidOperationError):
        identity_registry.create_account_mapping(review_id, "@bridge_x:domain", "Jane", "app")


def test_is_bridge_owned_identity(identity_registry):
    assert identity_registry.is_bridge_owned_identity("@bridge_r1:domain") is True
    assert identity_registry.is_bridge_owned_identity("@alice:domain") is False
    assert identity_registry.is_bridge_owned_identity("") is False


def test_create_account_mapping_updates_existing(identity_registry, clock):
    key = identity_registry.identity_key_for("r1")
    first = identity_registry.create_account_mapping("r1", key, "Jane", "app.one")
    clock.advance(hours=1)
    second = identity_registry.create_account_mapping("r1", key, "Janet", "app.two")
    assert second.id == first.id
    assert second.account_name == "Janet"
    assert second.app_id == "app.two"
    assert second.created_at == first.created_at
    assert second.updated_at == clock.now
    assert identity_registry.stats()["total_mappings"] == 1


def test_lookups_return_none_when_missing(identity_registry):
    assert identity_registry.find_mapping_by_review("nope") is None
    assert identity_registry.find_mapping_by_identity("@bridge_nope:domain") is None
    assert identity_registry.get_identity("@bridge_nope:domain") is None
    assert identity_registry.list_identities() == []


def test_find_mapping_by_identity(identity_registry):
    key = identity_registry.identity_key_for("r1")
    identity_registry.create_account_mapping("r1", key, "Jane", "app.example")
    mapping = identity_registry.find_mapping_by_identity(key)
    assert mapping is not None
    assert mapping.review_id == "r1"


def test_update_profile(identity_registry):
    identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    updated = identity_registry.update_profile(
        "@bridge_r1:domain", avatar_url="mxc://domain/abc"
    )
    assert updated.avatar_url == "mxc://domain/abc"
    assert updated.display_name == "Jane"
    assert identity_registry.update_profile("@bridge_none:domain", "x") is None


def test_reap_inactive_keeps_mappings(identity_registry, clock):
    identity = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    identity_registry.create_account_mapping("r1", identity.identity_key, "Jane", "app")
    clock.advance(days=8)
    identity_registry.resolve_or_create_identity("r2", "Fresh", "domain")

    removed = identity_registry.reap_inactive(timedelta(days=7))

    assert removed == 1
    assert identity_registry.get_identity(identity.identity_key) is None
    assert identity_registry.get_identity("@bridge_r2:domain") is not None
    assert identity_registry.find_mapping_by_review("r1") is not None


def test_reap_inactive_honours_exclude(identity_registry, clock):
    identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    clock.advance(days=30)
    removed = identity_registry.reap_inactive(timedelta(days=7), exclude=lambda rid: rid == "r1")
    assert removed == 0
    assert len(identity_registry.list_identities()) == 1


def test_reaped_identity_is_recreated_with_same_key(identity_registry, clock):
    first = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    clock.advance(days=10)
    identity_registry.reap_inactive(timedelta(days=7))
    again = identity_registry.resolve_or_create_identity("r1", "Jane", "domain")
    assert again.identity_key == first.identity_key
    assert again.created_at == clock.now
