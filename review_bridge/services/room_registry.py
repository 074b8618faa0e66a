"""
RoomRegistry: chat rooms known to the bridge and the app bindings that
decide which reviews reach them.

Policies are read from the repository on every decision; nothing is cached.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from review_bridge.core.clock import Clock, utcnow
from review_bridge.errors import InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.repositories.base import RepositoryFactory
from review_bridge.schemas.room import (
    AppRoom,
    ChatRoom,
    RoomMapping,
    RoomPolicy,
    RoomPolicyUpdate,
    RoomType,
)

logger = get_logger("room_registry")

PolicyOverrides = Union[RoomPolicyUpdate, dict[str, Any], None]


def _merge_policy(policy: RoomPolicy, overrides: PolicyOverrides) -> RoomPolicy:
    if overrides is None:
        return policy
    if isinstance(overrides, RoomPolicyUpdate):
        changes = overrides.model_dump(exclude_none=True)
    else:
        changes = {k: v for k, v in overrides.items() if v is not None}
    unknown = set(changes) - set(RoomPolicy.model_fields)
    if unknown:
        raise InvalidOperationError(f"unknown policy fields: {sorted(unknown)}")
    return RoomPolicy.model_validate({**policy.model_dump(), **changes})


class RoomRegistry:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._rooms = repository_factory("rooms", ChatRoom)
        self._mappings = repository_factory("room_mappings", RoomMapping)
        self._app_rooms = repository_factory("app_rooms", AppRoom)
        self._clock = clock or utcnow

    def register_room(
        self,
        room_id: str,
        name: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> ChatRoom:
        """Upsert a room. Non-empty name/topic overwrite, absent ones keep the stored value."""
        if not room_id:
            raise InvalidOperationError("room id must not be empty")
        now = self._clock()
        room = self._rooms.get(room_id)
        if room is None:
            room = ChatRoom(
                room_id=room_id,
                name=name or None,
                topic=topic or None,
                created_at=now,
                last_active_at=now,
            )
            logger.info("Registered room %s", room_id)
        else:
            if name:
                room.name = name
            if topic:
                room.topic = topic
            room.last_active_at = now
        self._rooms.put(room_id, room)
        return room

    def mark_joined(self, room_id: str) -> ChatRoom:
        room = self._rooms.get(room_id)
        if room is None:
            room = self.register_room(room_id)
        if not room.bridge_joined:
            room.bridge_joined = True
            logger.info("Bridge joined room %s", room_id)
        room.last_active_at = self._clock()
        self._rooms.put(room_id, room)
        return room

    def get_room(self, room_id: str) -> Optional[ChatRoom]:
        return self._rooms.get(room_id)

    def list_rooms(self) -> list[ChatRoom]:
        return self._rooms.list()

    def bind_app_to_room(
        self,
        app_id: str,
        app_name: str,
        room_id: str,
        room_type: RoomType = RoomType.REVIEWS,
        policy_overrides: PolicyOverrides = None,
    ) -> RoomMapping:
        """
        Create or update the binding of an app to a room.

        Args:
            app_id: External application id (package name).
            app_name: Display name of the app.
            room_id: Chat room id; registered if not yet known.
            room_type: Purpose of the room.
            policy_overrides: Fields to override on top of the defaults, or on
                top of the current policy when the binding already exists.

        Returns:
            RoomMapping: The stored binding.

        Raises:
            InvalidOperationError: If app_id or room_id is empty, or an
                override names an unknown policy field.
        """
        if not app_id:
            raise InvalidOperationError("app id must not be empty")
        room_type = RoomType(room_type)
        self.register_room(room_id)
        now = self._clock()
        key = f"{app_id}_{room_id}_{room_type.value}"

        mapping = self._mappings.get(key)
        if mapping is None:
            mapping = RoomMapping(
                id=key,
                app_id=app_id,
                app_name=app_name or app_id,
                room_id=room_id,
                room_type=room_type,
                policy=_merge_policy(RoomPolicy(), policy_overrides),
                created_at=now,
                updated_at=now,
            )
            logger.info("Bound app %s to room %s (%s)", app_id, room_id, room_type.value)
        else:
            if app_name:
                mapping.app_name = app_name
            mapping.policy = _merge_policy(mapping.policy, policy_overrides)
            mapping.updated_at = now
        self._mappings.put(key, mapping)

        shortcut_key = f"{app_id}_{room_id}"
        if self._app_rooms.get(shortcut_key) is None:
            has_primary = any(r.is_primary for r in self.rooms_for_app(app_id))
            self._app_rooms.put(
                shortcut_key,
                AppRoom(
                    app_id=app_id,
                    app_name=mapping.app_name,
                    room_id=room_id,
                    is_primary=not has_primary,
                    created_at=now,
                ),
            )
        return mapping

    def update_policy(self, room_id: str, **overrides: Any) -> bool:
        mapping = self.mapping_for_room(room_id)
        if mapping is None:
            return False
        mapping.policy = _merge_policy(mapping.policy, overrides)
        mapping.updated_at = self._clock()
        self._mappings.put(mapping.id, mapping)
        return True

    def mapping_for_room(self, room_id: str) -> Optional[RoomMapping]:
        """First binding created for the room, if any."""
        for mapping in self._mappings.list():
            if mapping.room_id == room_id:
                return mapping
        return None

    def mappings_for_app(self, app_id: str) -> list[RoomMapping]:
        return [m for m in self._mappings.list() if m.app_id == app_id]

    def list_mappings(self) -> list[RoomMapping]:
        return self._mappings.list()

    def rooms_for_app(self, app_id: str) -> list[AppRoom]:
        return [r for r in self._app_rooms.list() if r.app_id == app_id]

    def primary_room_for_app(self, app_id: str) -> Optional[AppRoom]:
        rooms = self.rooms_for_app(app_id)
        for room in rooms:
            if room.is_primary:
                return room
        return rooms[0] if rooms else None

    def should_forward(self, app_id: str, room_id: str, rating: Optional[int] = None) -> bool:
        mapping = self.mapping_for_room(room_id)
        if mapping is None or mapping.app_id != app_id:
            return False
        if not mapping.policy.forward_reviews:
            return False
        minimum = mapping.policy.min_rating_to_forward
        if rating is not None and minimum > 0:
            return rating >= minimum
        return True

    def can_reply(self, room_id: str) -> bool:
        mapping = self.mapping_for_room(room_id)
        if mapping is None:
            return False
        return mapping.policy.allow_replies

    def unbind(self, room_id: str) -> bool:
        """Remove the room's binding and its app shortcut. False if there was none."""
        mapping = self.mapping_for_room(room_id)
        if mapping is None:
            return False
        self._mappings.delete(mapping.id)
        self._app_rooms.delete(f"{mapping.app_id}_{room_id}")
        logger.info("Unbound app %s from room %s", mapping.app_id, room_id)
        return True

    def stats(self) -> dict[str, int]:
        rooms = self._rooms.list()
        return {
            "total_rooms": len(rooms),
            "bridge_joined_rooms": sum(1 for r in rooms if r.bridge_joined),
            "total_app_rooms": len(self._app_rooms.list()),
            "total_room_mappings": len(self._mappings.list()),
        }
