"""Rooms API: list rooms and manage app bindings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from review_bridge.core.app_state import BridgeState
from review_bridge.errors import BridgeError
from review_bridge.routers.utils.dependencies import get_bridge_state
from review_bridge.routers.utils.errors import to_http_exception
from review_bridge.schemas.room import RoomMapping, RoomMappingRequest, RoomRead

rooms_router = APIRouter(prefix="/rooms", tags=["Room"])


@rooms_router.get("", response_model=list[RoomRead])
def list_rooms(state: BridgeState = Depends(get_bridge_state)) -> list[RoomRead]:
    return [
        RoomRead(**room.model_dump(), mapping=state.rooms.mapping_for_room(room.room_id))
        for room in state.rooms.list_rooms()
    ]


@rooms_router.put("/{room_id}/mapping", response_model=RoomMapping)
def bind_room(
    room_id: str,
    data: RoomMappingRequest,
    state: BridgeState = Depends(get_bridge_state),
) -> RoomMapping:
    """Bind an app to the room, or update the existing binding's policy."""
    try:
        return state.rooms.bind_app_to_room(
            data.app_id,
            data.app_name,
            room_id,
            data.room_type,
            data.policy,
        )
    except BridgeError as e:
        raise to_http_exception(e) from e


@rooms_router.delete("/{room_id}/mapping", status_code=204)
def unbind_room(room_id: str, state: BridgeState = Depends(get_bridge_state)) -> None:
    if not state.rooms.unbind(room_id):
        raise HTTPException(status_code=404, detail="Room mapping not found")
