"""Threads API: list, get, summary, export, resolve, archive."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi_pagination import Page, Params, paginate

from review_bridge.adapters.base import TransportError
from review_bridge.core.app_state import BridgeState
from review_bridge.errors import BridgeError
from review_bridge.routers.utils.dependencies import get_bridge_state, get_thread_by_id
from review_bridge.routers.utils.errors import to_http_exception
from review_bridge.schemas.thread import ResolveRequest, Thread, ThreadStatus

threads_router = APIRouter(prefix="/threads", tags=["Thread"])


@threads_router.get("", response_model=Page[Thread])
def list_threads(
    params: Params = Depends(),
    room_id: Optional[str] = Query(None),
    participant: Optional[str] = Query(None),
    status: Optional[ThreadStatus] = Query(None),
    state: BridgeState = Depends(get_bridge_state),
) -> Page[Thread]:
    """List threads, most recently active first."""
    if room_id:
        threads = state.threads.by_room(room_id)
    elif participant:
        threads = state.threads.by_participant(participant)
    else:
        threads = state.threads.list_threads()
    if room_id and participant:
        threads = [t for t in threads if participant in t.participants]
    if status is not None:
        threads = [t for t in threads if t.status == status]
    return paginate(threads, params=params)


@threads_router.get("/export")
def export_threads(
    room_id: Optional[str] = Query(None),
    state: BridgeState = Depends(get_bridge_state),
) -> Response:
    """Dump threads (optionally of one room) as JSON."""
    return Response(content=state.threads.export(room_id), media_type="application/json")


@threads_router.get("/{thread_id}", response_model=Thread)
def get_thread(thread: Thread = Depends(get_thread_by_id)) -> Thread:
    return thread


@threads_router.get("/{thread_id}/summary", response_model=dict[str, Any])
def get_thread_summary(
    thread: Thread = Depends(get_thread_by_id),
    state: BridgeState = Depends(get_bridge_state),
) -> dict[str, Any]:
    summary = state.threads.summary(thread.thread_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Thread not found")
    return {"thread_id": thread.thread_id, "summary": summary}


@threads_router.post("/{thread_id}/resolve", response_model=Thread)
async def resolve_thread(
    data: ResolveRequest,
    thread: Thread = Depends(get_thread_by_id),
    state: BridgeState = Depends(get_bridge_state),
) -> Thread:
    """Resolve a thread; it is archived later unless it sees new activity."""
    try:
        async with state.locks.hold(thread.review_id):
            return await state.threads.resolve(thread.thread_id, data.resolved_by, data.reason)
    except (BridgeError, TransportError) as e:
        raise to_http_exception(e) from e


@threads_router.post("/{thread_id}/archive", response_model=Thread)
async def archive_thread(
    thread: Thread = Depends(get_thread_by_id),
    state: BridgeState = Depends(get_bridge_state),
) -> Thread:
    try:
        async with state.locks.hold(thread.review_id):
            return state.threads.archive(thread.thread_id)
    except BridgeError as e:
        raise to_http_exception(e) from e
