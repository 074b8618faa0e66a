from fastapi import Depends, HTTPException, Request

from review_bridge.core.app_state import BridgeState
from review_bridge.schemas.thread import Thread


def get_bridge_state(request: Request) -> BridgeState:
    """FastAPI dependency returning the process-wide bridge state."""
    return request.app.state.bridge


def get_thread_by_id(
    thread_id: str,
    state: BridgeState = Depends(get_bridge_state),
) -> Thread:
    """FastAPI dependency to get a thread by ID."""
    thread = state.threads.get_thread(thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread
