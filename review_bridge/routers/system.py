from typing import Any

from fastapi import APIRouter, Depends, Request

from review_bridge.core.app_state import BridgeState
from review_bridge.routers.utils.dependencies import get_bridge_state

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/stats", response_model=dict[str, Any])
def get_stats(state: BridgeState = Depends(get_bridge_state)) -> dict[str, Any]:
    """Reporting snapshot of every registry."""
    return state.stats()


@router.get("/health", response_model=dict[str, Any])
def get_health(request: Request, state: BridgeState = Depends(get_bridge_state)) -> dict[str, Any]:
    reaper = getattr(request.app.state, "reaper", None)
    return {
        "status": "ok",
        "environment": state.settings.environment,
        "store_backend": state.settings.store_backend,
        "reaper_running": bool(reaper and reaper.running),
    }
