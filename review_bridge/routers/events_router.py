"""
Inbound events: reviews from the review source, chat events from the
homeserver and reply acknowledgements.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from review_bridge.adapters.base import TransportError
from review_bridge.commands.chat_event_command import ChatEventCommand
from review_bridge.commands.process_review_command import ProcessReviewCommand
from review_bridge.commands.reply_status_command import ReplyStatusCommand
from review_bridge.core.app_state import BridgeState
from review_bridge.errors import BridgeError
from review_bridge.routers.utils.dependencies import get_bridge_state
from review_bridge.routers.utils.errors import to_http_exception
from review_bridge.schemas.events import ChatEvent
from review_bridge.schemas.review import ReplyStatus, ReviewForwardResult, ReviewRecord

events_router = APIRouter(prefix="/events", tags=["Events"])


@events_router.post("/reviews", response_model=ReviewForwardResult)
async def process_review(
    review: ReviewRecord,
    state: BridgeState = Depends(get_bridge_state),
) -> ReviewForwardResult:
    """Forward a review into the rooms of its app."""
    try:
        return await ProcessReviewCommand(state).execute(review)
    except (BridgeError, TransportError) as e:
        raise to_http_exception(e) from e


@events_router.post("/chat", response_model=dict[str, Any])
async def process_chat_event(
    event: ChatEvent,
    state: BridgeState = Depends(get_bridge_state),
) -> dict[str, Any]:
    """Handle one event pushed by the homeserver."""
    try:
        return await ChatEventCommand(state).execute(event)
    except (BridgeError, TransportError) as e:
        raise to_http_exception(e) from e


@events_router.post("/reply-status", response_model=dict[str, Any])
async def process_reply_status(
    status: ReplyStatus,
    state: BridgeState = Depends(get_bridge_state),
) -> dict[str, Any]:
    """Record the review source's verdict on a submitted reply."""
    try:
        return await ReplyStatusCommand(state).execute(status)
    except (BridgeError, TransportError) as e:
        raise to_http_exception(e) from e
