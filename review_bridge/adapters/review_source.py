"""HTTP client that forwards developer replies to the review source service."""

from __future__ import annotations

import asyncio
from typing import Optional

import requests

from review_bridge.adapters.base import ReviewReplyClient, TransportError
from review_bridge.infra.logging_config import get_logger

logger = get_logger("review_source")

REPLIES_PATH = "/replies"
TIMEOUT_SECONDS = 30


class HttpReviewReplyClient(ReviewReplyClient):
    """
    POSTs {review_id, app_id, reply_text} to <base_url>/replies.
    The source acknowledges asynchronously through /events/reply-status.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = TIMEOUT_SECONDS,
    ) -> None:
        self._url = base_url.rstrip("/") + REPLIES_PATH
        self._token = token
        self._timeout = timeout

    def _post(self, review_id: str, app_id: str, text: str) -> None:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            resp = requests.post(
                self._url,
                json={"review_id": review_id, "app_id": app_id, "reply_text": text},
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"reply submission failed: {e}") from e
        if resp.status_code >= 400:
            raise TransportError(
                f"reply submission returned HTTP {resp.status_code}: "
                f"{resp.text[:200] if resp.text else 'no body'}"
            )

    async def submit_reply(self, review_id: str, app_id: str, text: str) -> None:
        await asyncio.to_thread(self._post, review_id, app_id, text)
        logger.info("Submitted reply for review %s (%s)", review_id, app_id)
