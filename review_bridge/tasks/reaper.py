"""Periodic maintenance: reap idle virtual identities and expired threads."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import timedelta
from typing import Optional

from review_bridge.core.app_state import BridgeState
from review_bridge.infra.logging_config import get_logger

logger = get_logger("reaper")


class BridgeReaper:
    """
    Background task owned by the application lifespan.
    Keys currently held by a request are skipped and retried on the next pass.
    """

    def __init__(self, state: BridgeState, interval_seconds: Optional[float] = None) -> None:
        self.state = state
        settings = state.settings
        self.interval_seconds = interval_seconds or settings.reaper_interval_seconds
        self.identity_max_age = timedelta(days=settings.identity_max_inactive_days)
        self.thread_max_age_hours = settings.thread_timeout_hours
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Reaper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("Reaper stopped")

    def run_once(self) -> dict[str, int]:
        locked = self.state.locks.is_locked
        identities = self.state.identities.reap_inactive(self.identity_max_age, exclude=locked)
        threads = self.state.threads.cleanup_expired(self.thread_max_age_hours, exclude=locked)
        return {"identities": identities, "threads": threads}

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                result = self.run_once()
            except Exception:
                logger.exception("Reaper pass failed")
                continue
            if result["identities"] or result["threads"]:
                logger.info(
                    "Reaper removed %d identities and %d threads",
                    result["identities"],
                    result["threads"],
                )
