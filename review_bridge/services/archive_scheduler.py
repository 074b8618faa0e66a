"""
Deferred archiving of resolved threads.

Each scheduled archive is an asyncio task addressed by (thread_id,
generation). Rescheduling or cancelling a thread drops its pending task, and
the callback is expected to ignore a generation that is no longer current.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Callable, Optional

from review_bridge.infra.logging_config import get_logger

logger = get_logger("archive_scheduler")

ArchiveCallback = Callable[[str, int], object]


class ArchiveScheduler:
    def __init__(self) -> None:
        self._pending: dict[str, tuple[int, asyncio.Task]] = {}

    def schedule(
        self,
        thread_id: str,
        generation: int,
        delay_seconds: float,
        callback: ArchiveCallback,
    ) -> asyncio.Task:
        """Run callback(thread_id, generation) after delay_seconds. Needs a running loop."""
        self.cancel(thread_id)
        task = asyncio.get_running_loop().create_task(
            self._run(thread_id, generation, max(0.0, delay_seconds), callback)
        )
        self._pending[thread_id] = (generation, task)
        logger.debug(
            "Scheduled archive of %s (generation %d) in %.0fs",
            thread_id,
            generation,
            delay_seconds,
        )
        return task

    def cancel(self, thread_id: str) -> bool:
        entry = self._pending.pop(thread_id, None)
        if entry is None:
            return False
        _, task = entry
        if not task.done() and task is not _current_task():
            task.cancel()
        return True

    def pending_generation(self, thread_id: str) -> Optional[int]:
        entry = self._pending.get(thread_id)
        return entry[0] if entry else None

    def __len__(self) -> int:
        return len(self._pending)

    async def shutdown(self) -> None:
        entries = list(self._pending.values())
        self._pending.clear()
        for _, task in entries:
            if not task.done():
                task.cancel()
        for _, task in entries:
            with suppress(asyncio.CancelledError):
                await task

    async def _run(
        self,
        thread_id: str,
        generation: int,
        delay_seconds: float,
        callback: ArchiveCallback,
    ) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            callback(thread_id, generation)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Deferred archive of thread %s failed", thread_id)
        finally:
            entry = self._pending.get(thread_id)
            if entry is not None and entry[1] is asyncio.current_task():
                self._pending.pop(thread_id, None)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
