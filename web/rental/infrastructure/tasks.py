"""
Fire-and-forget background work.

Side effects that must never hold up or fail the caller (emails, live
notification delivery) are spawned here. Failures are logged, never joined
against the caller's success path.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskSet:
    """Keeps strong references to spawned tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, work: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        """
        Schedule *work* without waiting for it.

        Use this in request handlers and jobs to avoid adding latency.
        """
        task = asyncio.create_task(self._guard(work, name or "background"), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(work: Awaitable, name: str) -> None:
        try:
            await work
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background task %s failed", name)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding tasks, including ones spawned while waiting."""
        while self._tasks:
            done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            if pending and timeout is not None:
                logger.warning("%d background task(s) still running after %.1fs", len(pending), timeout)
                return

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
