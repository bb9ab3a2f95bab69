"""
nossence.bot.schedule — Hourly Delivery Schedule
=================================================

Fires a coroutine job at the top of every hour on its own asyncio task,
independent of the mention and ingestion loops.  A failing run is logged
and the schedule keeps ticking.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def seconds_until_next(interval: float, now: float) -> float:
    """Seconds from *now* to the next multiple of *interval* (epoch aligned)."""
    remainder = now % interval
    return interval - remainder


class HourlySchedule:
    """Run *job* every *interval* seconds, aligned to the wall clock."""

    def __init__(
        self,
        job: Callable[[], Awaitable[object]],
        *,
        interval: float = 3600.0,
        name: str = "hourly-job",
    ) -> None:
        self.job = job
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> None:
        """Run the job once, logging instead of raising."""
        logger.info("Running scheduled job %s", self.name)
        try:
            await self.job()
        except Exception:
            logger.exception("Scheduled job %s failed", self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_next(self.interval, time.time()))
            await self.tick()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        """Cancel the loop and wait for it (an in-flight run is cancelled too)."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
