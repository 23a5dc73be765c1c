"""
Periodic jobs owned by the application lifespan.

A worker sleeps ``interval`` seconds between runs.  A failed run is
logged and counted; the loop keeps its schedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class BackgroundWorker:
    def __init__(self, *, interval: float, name: str) -> None:
        self._interval = interval
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self.last_run_at: datetime | None = None
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info("%s scheduled every %ds", self._name, self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("%s stopped after %d failed run(s)", self._name, self.failures)

    async def run_once(self) -> None:
        self.last_run_at = datetime.now(timezone.utc)
        try:
            await self._tick()
        except Exception:
            self.failures += 1
            logger.exception("%s run failed, retrying in %ds", self._name, self._interval)

    async def _tick(self) -> None:
        raise NotImplementedError

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()
