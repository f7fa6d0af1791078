"""Periodic sweeps run on the application's event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from fastapi_printqueue.clock import utcnow

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``func`` every ``interval`` seconds until stopped.

    An exception raised by one iteration is logged and the loop carries on
    with the next one.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        *,
        initial_delay: float = 0.0,
    ) -> None:
        self.name = name
        self.interval = interval
        self.func = func
        self.initial_delay = initial_delay
        self.runs = 0
        self.errors = 0
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("%s started - running every %ss", self.name, self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("%s stopped", self.name)

    async def run_once(self) -> None:
        self.last_run_at = utcnow()
        self.runs += 1
        try:
            await self.func()
        except Exception as exc:
            self.errors += 1
            self.last_error = str(exc)
            logger.exception("Error in %s", self.name)

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "errors": self.errors,
            "last_run_at": (
                self.last_run_at.isoformat() if self.last_run_at else None
            ),
            "last_error": self.last_error,
        }

    async def _loop(self) -> None:
        if self.initial_delay:
            await asyncio.sleep(self.initial_delay)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)


class SweepRunner:
    """Owns the background sweeps and starts/stops them together."""

    def __init__(self, tasks: list[PeriodicTask] | None = None) -> None:
        self.tasks: dict[str, PeriodicTask] = {}
        for task in tasks or []:
            self.add(task)

    def add(self, task: PeriodicTask) -> None:
        self.tasks[task.name] = task

    def start(self) -> None:
        for task in self.tasks.values():
            task.start()

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self.tasks.values()))

    def status(self) -> dict[str, dict[str, Any]]:
        return {name: task.status() for name, task in self.tasks.items()}
