"""Single owner of every periodic job in the swarm.

Queue ticks, market synthesis, health supervision and agent collection
cycles are all named jobs here, so shutdown cancels and awaits each of
them and no timer outlives the swarm.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[None]]


class Scheduler:
    """Runs named coroutines on fixed intervals.

    A job sleeps *interval* seconds, runs, and repeats.  A failing run is
    logged and the schedule continues.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, asyncio.Task] = {}

    @property
    def jobs(self) -> list[str]:
        return sorted(self._jobs)

    def is_scheduled(self, name: str) -> bool:
        task = self._jobs.get(name)
        return task is not None and not task.done()

    def schedule(
        self,
        name: str,
        interval: float,
        fn: JobFn,
        *,
        run_immediately: bool = False,
    ) -> None:
        """Start job *name*.  Scheduling an already running name is a no-op."""
        if interval <= 0:
            raise ValueError(f"Job {name!r} needs a positive interval, got {interval}")
        if self.is_scheduled(name):
            logger.warning("Job %s is already scheduled", name)
            return
        self._jobs[name] = asyncio.create_task(
            self._run(name, interval, fn, run_immediately),
            name=f"job-{name}",
        )
        logger.debug("Scheduled job %s every %.1fs", name, interval)

    async def cancel(self, name: str) -> bool:
        """Cancel job *name* and wait for it to finish. Returns False if unknown."""
        task = self._jobs.pop(name, None)
        if task is None:
            return False
        task.cancel()
        if task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.debug("Cancelled job %s", name)
        return True

    async def cancel_all(self) -> None:
        for name in list(self._jobs):
            await self.cancel(name)

    async def _run(self, name: str, interval: float, fn: JobFn, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(interval)
        while True:
            try:
                await fn()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job %s failed; keeping schedule", name)
            await asyncio.sleep(interval)
