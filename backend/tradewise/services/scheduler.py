"""Periodic jobs with a per-name single-flight guard.

Each job's timer keeps firing on schedule; when a tick fires while the
previous tick of the same job is still running, the new tick is skipped
and logged instead of queued.
"""

import asyncio
import logging
from collections import Counter
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]


class SingleFlight:
    """Re-entrancy guard keyed by job name."""

    def __init__(self):
        self._running: set[str] = set()
        self.skipped: Counter[str] = Counter()

    def is_running(self, name: str) -> bool:
        return name in self._running

    async def run(self, name: str, func: JobFunc) -> bool:
        """Run ``func`` unless ``name`` is already in flight.

        Returns:
            True if it ran, False if skipped.
        """
        if name in self._running:
            self.skipped[name] += 1
            logger.warning(f"Job '{name}' still running, skipping this tick")
            return False

        self._running.add(name)
        try:
            await func()
        finally:
            self._running.discard(name)
        return True


class PeriodicJob:
    """Fires ``func`` every ``interval`` seconds through a SingleFlight guard."""

    def __init__(
        self,
        name: str,
        interval: float,
        func: JobFunc,
        guard: SingleFlight,
        initial_delay: float | None = None,
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.guard = guard
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()
        self.runs = 0
        self.failures = 0

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
            logger.info(f"Job '{self.name}' scheduled every {self.interval}s")

    async def _loop(self) -> None:
        delay = self.initial_delay
        while True:
            try:
                await asyncio.sleep(delay)
                delay = self.interval
                tick = asyncio.create_task(self.tick(), name=f"tick:{self.name}")
                self._ticks.add(tick)
                tick.add_done_callback(self._ticks.discard)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Job '{self.name}' timer error: {e}")

    async def tick(self) -> bool:
        """Run one guarded tick; never raises."""
        try:
            ran = await self.guard.run(self.name, self.func)
            if ran:
                self.runs += 1
            return ran
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception(f"Job '{self.name}' tick failed")
            return False

    async def stop(self) -> None:
        tasks = [t for t in (self._task, *self._ticks) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(f"Job '{self.name}' stopped")


class Scheduler:
    """Owns the pipeline's periodic jobs and their shared guard."""

    def __init__(self):
        self.guard = SingleFlight()
        self.jobs: dict[str, PeriodicJob] = {}

    def add(self, name: str, interval: float, func: JobFunc, initial_delay: float | None = None) -> PeriodicJob:
        if name in self.jobs:
            raise ValueError(f"Job '{name}' already registered")
        job = PeriodicJob(name, interval, func, self.guard, initial_delay)
        self.jobs[name] = job
        return job

    def start(self) -> None:
        for job in self.jobs.values():
            job.start()

    async def stop(self) -> None:
        for job in self.jobs.values():
            await job.stop()

    def status(self) -> dict:
        return {
            name: {
                "interval": job.interval,
                "running": self.guard.is_running(name),
                "runs": job.runs,
                "failures": job.failures,
                "skipped": self.guard.skipped[name],
            }
            for name, job in self.jobs.items()
        }
