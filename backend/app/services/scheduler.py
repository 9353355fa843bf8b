"""Periodic background jobs (daily show refresh, configuration refresh)."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    name: str
    interval: timedelta
    func: Callable[[], Awaitable[object]]
    run_immediately: bool = True
    runs: int = field(default=0, init=False)

    async def run_once(self) -> None:
        """Run the job, logging (never raising) any failure."""
        self.runs += 1
        try:
            result = await self.func()
            logger.debug(f"Job {self.name} finished: {result}")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Job {self.name} failed")

    async def loop(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval.total_seconds())
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval.total_seconds())


class Scheduler:
    """Runs each registered job on its own asyncio task."""

    def __init__(self):
        self.jobs: list[PeriodicJob] = []
        self._tasks: list[asyncio.Task] = []

    def add_job(
        self,
        name: str,
        func: Callable[[], Awaitable[object]],
        interval: timedelta,
        run_immediately: bool = True,
    ) -> PeriodicJob:
        job = PeriodicJob(name=name, interval=interval, func=func, run_immediately=run_immediately)
        self.jobs.append(job)
        return job

    def get_job(self, name: str) -> Optional[PeriodicJob]:
        return next((j for j in self.jobs if j.name == name), None)

    def start(self) -> None:
        for job in self.jobs:
            logger.info(f"Scheduling {job.name} every {job.interval}")
            self._tasks.append(asyncio.create_task(job.loop(), name=f"job-{job.name}"))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)
