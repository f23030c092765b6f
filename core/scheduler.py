"""
core/scheduler.py - Cancellable periodic jobs on a single event loop.

Each job runs as its own asyncio task so a slow tick never delays the
RPC monitor. A job name never has two runs in flight, even across
replace or cancel-and-re-add; cancelling a job stops future runs but lets
an in-flight run finish.

Tests drive the scheduler with a ManualClock:

    clock.advance(20)
    await asyncio.gather(*scheduler.run_pending())
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from core.logging import get_logger
from core.time import SystemClock

logger = get_logger("flarb.scheduler")

JobFunc = Callable[[], Awaitable[object]]


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    func: JobFunc
    next_run: float
    runs: int = 0
    failures: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def in_flight(self) -> bool:
        return self.task is not None and not self.task.done()


class Scheduler:
    """Named periodic jobs driven by an injectable clock."""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: set[asyncio.Task] = set()
        self._last_run: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def has_job(self, name: str) -> bool:
        return name in self._jobs

    def add_job(
        self,
        name: str,
        interval_seconds: float,
        func: JobFunc,
        run_immediately: bool = True,
    ) -> ScheduledJob:
        """Register (or replace) a job. A run still in flight under this name is kept."""
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")
        now = self.clock.now()
        job = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            func=func,
            next_run=now if run_immediately else now + interval_seconds,
        )
        previous = self._last_run.get(name)
        if previous is not None and not previous.done():
            job.task = previous
        self._jobs[name] = job
        return job

    def cancel(self, name: str) -> bool:
        """Stop future runs of a job. An in-flight run is not interrupted."""
        return self._jobs.pop(name, None) is not None

    def cancel_all(self) -> None:
        self._jobs.clear()

    def run_pending(self) -> list[asyncio.Task]:
        """Launch every due job that is not already running."""
        now = self.clock.now()
        launched = []
        for job in list(self._jobs.values()):
            if job.in_flight or now < job.next_run:
                continue
            job.next_run = now + job.interval_seconds
            job.task = asyncio.ensure_future(self._run_job(job))
            self._last_run[job.name] = job.task
            self._tasks.add(job.task)
            job.task.add_done_callback(self._tasks.discard)
            launched.append(job.task)
        return launched

    async def _run_job(self, job: ScheduledJob) -> None:
        try:
            await job.func()
            job.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            logger.error(
                f"Job {job.name} failed: {e}",
                extra={"context": {"job": job.name, "failures": job.failures}},
                exc_info=True,
            )

    async def run_forever(self, poll_seconds: float = 0.5) -> None:
        """Poll for due jobs until close() is called."""
        self._closed = False
        while not self._closed:
            self.run_pending()
            await asyncio.sleep(poll_seconds)

    async def close(self, wait: bool = True) -> None:
        """Stop polling; optionally wait for in-flight runs to finish."""
        self._closed = True
        # Includes runs of jobs cancelled while in flight
        tasks = [t for t in self._tasks if not t.done()]
        if wait and tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
