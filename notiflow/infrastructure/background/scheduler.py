# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic job runner for the pipeline's timers.

Uses APScheduler's AsyncIOScheduler to drive coroutine functions on fixed
intervals: the queue poll, the scheduler tick and the retention purge.
Each job runs with max_instances=1 and coalescing, so a slow run is
never overlapped by the next one and missed runs collapse into one.

Example:
    jobs = JobScheduler()
    jobs.add_interval_job("Queue Poll", processor.process_queue, seconds=30)
    await jobs.start()
    ...
    await jobs.stop()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from notiflow.utils.datetime import utc_now
from notiflow.utils.logging import job_context

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """A periodic job and its run statistics.

    Attributes:
        name: Human-readable job name.
        func: Coroutine function to run.
        seconds: Interval between runs.
        run_immediately: Run once as soon as the scheduler starts.
        id: Unique job identifier.
        enabled: Whether the job runs.
        last_run: Last run timestamp.
        last_result: Value returned by the last successful run.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    func: JobFunc
    seconds: float
    run_immediately: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    last_result: Any = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "interval_seconds": self.seconds,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class JobScheduler:
    """Runs coroutine jobs on fixed intervals.

    Jobs may be registered before or after start(); jobs registered
    earlier are handed to APScheduler when it starts.

    Attributes:
        _scheduler: APScheduler instance while running.
        _jobs: Registered jobs by ID.
        _running: Whether the scheduler is running.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_interval_job(
        self,
        name: str,
        func: JobFunc,
        seconds: float,
        run_immediately: bool = False,
    ) -> ScheduledJob:
        """Register a job that runs every ``seconds``.

        Args:
            name: Job name.
            func: Coroutine function taking no arguments.
            seconds: Interval between runs.
            run_immediately: Run once right away instead of after the
                first interval.

        Returns:
            Created ScheduledJob.

        Raises:
            ValueError: If the interval is not positive.
        """
        if seconds <= 0:
            raise ValueError(f"Interval must be positive, got {seconds}")

        job = ScheduledJob(name=name, func=func, seconds=seconds, run_immediately=run_immediately)
        self._jobs[job.id] = job
        if self._scheduler is not None:
            self._register(job)

        logger.info("Added interval job: %s (every %ss)", name, seconds)
        return job

    def _register(self, job: ScheduledJob) -> None:
        options: dict[str, Any] = {}
        if job.run_immediately:
            # next_run_time=None would add the job paused
            options["next_run_time"] = utc_now()

        self._scheduler.add_job(
            self._execute_job,
            trigger=IntervalTrigger(seconds=job.seconds),
            args=[job.id],
            id=job.id,
            name=job.name,
            max_instances=1,
            coalesce=True,
            **options,
        )

    async def _execute_job(self, job_id: str) -> None:
        """Run one job, counting failures instead of letting them stop the timer."""
        job = self._jobs.get(job_id)
        if not job or not job.enabled:
            return

        logger.debug("Running job: %s", job.name)
        job.last_run = utc_now()
        job.run_count += 1
        with job_context(job.name):
            try:
                job.last_result = await job.func()
            except Exception as e:
                job.error_count += 1
                logger.exception("Job %s failed: %s", job.name, e)

    async def run_job(self, job_id: str) -> None:
        """Run a job once, outside its schedule."""
        await self._execute_job(job_id)

    def remove_job(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        if self._scheduler is not None and self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)
        logger.info("Removed job: %s", job.name)
        return True

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        for job in self._jobs.values():
            self._register(job)
        self._scheduler.start()
        self._running = True

        logger.info("Job scheduler started with %d job(s)", len(self._jobs))

    async def stop(self) -> None:
        """Stop the scheduler; running jobs are not awaited."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Job scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self._running,
            "job_count": len(self._jobs),
            "total_runs": sum(j.run_count for j in self._jobs.values()),
            "total_errors": sum(j.error_count for j in self._jobs.values()),
            "jobs": [j.to_dict() for j in self._jobs.values()],
        }
