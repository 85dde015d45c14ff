"""Job registry: live APScheduler handles keyed by job ID."""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from apscheduler.job import Job as SchedulerJob
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from cronx.scheduler.models import ActiveJob, Job
from cronx.scheduler.recurrence import CronExpressionTrigger

logger = logging.getLogger("cronx.scheduler.registry")


@dataclass
class ScheduledHandle:
    """A job definition and the timer that fires it."""

    job: Job
    timer: SchedulerJob

    @property
    def next_run_time(self) -> datetime | None:
        # Pending timers (scheduler not started yet) have no next_run_time.
        return getattr(self.timer, "next_run_time", None) or self.job.next_execution

    def stop(self) -> None:
        with contextlib.suppress(JobLookupError):
            self.timer.remove()


class JobRegistry:
    """At most one live timer per job ID.

    All map mutations go through one lock; API calls and the shutdown path
    may register or drop handles at the same time.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        max_instances: int = 1,
        misfire_grace_seconds: int = 30,
    ) -> None:
        self._scheduler = scheduler
        self._max_instances = max_instances
        self._misfire_grace_seconds = misfire_grace_seconds
        self._handles: dict[str, ScheduledHandle] = {}
        self._lock = threading.RLock()

    def register(
        self,
        job: Job,
        callback: Callable[..., Any],
        args: Sequence[Any] = (),
    ) -> ScheduledHandle:
        """Install a timer for *job*, tearing down any existing one first.

        Raises ``InvalidExpression`` before touching the registry if the
        job's schedule is invalid.
        """
        trigger = CronExpressionTrigger(job.cron_expression, job.timezone)

        with self._lock:
            self._drop(job.id)
            timer = self._scheduler.add_job(
                callback,
                trigger=trigger,
                args=list(args),
                id=job.id,
                name=job.name,
                replace_existing=True,
                max_instances=self._max_instances,
                misfire_grace_time=self._misfire_grace_seconds,
                coalesce=True,
            )
            handle = ScheduledHandle(job=job.model_copy(deep=True), timer=timer)
            self._handles[job.id] = handle

        logger.debug("Registered timer for job %s (%s)", job.id, job.cron_expression)
        return handle

    def replace(
        self,
        job: Job,
        callback: Callable[..., Any],
        args: Sequence[Any] = (),
    ) -> ScheduledHandle:
        """Unregister then register; same result as ``register``."""
        return self.register(job, callback, args)

    def unregister(self, job_id: str) -> bool:
        """Stop and forget a job's timer. Returns True if one existed."""
        with self._lock:
            return self._drop(job_id) is not None

    def _drop(self, job_id: str) -> ScheduledHandle | None:
        handle = self._handles.pop(job_id, None)
        if handle is not None:
            handle.stop()
        # Cover timers added to the scheduler outside the registry.
        with contextlib.suppress(JobLookupError):
            self._scheduler.remove_job(job_id)
        return handle

    def get(self, job_id: str) -> ScheduledHandle | None:
        with self._lock:
            return self._handles.get(job_id)

    def handles(self) -> list[ScheduledHandle]:
        with self._lock:
            return list(self._handles.values())

    def set_next_execution(self, job_id: str, timestamp: datetime | None) -> None:
        """Refresh the cached next fire time shown by ``list_active``."""
        with self._lock:
            handle = self._handles.get(job_id)
            if handle is not None:
                handle.job.next_execution = timestamp

    def list_active(self) -> list[ActiveJob]:
        with self._lock:
            return [
                ActiveJob(
                    job_id=job_id,
                    name=handle.job.name,
                    is_scheduled=True,
                    next_execution=handle.next_run_time,
                )
                for job_id, handle in self._handles.items()
            ]

    def clear(self) -> int:
        """Forget every handle without stopping timers. Returns how many."""
        with self._lock:
            count = len(self._handles)
            self._handles.clear()
            return count

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
