"""Scheduler service: fires due jobs, runs their HTTP templates, records results.

One ``SchedulerService`` is built at process start and handed to whatever
hosts it (the API lifespan, the CLI). It owns the APScheduler instance, the
job registry, and the shutdown token shared by every timer callback.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler

from cronx.config.models import SchedulerConfig
from cronx.scheduler.exceptions import InvalidExpression, ShutdownInProgress
from cronx.scheduler.executor import HttpExecutor
from cronx.scheduler.log_writer import ExecutionLogWriter
from cronx.scheduler.models import ActiveJob, ExecutionResult, Job
from cronx.scheduler.recurrence import next_fire_time, resolve_timezone, validate_expression
from cronx.scheduler.registry import JobRegistry, ScheduledHandle
from cronx.scheduler.store import ExecutionStore

logger = logging.getLogger("cronx.scheduler.service")

SHUTTING_DOWN_ERROR = "Service shutting down"
TEMPLATE_NOT_FOUND_ERROR = "HTTP template not found"


class ServiceState(StrEnum):
    """Process-wide lifecycle of the scheduler."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ShutdownToken:
    """Cancellation flag passed explicitly to every scheduled callback."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SchedulerService:
    """Orchestrates recurrence, HTTP execution, statistics and the audit log."""

    def __init__(
        self,
        store: ExecutionStore,
        config: SchedulerConfig | None = None,
        executor: HttpExecutor | None = None,
        scheduler: BaseScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._store = store
        self._executor = executor or HttpExecutor(max_body_chars=self._config.max_body_chars)
        self._scheduler = scheduler or AsyncIOScheduler(timezone=UTC)
        self._registry = JobRegistry(
            self._scheduler,
            max_instances=self._config.max_instances,
            misfire_grace_seconds=self._config.misfire_grace_seconds,
        )
        self._log_writer = ExecutionLogWriter(store)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._token = ShutdownToken()
        self._state = ServiceState.INITIALIZING
        self._in_flight: set[asyncio.Task] = set()

    # -- Properties ------------------------------------------------------------

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def _accepting(self) -> bool:
        return not self._token.cancelled and self._state in (
            ServiceState.INITIALIZING,
            ServiceState.RUNNING,
        )

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Register every enabled job, then start the timers."""
        if self._state == ServiceState.RUNNING:
            logger.warning("Scheduler service already running")
            return
        if not self._accepting:
            raise ShutdownInProgress("start")

        try:
            jobs = self._store.list_enabled_jobs()
        except Exception:
            logger.exception("Failed to load enabled jobs; starting with none")
            jobs = []

        registered = 0
        for job in jobs:
            if self._token.cancelled:
                break
            try:
                self._install(job)
                registered += 1
            except InvalidExpression as exc:
                logger.error("Skipping job %s (%s): %s", job.id, job.name, exc)
            except Exception:
                logger.exception("Failed to register job %s (%s)", job.id, job.name)

        self._scheduler.start()
        self._state = ServiceState.RUNNING
        logger.info("Scheduler started with %d of %d enabled jobs", registered, len(jobs))

    async def shutdown(self) -> None:
        """Stop every timer, wait (bounded) for in-flight runs, then stop."""
        if self._state in (ServiceState.SHUTTING_DOWN, ServiceState.STOPPED):
            return

        logger.info("Shutting down scheduler service...")
        self._state = ServiceState.SHUTTING_DOWN
        self._token.cancel()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.shutdown_timeout_seconds

        handles = self._registry.handles()
        if handles:
            stops = [asyncio.ensure_future(self._stop_handle(h)) for h in handles]
            _, pending = await asyncio.wait(stops, timeout=self._config.shutdown_timeout_seconds)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("%d jobs did not stop gracefully; forcing", len(pending))

        current = asyncio.current_task()
        in_flight = {t for t in self._in_flight if t is not current and not t.done()}
        if in_flight:
            remaining = max(0.0, deadline - loop.time())
            _, still_running = await asyncio.wait(in_flight, timeout=remaining)
            if still_running:
                logger.warning(
                    "%d executions still running at shutdown timeout", len(still_running)
                )

        forced = self._registry.clear()
        if forced:
            logger.warning("Force-cleared %d remaining handles", forced)

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        self._state = ServiceState.STOPPED
        logger.info("Scheduler service shut down. Stopped %d jobs.", len(handles))

    async def _stop_handle(self, handle: ScheduledHandle) -> None:
        try:
            handle.stop()
        except Exception:
            logger.exception("Error stopping job %s", handle.job.id)
        await asyncio.sleep(self._config.handle_grace_seconds)
        self._registry.unregister(handle.job.id)
        logger.debug("Stopped job %s: %s", handle.job.id, handle.job.name)

    # -- Job management --------------------------------------------------------

    async def schedule_job(self, job: Job) -> None:
        """Validate and (re)register *job*, then persist its next fire time."""
        if not self._accepting:
            logger.warning("Cannot schedule job %s during shutdown", job.id)
            raise ShutdownInProgress("schedule job")

        validate_expression(job.cron_expression)
        resolve_timezone(job.timezone)
        self._install(job)

    def _install(self, job: Job) -> None:
        self._registry.register(job, self._on_fire, args=(job.id, self._token))
        self._refresh_next_execution(job)
        logger.info(
            "CRON job scheduled: %s (%s) %s [%s]",
            job.id,
            job.name,
            job.cron_expression,
            job.timezone,
        )

    async def unschedule_job(self, job_id: str) -> None:
        """Stop a job's timer. Missing IDs are ignored."""
        handle = self._registry.get(job_id)
        if not self._registry.unregister(job_id):
            return

        await asyncio.sleep(self._config.unschedule_grace_seconds)
        try:
            self._store.set_next_execution(job_id, None)
        except Exception:
            logger.exception("Failed to clear next execution for job %s", job_id)
        logger.info("CRON job unscheduled: %s (%s)", job_id, handle.job.name if handle else "")

    async def update_job(self, job: Job) -> None:
        """Apply an edited job: enabled jobs are rescheduled, others unscheduled."""
        if job.enabled:
            await self.schedule_job(job)
        else:
            await self.unschedule_job(job.id)

    def list_active(self) -> list[ActiveJob]:
        return self._registry.list_active()

    def get_job_status(self, job_id: str) -> ActiveJob | None:
        for active in self._registry.list_active():
            if active.job_id == job_id:
                return active
        return None

    # -- Execution -------------------------------------------------------------

    async def _on_fire(self, job_id: str, token: ShutdownToken) -> None:
        """Timer callback. The token is checked before anything else."""
        if token.cancelled:
            logger.info("Skipping job %s: service shutting down", job_id)
            return

        handle = self._registry.get(job_id)
        if handle is None:
            logger.warning("Timer fired for unregistered job %s", job_id)
            return

        await self.execute_job(handle.job)

    async def execute_job(self, job: Job) -> ExecutionResult:
        """Run *job* once and record the outcome.

        Used both by timers and by manual "run now" requests. Always returns
        a result; only runs that begin before shutdown are persisted.
        """
        if not self._accepting:
            logger.info("Skipping job %s execution during shutdown", job.id)
            return ExecutionResult.failed(SHUTTING_DOWN_ERROR)

        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)

        started_at = self._clock()
        try:
            result = await self._run(job)
        finally:
            if task is not None:
                self._in_flight.discard(task)

        self._record(job, result, started_at)
        logger.info(
            "Job %s (%s) finished: success=%s status=%s attempts=%d duration=%dms",
            job.id,
            job.name,
            result.success,
            result.status_code,
            result.attempts,
            result.duration_ms,
        )
        return result

    async def _run(self, job: Job) -> ExecutionResult:
        try:
            template = self._store.get_template(job.template_id)
        except Exception as exc:
            logger.exception("Failed to load template %s for job %s", job.template_id, job.id)
            return ExecutionResult.failed(f"Failed to load HTTP template: {exc}")

        if template is None:
            logger.warning("Template %s for job %s not found", job.template_id, job.id)
            return ExecutionResult.failed(TEMPLATE_NOT_FOUND_ERROR)

        return await self._executor.execute(template, job.retry_attempts)

    def _record(self, job: Job, result: ExecutionResult, started_at: datetime) -> None:
        """Persist stats, next fire time and the log row. Never raises."""
        finished_at = self._clock()
        try:
            self._store.increment_job_stats(job.id, success=result.success, at=finished_at)
        except Exception:
            logger.exception("Failed to update execution stats for job %s", job.id)

        if job.id in self._registry:
            self._refresh_next_execution(job, finished_at)

        self._log_writer.record(job.id, result, started_at, retry_attempt=0)

    def _refresh_next_execution(self, job: Job, after: datetime | None = None) -> None:
        try:
            upcoming = next_fire_time(job.cron_expression, job.timezone, after or self._clock())
        except InvalidExpression as exc:
            logger.warning("No next execution for job %s: %s", job.id, exc)
            upcoming = None

        self._registry.set_next_execution(job.id, upcoming)
        try:
            self._store.set_next_execution(job.id, upcoming)
        except Exception:
            logger.exception("Failed to update next execution for job %s", job.id)
