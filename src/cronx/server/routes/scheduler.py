"""Scheduler endpoints: job management, manual runs, logs and statistics.

Every change to a job is persisted first and then applied to the running
engine, so an edit takes effect without a restart.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from cronx.config.constants import MAX_RETRY_ATTEMPTS, MAX_TIMEOUT_SECONDS, MIN_TIMEOUT_SECONDS
from cronx.scheduler.exceptions import InvalidExpression, ShutdownInProgress
from cronx.scheduler.models import ExecutionLogEntry, ExecutionResult, Job
from cronx.scheduler.recurrence import resolve_timezone, validate_expression

logger = logging.getLogger("cronx.server.scheduler")

scheduler_router = APIRouter(prefix="/scheduler", tags=["Scheduler"])

PERIODS = {"1d": timedelta(days=1), "7d": timedelta(days=7), "30d": timedelta(days=30)}


class ActiveJobResponse(BaseModel):
    job_id: str
    name: str
    is_scheduled: bool
    next_execution: datetime | None = None


class ExecutionResponse(BaseModel):
    success: bool
    status_code: int | None = None
    status_text: str | None = None
    body: str | None = None
    headers: dict[str, str] = {}
    duration_ms: int
    error: str | None = None
    attempts: int

    @classmethod
    def from_result(cls, result: ExecutionResult) -> ExecutionResponse:
        return cls(
            success=result.success,
            status_code=result.status_code,
            status_text=result.status_text,
            body=result.body,
            headers=result.headers,
            duration_ms=result.duration_ms,
            error=result.error,
            attempts=result.attempts,
        )


class JobCreateRequest(BaseModel):
    name: str
    description: str | None = None
    cron_expression: str
    timezone: str | None = None  # falls back to scheduler.default_timezone
    template_id: str
    enabled: bool = True
    retry_attempts: int = Field(default=3, ge=0, le=MAX_RETRY_ATTEMPTS)
    timeout_seconds: int = Field(default=30, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)


class JobUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    cron_expression: str | None = None
    timezone: str | None = None
    template_id: str | None = None
    enabled: bool | None = None
    retry_attempts: int | None = Field(default=None, ge=0, le=MAX_RETRY_ATTEMPTS)
    timeout_seconds: int | None = Field(
        default=None, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS
    )


class ToggleRequest(BaseModel):
    enabled: bool | None = None  # omitted: flip the current state


class SummaryResponse(BaseModel):
    period: str
    since: datetime | None = None
    total_jobs: int
    enabled_jobs: int
    total_executions: int
    success_count: int
    failure_count: int
    timeout_count: int
    success_rate: float
    average_duration_ms: int
    last_execution: datetime | None = None


# -- Helpers -------------------------------------------------------------------


def _load_job(request: Request, job_id: str) -> Job:
    job = request.app.state.store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return job


def _check_definition(request: Request, job: Job) -> None:
    """Reject a bad schedule or a missing template before anything is saved."""
    try:
        validate_expression(job.cron_expression)
        resolve_timezone(job.timezone)
    except InvalidExpression as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if request.app.state.store.get_template(job.template_id) is None:
        raise HTTPException(
            status_code=404, detail=f"Template '{job.template_id}' not found"
        )


async def _apply(request: Request, job: Job) -> Job:
    """Push a persisted job definition to the running engine."""
    store = request.app.state.store
    try:
        await request.app.state.scheduler_service.update_job(job)
    except ShutdownInProgress as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    if not job.enabled:
        store.set_next_execution(job.id, None)
    return store.get_job(job.id)


# -- Jobs ----------------------------------------------------------------------


@scheduler_router.get("/jobs", response_model=list[ActiveJobResponse])
async def list_active_jobs(request: Request) -> list[ActiveJobResponse]:
    service = request.app.state.scheduler_service
    return [
        ActiveJobResponse(
            job_id=a.job_id,
            name=a.name,
            is_scheduled=a.is_scheduled,
            next_execution=a.next_execution,
        )
        for a in service.list_active()
    ]


@scheduler_router.post("/jobs", response_model=Job, status_code=201)
async def create_job(body: JobCreateRequest, request: Request) -> Job:
    """Save a new job and register it if enabled."""
    settings = request.app.state.settings
    job = Job(
        **body.model_dump(exclude={"timezone"}),
        timezone=body.timezone or settings.scheduler.default_timezone,
    )
    _check_definition(request, job)

    request.app.state.store.add_job(job)
    logger.info("Job %s (%s) created via API", job.id, job.name)
    return await _apply(request, job)


@scheduler_router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, request: Request) -> Job:
    return _load_job(request, job_id)


@scheduler_router.put("/jobs/{job_id}", response_model=Job)
async def update_job(job_id: str, body: JobUpdateRequest, request: Request) -> Job:
    """Edit a job; enabled jobs are rescheduled, disabled ones stop firing."""
    current = _load_job(request, job_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    job = current.model_copy(update=changes)
    _check_definition(request, job)

    job = request.app.state.store.update_job(job)
    logger.info("Job %s updated via API: %s", job_id, ", ".join(sorted(changes)) or "no changes")
    return await _apply(request, job)


@scheduler_router.patch("/jobs/{job_id}/toggle", response_model=Job)
async def toggle_job(
    job_id: str, request: Request, body: ToggleRequest | None = None
) -> Job:
    """Enable or disable a job; without a body the current state is flipped."""
    current = _load_job(request, job_id)
    enabled = body.enabled if body is not None and body.enabled is not None else not current.enabled
    if enabled:
        _check_definition(request, current)

    job = request.app.state.store.update_job(current.model_copy(update={"enabled": enabled}))
    logger.info("Job %s %s via API", job_id, "enabled" if enabled else "disabled")
    return await _apply(request, job)


@scheduler_router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(job_id: str, request: Request) -> Response:
    """Stop a job's timer and delete it."""
    _load_job(request, job_id)
    await request.app.state.scheduler_service.unschedule_job(job_id)
    request.app.state.store.remove_job(job_id)
    logger.info("Job %s deleted via API", job_id)
    return Response(status_code=204)


@scheduler_router.post("/jobs/{job_id}/run", response_model=ExecutionResponse)
async def run_job_now(job_id: str, request: Request) -> ExecutionResponse:
    """Execute a job immediately and return its result."""
    job = _load_job(request, job_id)

    logger.info("Manual run requested for job %s (%s)", job.id, job.name)
    result = await request.app.state.scheduler_service.execute_job(job)
    return ExecutionResponse.from_result(result)


# -- Logs and statistics -------------------------------------------------------


@scheduler_router.get("/logs", response_model=list[ExecutionLogEntry])
async def list_logs(
    request: Request,
    job_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=1000),
) -> list[ExecutionLogEntry]:
    """Most recent executions, across all jobs unless *job_id* is given."""
    return request.app.state.store.list_execution_logs(job_id, limit=limit)


@scheduler_router.get("/stats", response_model=SummaryResponse)
async def execution_summary(
    request: Request,
    period: Literal["1d", "7d", "30d", "all"] = "7d",
) -> SummaryResponse:
    since = datetime.now(UTC) - PERIODS[period] if period in PERIODS else None
    summary = request.app.state.store.execution_summary(since)
    return SummaryResponse(period=period, **summary)


@scheduler_router.get("/jobs/{job_id}/stats")
async def job_stats(job_id: str, request: Request) -> dict:
    _load_job(request, job_id)
    return request.app.state.store.execution_stats(job_id)
