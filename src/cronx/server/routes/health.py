"""Health and status endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from cronx import __version__

health_router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    scheduler_state: str
    active_jobs: int
    version: str
    uptime_seconds: float


@health_router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    started_at = getattr(request.app.state, "started_at", datetime.now(UTC))
    uptime = (datetime.now(UTC) - started_at).total_seconds()

    service = request.app.state.scheduler_service
    return HealthResponse(
        status="ok" if service.is_running else "degraded",
        scheduler_state=service.state.value,
        active_jobs=len(service.list_active()),
        version=__version__,
        uptime_seconds=round(uptime, 1),
    )
