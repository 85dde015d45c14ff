"""FastAPI application factory hosting the scheduler service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI

from cronx import __version__
from cronx.scheduler.executor import HttpExecutor
from cronx.scheduler.service import SchedulerService
from cronx.scheduler.store import JsonStore
from cronx.server.lifespan import lifespan
from cronx.server.routes.health import health_router
from cronx.server.routes.scheduler import scheduler_router
from cronx.server.routes.templates import templates_router

if TYPE_CHECKING:
    from cronx.config.settings import Settings

logger = logging.getLogger("cronx.server")


def create_app(
    settings: Settings,
    store: JsonStore | None = None,
    scheduler_service: SchedulerService | None = None,
    http_executor: HttpExecutor | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    1. Creates the store, HTTP executor and scheduler service (or uses the ones given)
    2. Stores them on app.state for routes and the lifespan
    3. Registers the health, scheduler and template routes
    """
    app = FastAPI(
        title="cronx",
        version=__version__,
        description="Scheduled HTTP requests with retries and an execution log",
        lifespan=lifespan,
    )

    store = store or JsonStore(settings.data_path)
    http_executor = http_executor or HttpExecutor(
        max_body_chars=settings.scheduler.max_body_chars
    )
    if scheduler_service is None:
        scheduler_service = SchedulerService(
            store, config=settings.scheduler, executor=http_executor
        )

    app.state.settings = settings
    app.state.store = store
    app.state.scheduler_service = scheduler_service
    app.state.http_executor = http_executor

    app.include_router(health_router)
    app.include_router(scheduler_router)
    app.include_router(templates_router)

    logger.debug("Application created (data dir: %s)", settings.data_path)
    return app
