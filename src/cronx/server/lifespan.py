"""Application lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

logger = logging.getLogger("cronx.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown hooks for cronx."""
    settings = app.state.settings

    # --- Startup ---
    logger.info(
        "cronx server starting: host=%s, port=%d, data=%s",
        settings.server.host,
        settings.server.port,
        settings.data_path,
    )

    scheduler_service = getattr(app.state, "scheduler_service", None)
    if scheduler_service is not None:
        await scheduler_service.start()

    app.state.started_at = datetime.now(UTC)

    yield

    # --- Shutdown ---
    if scheduler_service is not None:
        await scheduler_service.shutdown()

    logger.info("cronx server shutting down.")
