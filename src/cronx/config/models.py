"""Pydantic models for configuration sub-sections."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from cronx.config.constants import (
    DEFAULT_HANDLE_GRACE_SECONDS,
    DEFAULT_HOST,
    DEFAULT_MAX_BODY_CHARS,
    DEFAULT_PORT,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    DEFAULT_TIMEZONE,
    DEFAULT_UNSCHEDULE_GRACE_SECONDS,
)


class SchedulerConfig(BaseModel):
    """Timer, shutdown and response-capture settings for the engine."""

    default_timezone: str = DEFAULT_TIMEZONE
    shutdown_timeout_seconds: float = Field(default=DEFAULT_SHUTDOWN_TIMEOUT_SECONDS, gt=0)
    handle_grace_seconds: float = Field(default=DEFAULT_HANDLE_GRACE_SECONDS, ge=0)
    unschedule_grace_seconds: float = Field(default=DEFAULT_UNSCHEDULE_GRACE_SECONDS, ge=0)
    max_body_chars: int = Field(default=DEFAULT_MAX_BODY_CHARS, ge=0)
    max_instances: int = Field(default=1, ge=1)  # concurrent timer fires per job
    misfire_grace_seconds: int = Field(default=30, ge=1)

    @model_validator(mode="after")
    def validate_grace(self) -> "SchedulerConfig":
        if self.handle_grace_seconds >= self.shutdown_timeout_seconds:
            raise ValueError(
                f"handle_grace_seconds ({self.handle_grace_seconds}) must be less than "
                f"shutdown_timeout_seconds ({self.shutdown_timeout_seconds})"
            )
        return self


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
