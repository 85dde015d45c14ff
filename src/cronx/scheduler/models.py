"""Pydantic models for jobs, HTTP templates, and execution records."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cronx.config.constants import (
    DEFAULT_TIMEZONE,
    HTTP_METHODS,
    MAX_RETRY_ATTEMPTS,
    MAX_TIMEOUT_SECONDS,
    MIN_TIMEOUT_SECONDS,
)


def _generate_id() -> str:
    return secrets.token_hex(6)


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class NoAuth(BaseModel):
    type: Literal["none"] = "none"


class BearerAuth(BaseModel):
    type: Literal["bearer"] = "bearer"
    token: str


class BasicAuth(BaseModel):
    type: Literal["basic"] = "basic"
    username: str
    password: str = ""


class ApiKeyAuth(BaseModel):
    type: Literal["api_key"] = "api_key"
    location: Literal["header", "query"] = "header"
    key: str
    value: str


AuthConfig = Annotated[
    NoAuth | BearerAuth | BasicAuth | ApiKeyAuth,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Templates and jobs
# ---------------------------------------------------------------------------

class HttpTemplate(BaseModel):
    """A reusable HTTP request definition shared by any number of jobs."""

    id: str = Field(default_factory=_generate_id)
    name: str
    description: str | None = None
    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    auth: AuthConfig = Field(default_factory=NoAuth)
    timeout_seconds: int = Field(default=30, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)
    follow_redirects: bool = True
    validate_ssl: bool = True
    expected_status_codes: list[int] = Field(default_factory=lambda: [200])
    response_validation: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("method")
    @classmethod
    def validate_method(cls, value: str) -> str:
        method = value.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"method must be one of {', '.join(HTTP_METHODS)}, got {value!r}")
        return method


class Job(BaseModel):
    """A CRON schedule bound to one HTTP template, plus its run statistics."""

    id: str = Field(default_factory=_generate_id)
    name: str
    description: str | None = None
    cron_expression: str  # 5-field cron (e.g. "*/30 * * * *")
    timezone: str = DEFAULT_TIMEZONE
    template_id: str
    enabled: bool = True
    retry_attempts: int = Field(default=3, ge=0, le=MAX_RETRY_ATTEMPTS)
    # Recorded only; requests use the template timeout.
    timeout_seconds: int = Field(default=30, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_execution: datetime | None = None
    next_execution: datetime | None = None

    @property
    def success_rate(self) -> float:
        """Percentage of successful executions, rounded to two decimals."""
        if self.execution_count == 0:
            return 0.0
        return round(self.success_count / self.execution_count * 100, 2)


# ---------------------------------------------------------------------------
# Execution records
# ---------------------------------------------------------------------------

class ExecutionStatus(StrEnum):
    """Outcome recorded in the execution log."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


class ExecutionLogEntry(BaseModel):
    """One immutable audit row per logical job execution."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_generate_id)
    job_id: str
    executed_at: datetime
    status: ExecutionStatus
    response_status: int | None = None
    response_body: str | None = None
    response_headers: dict[str, str] | None = None
    duration_ms: int = Field(ge=0)
    error_message: str | None = None
    retry_attempt: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_now)


@dataclass
class ExecutionResult:
    """Final outcome of running a template, after retries."""

    success: bool
    duration_ms: int = 0
    status_code: int | None = None
    status_text: str | None = None
    body: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    attempts: int = 0
    timed_out: bool = False

    @classmethod
    def failed(cls, error: str, duration_ms: int = 0) -> ExecutionResult:
        """A failure that never reached the network."""
        return cls(success=False, duration_ms=duration_ms, error=error)


@dataclass
class ActiveJob:
    """Snapshot of one registered schedule."""

    job_id: str
    name: str
    is_scheduled: bool
    next_execution: datetime | None = None
