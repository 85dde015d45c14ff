"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cronx.config.models import SchedulerConfig
from cronx.config.settings import Settings
from cronx.scheduler.executor import HttpExecutor
from cronx.scheduler.models import ExecutionResult, HttpTemplate, Job
from cronx.scheduler.store import JsonStore


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway data directory."""
    return Settings(
        data_dir=str(tmp_path / "data"),
        scheduler=SchedulerConfig(
            shutdown_timeout_seconds=1.0,
            handle_grace_seconds=0.01,
            unschedule_grace_seconds=0.0,
        ),
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonStore:
    return JsonStore(tmp_path / "data")


@pytest.fixture
def template(store: JsonStore) -> HttpTemplate:
    tpl = HttpTemplate(
        id="tpl000000001",
        name="Ping",
        url="https://example.test/ping",
        expected_status_codes=[200],
    )
    store.add_template(tpl)
    return tpl


@pytest.fixture
def job(store: JsonStore, template: HttpTemplate) -> Job:
    j = Job(
        id="job000000001",
        name="Ping every minute",
        cron_expression="* * * * *",
        template_id=template.id,
        retry_attempts=2,
    )
    store.add_job(j)
    return j


@pytest.fixture
def ok_result() -> ExecutionResult:
    return ExecutionResult(
        success=True,
        status_code=200,
        status_text="OK",
        body="pong",
        headers={"content-type": "text/plain"},
        duration_ms=12,
        attempts=1,
    )


@pytest.fixture
def mock_executor(ok_result: ExecutionResult):
    executor = MagicMock(spec=HttpExecutor)
    executor.execute = AsyncMock(return_value=ok_result)
    return executor


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
