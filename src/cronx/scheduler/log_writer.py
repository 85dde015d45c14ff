"""Execution log writer: one immutable audit row per logical execution."""

from __future__ import annotations

import logging
from datetime import datetime

from cronx.scheduler.models import ExecutionLogEntry, ExecutionResult, ExecutionStatus
from cronx.scheduler.store import ExecutionStore

logger = logging.getLogger("cronx.scheduler.log_writer")


def status_for(result: ExecutionResult) -> ExecutionStatus:
    if result.success:
        return ExecutionStatus.SUCCESS
    if result.timed_out:
        return ExecutionStatus.TIMEOUT
    return ExecutionStatus.FAILURE


class ExecutionLogWriter:
    """Turns final ``ExecutionResult``s into log rows and appends them.

    Write failures are logged and dropped; there is no retry queue.
    """

    def __init__(self, store: ExecutionStore) -> None:
        self._store = store

    def build_entry(
        self,
        job_id: str,
        result: ExecutionResult,
        started_at: datetime,
        retry_attempt: int = 0,
    ) -> ExecutionLogEntry:
        return ExecutionLogEntry(
            job_id=job_id,
            executed_at=started_at,
            status=status_for(result),
            response_status=result.status_code,
            response_body=result.body,
            response_headers=result.headers or None,
            duration_ms=max(0, result.duration_ms),
            error_message=result.error,
            retry_attempt=retry_attempt,
        )

    def record(
        self,
        job_id: str,
        result: ExecutionResult,
        started_at: datetime,
        retry_attempt: int = 0,
    ) -> ExecutionLogEntry | None:
        """Append a row for *result*; returns it, or None if the write failed."""
        try:
            entry = self.build_entry(job_id, result, started_at, retry_attempt)
            self._store.append_execution_log(entry)
        except Exception:
            logger.exception("Failed to write execution log for job %s", job_id)
            return None
        return entry
