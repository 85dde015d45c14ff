"""Persistence for jobs, templates, and the execution log.

The engine only talks to the narrow ``ExecutionStore`` protocol. ``JsonStore``
is the bundled implementation: JSON files with atomic writes (write to .tmp,
then replace) plus an append-only JSON-lines execution log.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from cronx.config.constants import (
    DATA_DIR,
    EXECUTION_LOG_FILENAME,
    JOBS_FILENAME,
    TEMPLATES_FILENAME,
)
from cronx.scheduler.models import (
    ExecutionLogEntry,
    ExecutionStatus,
    HttpTemplate,
    Job,
)

logger = logging.getLogger("cronx.scheduler.store")

# Fields owned by the engine; edits made through update_job() never touch them.
_STAT_FIELDS = (
    "execution_count",
    "success_count",
    "failure_count",
    "last_execution",
    "next_execution",
)


class ExecutionStore(Protocol):
    """What the scheduler needs from persistence."""

    def get_template(self, template_id: str) -> HttpTemplate | None: ...

    def increment_job_stats(
        self, job_id: str, *, success: bool, at: datetime | None = None
    ) -> None: ...

    def set_next_execution(self, job_id: str, timestamp: datetime | None) -> None: ...

    def append_execution_log(self, entry: ExecutionLogEntry) -> None: ...

    def list_enabled_jobs(self) -> list[Job]: ...


def _file_stamp(path: Path) -> tuple[int, int, int] | None:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return stat.st_ino, stat.st_mtime_ns, stat.st_size


class JsonStore:
    """File-backed store; every mutation is serialized by one re-entrant lock.

    Counter updates happen inside the lock on the stored record, so concurrent
    executions of the same job never lose increments.

    The server and the CLI may hold separate stores on the same directory.
    Before every read or mutation the store re-reads a file whose inode,
    mtime or size changed since it last read or wrote it, so a write never
    replays a stale copy of records another process changed.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self._dir = data_dir or DATA_DIR
        self._jobs_path = self._dir / JOBS_FILENAME
        self._templates_path = self._dir / TEMPLATES_FILENAME
        self._log_path = self._dir / EXECUTION_LOG_FILENAME
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._templates: dict[str, HttpTemplate] = {}
        self._jobs_stamp: tuple[int, int, int] | None = None
        self._templates_stamp: tuple[int, int, int] | None = None
        self.load()

    # -- Persistence -----------------------------------------------------------

    def load(self) -> None:
        """Load jobs and templates from disk. Silently starts empty if missing."""
        with self._lock:
            self._jobs_stamp = _file_stamp(self._jobs_path)
            self._templates_stamp = _file_stamp(self._templates_path)
            self._jobs = {j.id: j for j in self._read_models(self._jobs_path, Job) or []}
            self._templates = {
                t.id: t for t in self._read_models(self._templates_path, HttpTemplate) or []
            }
            logger.debug(
                "Loaded %d jobs and %d templates from %s",
                len(self._jobs),
                len(self._templates),
                self._dir,
            )

    def _read_models(self, path: Path, model: type) -> list | None:
        """Parse a JSON list of models; None if the file exists but is unreadable."""
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return [model.model_validate(raw) for raw in data]
        except (json.JSONDecodeError, ValidationError, OSError) as exc:
            logger.warning("Failed to load %s: %s", path, exc)
            return None

    def _write_models(self, path: Path, items: list) -> tuple[int, int, int] | None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        data = [item.model_dump(mode="json") for item in items]
        tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        tmp.replace(path)
        return _file_stamp(path)

    def _sync_jobs(self) -> None:
        stamp = _file_stamp(self._jobs_path)
        if stamp == self._jobs_stamp:
            return
        jobs = self._read_models(self._jobs_path, Job)
        # An unreadable file keeps the last good copy.
        if jobs is not None:
            self._jobs = {j.id: j for j in jobs}
            logger.debug("Reloaded %d jobs changed on disk", len(self._jobs))
        self._jobs_stamp = stamp

    def _sync_templates(self) -> None:
        stamp = _file_stamp(self._templates_path)
        if stamp == self._templates_stamp:
            return
        templates = self._read_models(self._templates_path, HttpTemplate)
        if templates is not None:
            self._templates = {t.id: t for t in templates}
        self._templates_stamp = stamp

    def _save_jobs(self) -> None:
        self._jobs_stamp = self._write_models(self._jobs_path, list(self._jobs.values()))

    def _save_templates(self) -> None:
        self._templates_stamp = self._write_models(
            self._templates_path, list(self._templates.values())
        )

    # -- Engine interface ------------------------------------------------------

    def get_template(self, template_id: str) -> HttpTemplate | None:
        """Return a fresh copy of a template, or None if it does not exist."""
        with self._lock:
            self._sync_templates()
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def increment_job_stats(
        self, job_id: str, *, success: bool, at: datetime | None = None
    ) -> None:
        """Count one execution and set ``last_execution`` in a single step."""
        with self._lock:
            self._sync_jobs()
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning("Cannot record stats for unknown job %s", job_id)
                return
            job.execution_count += 1
            if success:
                job.success_count += 1
            else:
                job.failure_count += 1
            job.last_execution = at or datetime.now(UTC)
            job.updated_at = datetime.now(UTC)
            self._save_jobs()

    def set_next_execution(self, job_id: str, timestamp: datetime | None) -> None:
        with self._lock:
            self._sync_jobs()
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning("Cannot set next execution for unknown job %s", job_id)
                return
            job.next_execution = timestamp
            self._save_jobs()

    def append_execution_log(self, entry: ExecutionLogEntry) -> None:
        """Append one row to the JSON-lines log. Rows are never rewritten."""
        line = json.dumps(entry.model_dump(mode="json"), default=str)
        with self._lock:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def list_enabled_jobs(self) -> list[Job]:
        with self._lock:
            self._sync_jobs()
            return [j.model_copy(deep=True) for j in self._jobs.values() if j.enabled]

    # -- Jobs CRUD -------------------------------------------------------------

    def add_job(self, job: Job) -> Job:
        """Add a job and persist."""
        with self._lock:
            self._sync_jobs()
            self._jobs[job.id] = job.model_copy(deep=True)
            self._save_jobs()
        return job

    def get_job(self, job_id: str) -> Job | None:
        """Retrieve a copy of a job by ID."""
        with self._lock:
            self._sync_jobs()
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def update_job(self, job: Job) -> Job:
        """Persist edits to a job's definition, keeping the stored statistics."""
        with self._lock:
            self._sync_jobs()
            current = self._jobs.get(job.id)
            updated = job.model_copy(deep=True)
            if current is not None:
                for name in _STAT_FIELDS:
                    setattr(updated, name, getattr(current, name))
            updated.updated_at = datetime.now(UTC)
            self._jobs[job.id] = updated
            self._save_jobs()
            return updated.model_copy(deep=True)

    def remove_job(self, job_id: str) -> bool:
        """Remove a job by ID. Returns True if it existed."""
        with self._lock:
            self._sync_jobs()
            if job_id not in self._jobs:
                return False
            del self._jobs[job_id]
            self._save_jobs()
            return True

    def all_jobs(self) -> list[Job]:
        with self._lock:
            self._sync_jobs()
            return [j.model_copy(deep=True) for j in self._jobs.values()]

    # -- Templates CRUD --------------------------------------------------------

    def add_template(self, template: HttpTemplate) -> HttpTemplate:
        with self._lock:
            self._sync_templates()
            self._templates[template.id] = template.model_copy(deep=True)
            self._save_templates()
        return template

    def remove_template(self, template_id: str) -> bool:
        """Remove a template. Jobs that reference it fail at their next run."""
        with self._lock:
            self._sync_templates()
            if template_id not in self._templates:
                return False
            del self._templates[template_id]
            self._save_templates()
            return True

    def all_templates(self) -> list[HttpTemplate]:
        with self._lock:
            self._sync_templates()
            return [t.model_copy(deep=True) for t in self._templates.values()]

    # -- Execution log queries -------------------------------------------------

    def list_execution_logs(
        self, job_id: str | None = None, limit: int | None = 50
    ) -> list[ExecutionLogEntry]:
        """Return log rows newest-first, optionally for a single job."""
        entries: list[ExecutionLogEntry] = []
        with self._lock:
            if not self._log_path.exists():
                return entries
            lines = self._log_path.read_text(encoding="utf-8").splitlines()

        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                entry = ExecutionLogEntry.model_validate_json(line)
            except ValidationError as exc:
                logger.warning("Skipping unreadable execution log row: %s", exc)
                continue
            if job_id is not None and entry.job_id != job_id:
                continue
            entries.append(entry)
            if limit is not None and len(entries) >= limit:
                break
        return entries

    def execution_stats(self, job_id: str) -> dict:
        """Aggregate the execution log for one job."""
        return _aggregate(self.list_execution_logs(job_id, limit=None))

    def execution_summary(self, since: datetime | None = None) -> dict:
        """Aggregate the execution log across every job, optionally from *since*."""
        entries = self.list_execution_logs(limit=None)
        if since is not None:
            entries = [e for e in entries if e.executed_at >= since]
        jobs = self.all_jobs()
        summary = {
            "total_jobs": len(jobs),
            "enabled_jobs": sum(1 for j in jobs if j.enabled),
            "since": since,
        }
        summary.update(_aggregate(entries))
        return summary


def _aggregate(entries: list[ExecutionLogEntry]) -> dict:
    total = len(entries)
    succeeded = sum(1 for e in entries if e.status == ExecutionStatus.SUCCESS)
    timed_out = sum(1 for e in entries if e.status == ExecutionStatus.TIMEOUT)
    avg_ms = round(sum(e.duration_ms for e in entries) / total) if total else 0
    return {
        "total_executions": total,
        "success_count": succeeded,
        "failure_count": total - succeeded,
        "timeout_count": timed_out,
        "success_rate": round(succeeded / total * 100, 2) if total else 0.0,
        "average_duration_ms": avg_ms,
        "last_execution": entries[0].executed_at if entries else None,
    }
