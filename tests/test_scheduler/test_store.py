"""Tests for the JSON-backed store."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cronx.scheduler.models import ExecutionLogEntry, ExecutionStatus, HttpTemplate, Job
from cronx.scheduler.store import JsonStore


def _entry(job_id: str, status: ExecutionStatus, minutes: int = 0, duration: int = 100):
    return ExecutionLogEntry(
        job_id=job_id,
        executed_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes),
        status=status,
        duration_ms=duration,
    )


def test_empty_store(tmp_path: Path):
    store = JsonStore(tmp_path / "nothing-here")
    assert store.all_jobs() == []
    assert store.all_templates() == []
    assert store.list_execution_logs() == []


def test_jobs_persist_across_instances(tmp_path: Path, store: JsonStore, job: Job):
    reloaded = JsonStore(tmp_path / "data")
    saved = reloaded.get_job(job.id)
    assert saved is not None
    assert saved.cron_expression == job.cron_expression
    assert reloaded.get_template(job.template_id) is not None


def test_corrupt_jobs_file_starts_empty(tmp_path: Path):
    data = tmp_path / "data"
    data.mkdir()
    (data / "jobs.json").write_text("{not json", encoding="utf-8")

    assert JsonStore(data).all_jobs() == []


def test_atomic_write_leaves_no_tmp(tmp_path: Path, store: JsonStore, job: Job):
    assert (tmp_path / "data" / "jobs.json").exists()
    assert not (tmp_path / "data" / "jobs.tmp").exists()


def test_get_template_returns_copy(store: JsonStore, template: HttpTemplate):
    copy = store.get_template(template.id)
    copy.headers["X-Mutated"] = "1"
    assert "X-Mutated" not in store.get_template(template.id).headers


def test_get_template_missing(store: JsonStore):
    assert store.get_template("nope") is None


def test_increment_job_stats(store: JsonStore, job: Job):
    at = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)
    store.increment_job_stats(job.id, success=True, at=at)
    store.increment_job_stats(job.id, success=False, at=at)

    saved = store.get_job(job.id)
    assert saved.execution_count == 2
    assert saved.success_count == 1
    assert saved.failure_count == 1
    assert saved.last_execution == at
    assert saved.success_rate == 50.0


def test_increment_unknown_job_is_ignored(store: JsonStore):
    store.increment_job_stats("ghost", success=True)
    assert store.get_job("ghost") is None


def test_increment_from_many_threads(store: JsonStore, job: Job):
    def work():
        for _ in range(10):
            store.increment_job_stats(job.id, success=True)

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    saved = store.get_job(job.id)
    assert saved.execution_count == 50
    assert saved.success_count == 50


def test_set_next_execution(store: JsonStore, job: Job):
    upcoming = datetime(2024, 1, 1, 12, 1, tzinfo=UTC)
    store.set_next_execution(job.id, upcoming)
    assert store.get_job(job.id).next_execution == upcoming

    store.set_next_execution(job.id, None)
    assert store.get_job(job.id).next_execution is None


def test_list_enabled_jobs(store: JsonStore, job: Job):
    store.add_job(Job(name="Off", cron_expression="0 * * * *", template_id="t", enabled=False))
    assert [j.id for j in store.list_enabled_jobs()] == [job.id]


def test_update_job_keeps_statistics(store: JsonStore, job: Job):
    store.increment_job_stats(job.id, success=True)

    edited = job.model_copy(update={"name": "Renamed", "execution_count": 0})
    updated = store.update_job(edited)

    assert updated.name == "Renamed"
    assert updated.execution_count == 1
    assert store.get_job(job.id).success_count == 1


def test_remove_job(store: JsonStore, job: Job):
    assert store.remove_job(job.id) is True
    assert store.remove_job(job.id) is False
    assert store.get_job(job.id) is None


def test_remove_template(store: JsonStore, template: HttpTemplate):
    assert store.remove_template(template.id) is True
    assert store.remove_template(template.id) is False


def test_execution_log_newest_first(store: JsonStore):
    store.append_execution_log(_entry("a", ExecutionStatus.SUCCESS, minutes=0))
    store.append_execution_log(_entry("b", ExecutionStatus.FAILURE, minutes=1))
    store.append_execution_log(_entry("a", ExecutionStatus.FAILURE, minutes=2))

    rows = store.list_execution_logs()
    assert [r.job_id for r in rows] == ["a", "b", "a"]
    assert rows[0].status == ExecutionStatus.FAILURE

    only_a = store.list_execution_logs("a")
    assert len(only_a) == 2
    assert store.list_execution_logs(limit=1)[0].job_id == "a"


def test_execution_log_skips_bad_rows(tmp_path: Path, store: JsonStore):
    store.append_execution_log(_entry("a", ExecutionStatus.SUCCESS))
    with (tmp_path / "data" / "execution_log.jsonl").open("a", encoding="utf-8") as fh:
        fh.write("garbage\n")

    assert len(store.list_execution_logs()) == 1


def test_execution_stats(store: JsonStore):
    store.append_execution_log(_entry("a", ExecutionStatus.SUCCESS, minutes=0, duration=100))
    store.append_execution_log(_entry("a", ExecutionStatus.FAILURE, minutes=1, duration=200))
    store.append_execution_log(_entry("a", ExecutionStatus.TIMEOUT, minutes=2, duration=300))
    store.append_execution_log(_entry("a", ExecutionStatus.SUCCESS, minutes=3, duration=400))
    store.append_execution_log(_entry("b", ExecutionStatus.SUCCESS, minutes=4))

    stats = store.execution_stats("a")

    assert stats["total_executions"] == 4
    assert stats["success_count"] == 2
    assert stats["failure_count"] == 2
    assert stats["timeout_count"] == 1
    assert stats["success_rate"] == 50.0
    assert stats["average_duration_ms"] == 250
    assert stats["last_execution"] == datetime(2024, 1, 1, 0, 3, tzinfo=UTC)


def test_execution_stats_empty(store: JsonStore):
    stats = store.execution_stats("none")
    assert stats["total_executions"] == 0
    assert stats["success_rate"] == 0.0
    assert stats["last_execution"] is None


# -- Two stores on one directory ----------------------------------------------


def test_stats_update_keeps_job_added_elsewhere(tmp_path: Path, store: JsonStore, job: Job):
    cli_store = JsonStore(tmp_path / "data")
    cli_store.add_job(
        Job(
            id="clijob000001",
            name="From CLI",
            cron_expression="0 * * * *",
            template_id=job.template_id,
        )
    )

    store.increment_job_stats(job.id, success=True)

    for view in (store, cli_store, JsonStore(tmp_path / "data")):
        assert view.get_job("clijob000001") is not None
        assert view.get_job(job.id).execution_count == 1


def test_next_execution_update_keeps_pause_made_elsewhere(
    tmp_path: Path, store: JsonStore, job: Job
):
    cli_store = JsonStore(tmp_path / "data")
    paused = cli_store.get_job(job.id)
    paused.enabled = False
    cli_store.update_job(paused)

    store.set_next_execution(job.id, datetime(2024, 1, 1, 12, 1, tzinfo=UTC))

    reloaded = JsonStore(tmp_path / "data").get_job(job.id)
    assert reloaded.enabled is False
    assert reloaded.next_execution == datetime(2024, 1, 1, 12, 1, tzinfo=UTC)
    assert store.list_enabled_jobs() == []


def test_removal_elsewhere_is_seen(tmp_path: Path, store: JsonStore, job: Job):
    JsonStore(tmp_path / "data").remove_job(job.id)

    assert store.get_job(job.id) is None
    store.increment_job_stats(job.id, success=True)
    assert JsonStore(tmp_path / "data").all_jobs() == []


def test_template_added_elsewhere_is_seen(tmp_path: Path, store: JsonStore, template):
    other = JsonStore(tmp_path / "data")
    other.add_template(HttpTemplate(id="tpl000000002", name="Second", url="https://b.test"))

    assert store.get_template("tpl000000002") is not None
    store.remove_template(template.id)
    assert [t.id for t in other.all_templates()] == ["tpl000000002"]


def test_unreadable_file_keeps_last_good_copy(tmp_path: Path, store: JsonStore, job: Job):
    (tmp_path / "data" / "jobs.json").write_text("{truncated", encoding="utf-8")

    assert store.get_job(job.id) is not None
