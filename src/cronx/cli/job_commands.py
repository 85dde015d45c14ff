"""CLI commands for CRON job management.

Changes go through a running ``cronx serve`` when one answers on the
configured address, so the engine picks them up immediately. Otherwise the
data files are edited directly and the server applies them on its next start.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

app = typer.Typer(
    name="jobs",
    help="Manage scheduled jobs — list, add, remove, pause, resume, run, logs, stats.",
    no_args_is_help=True,
)
console = Console()

PERIODS = {"1d": timedelta(days=1), "7d": timedelta(days=7), "30d": timedelta(days=30)}


def _get_store(path=None):
    """Create a JsonStore (works without a running server)."""
    from cronx.config.settings import get_settings
    from cronx.scheduler.store import JsonStore

    return JsonStore(path or get_settings().data_path)


def _server_client():
    """Return an HTTP client for a running server, or None if none answers."""
    import httpx

    from cronx.config.settings import get_settings

    server = get_settings().server
    host = "127.0.0.1" if server.host == "0.0.0.0" else server.host
    client = httpx.Client(base_url=f"http://{host}:{server.port}", timeout=5.0)
    try:
        client.get("/health").raise_for_status()
    except httpx.HTTPError:
        client.close()
        return None
    return client


def _api_call(client, method: str, url: str, **kwargs):
    """Send one request to the server; print its error and exit on failure."""
    try:
        response = client.request(method, url, **kwargs)
    finally:
        client.close()
    if response.is_error:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        console.print(f"[red]Server rejected the request: {escape(str(detail))}[/red]")
        raise typer.Exit(1)
    return response


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M %Z").strip() if value else "-"


def _require_job(store, job_id: str):
    job = store.get_job(job_id)
    if job is None:
        console.print(f"[red]Job '{job_id}' not found.[/red]")
        raise typer.Exit(1)
    return job


@app.command("list")
def list_jobs():
    """List all jobs with their run statistics."""
    store = _get_store()
    jobs = store.all_jobs()

    if not jobs:
        console.print("[dim]No jobs configured.[/dim]")
        console.print('[dim]Add one: cronx jobs add "Job name" "*/5 * * * *" <template-id>[/dim]')
        raise typer.Exit()

    table = Table(title="Jobs", show_lines=False)
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Name", style="bold")
    table.add_column("Schedule")
    table.add_column("Status")
    table.add_column("Runs", justify="right")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Next run")

    for job in jobs:
        status = "[green]enabled[/green]" if job.enabled else "[yellow]paused[/yellow]"
        table.add_row(
            job.id,
            job.name,
            f"{job.cron_expression} ({job.timezone})",
            status,
            str(job.execution_count),
            str(job.success_count),
            str(job.failure_count),
            _fmt_time(job.next_execution),
        )

    console.print(table)
    console.print(f"\n  [dim]{len(jobs)} jobs total.[/dim]\n")


@app.command("add")
def add_job(
    name: str = typer.Argument(help="Human-readable job name"),
    cron_expression: str = typer.Argument(help="5-field cron expression (e.g. '*/5 * * * *')"),
    template_id: str = typer.Argument(help="ID of the HTTP template to run"),
    timezone: str = typer.Option(
        None, "--tz", "-t", help="IANA timezone (default: scheduler.default_timezone)"
    ),
    retries: int = typer.Option(3, "--retries", "-r", min=0, max=10, help="Retry attempts"),
    timeout: int = typer.Option(
        30,
        "--timeout",
        min=1,
        max=300,
        help="Recorded with the job; each request uses its template's timeout",
    ),
    description: str = typer.Option(None, "--description", "-d", help="Optional description"),
    disabled: bool = typer.Option(False, "--disabled", help="Create the job paused"),
):
    """Add a new job."""
    from cronx.config.settings import get_settings
    from cronx.scheduler.exceptions import InvalidExpression
    from cronx.scheduler.models import Job
    from cronx.scheduler.recurrence import next_fire_time

    timezone = timezone or get_settings().scheduler.default_timezone
    store = _get_store()
    if store.get_template(template_id) is None:
        console.print(f"[red]Template '{template_id}' not found.[/red]")
        raise typer.Exit(1)

    try:
        upcoming = next_fire_time(cron_expression, timezone)
    except InvalidExpression as exc:
        console.print(f"[red]{exc}[/red]")
        console.print("[dim]Use standard 5-field format: minute hour day month weekday[/dim]")
        console.print("[dim]Examples: '0 9 * * *' (daily 9am), '*/30 * * * *' (every 30min)[/dim]")
        raise typer.Exit(1)

    job = Job(
        name=name,
        description=description,
        cron_expression=cron_expression,
        timezone=timezone,
        template_id=template_id,
        enabled=not disabled,
        retry_attempts=retries,
        timeout_seconds=timeout,
        next_execution=None if disabled else upcoming,
    )

    client = _server_client()
    if client is not None:
        payload = job.model_dump(
            mode="json",
            include={
                "name",
                "description",
                "cron_expression",
                "timezone",
                "template_id",
                "enabled",
                "retry_attempts",
                "timeout_seconds",
            },
        )
        job = Job.model_validate(_api_call(client, "POST", "/scheduler/jobs", json=payload).json())
        upcoming = job.next_execution
    else:
        store.add_job(job)

    console.print(f"  [green]\u2713[/green] Added job [bold]{name}[/bold] (ID: {job.id})")
    console.print(f"  [dim]Schedule: {cron_expression} ({timezone})[/dim]")
    if not disabled:
        console.print(f"  [dim]Next run: {_fmt_time(upcoming)}[/dim]")
    if client is None:
        console.print("  [dim]Will be active on next server start.[/dim]")
    elif not disabled:
        console.print("  [dim]Scheduled on the running server.[/dim]")


@app.command("remove")
def remove_job(
    job_id: str = typer.Argument(help="Job ID to remove"),
):
    """Remove a job permanently."""
    store = _get_store()
    _require_job(store, job_id)

    client = _server_client()
    if client is not None:
        _api_call(client, "DELETE", f"/scheduler/jobs/{job_id}")
    else:
        store.remove_job(job_id)
    console.print(f"  [green]\u2713[/green] Removed job [bold]{job_id}[/bold].")


def _set_enabled(store, job, enabled: bool) -> None:
    client = _server_client()
    if client is not None:
        _api_call(
            client, "PATCH", f"/scheduler/jobs/{job.id}/toggle", json={"enabled": enabled}
        )
        return

    from cronx.scheduler.recurrence import next_fire_time

    job.enabled = enabled
    store.update_job(job)
    upcoming = next_fire_time(job.cron_expression, job.timezone) if enabled else None
    store.set_next_execution(job.id, upcoming)


@app.command("pause")
def pause_job(
    job_id: str = typer.Argument(help="Job ID to pause"),
):
    """Pause a job without deleting it."""
    store = _get_store()
    job = _require_job(store, job_id)

    if not job.enabled:
        console.print(f"[dim]Job '{job.name}' is already paused.[/dim]")
        raise typer.Exit()

    _set_enabled(store, job, False)
    console.print(f"  [green]\u2713[/green] Paused [bold]{job.name}[/bold] (ID: {job_id}).")
    console.print(f"  [dim]Use 'cronx jobs resume {job_id}' to re-enable.[/dim]")


@app.command("resume")
def resume_job(
    job_id: str = typer.Argument(help="Job ID to resume"),
):
    """Resume a paused job."""
    store = _get_store()
    job = _require_job(store, job_id)

    if job.enabled:
        console.print(f"[dim]Job '{job.name}' is already enabled.[/dim]")
        raise typer.Exit()

    _set_enabled(store, job, True)
    console.print(f"  [green]\u2713[/green] Resumed [bold]{job.name}[/bold] (ID: {job_id}).")


@app.command("run")
def run_job(
    job_id: str = typer.Argument(help="Job ID to execute now"),
):
    """Execute a job once, right now, and record the result."""
    from cronx.config.settings import get_settings
    from cronx.scheduler.service import SchedulerService

    store = _get_store()
    job = _require_job(store, job_id)

    service = SchedulerService(store, config=get_settings().scheduler)
    with console.status(f"Running [bold]{job.name}[/bold]..."):
        result = asyncio.run(service.execute_job(job))

    if result.success:
        console.print(
            f"  [green]\u2713[/green] {job.name}: HTTP {result.status_code} "
            f"in {result.duration_ms}ms"
        )
        return

    detail = result.error or f"HTTP {result.status_code} {result.status_text or ''}".strip()
    console.print(f"  [red]\u2717[/red] {job.name} failed after {result.attempts} attempt(s): {detail}")
    raise typer.Exit(1)


@app.command("logs")
def show_logs(
    job_id: str = typer.Argument(None, help="Job ID (default: all jobs)"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of rows"),
):
    """Show the most recent executions of one job or of all jobs."""
    store = _get_store()
    entries = store.list_execution_logs(job_id, limit=limit)

    if not entries:
        target = f"'{job_id}'" if job_id else "any job"
        console.print(f"[dim]No executions recorded for {target}.[/dim]")
        raise typer.Exit()

    table = Table(title=f"Executions of {job_id}" if job_id else "Recent executions")
    if job_id is None:
        table.add_column("Job", style="dim", max_width=12)
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("HTTP", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Error", max_width=50)

    colors = {"success": "green", "failure": "red", "timeout": "yellow"}
    for entry in entries:
        color = colors.get(entry.status.value, "white")
        row = [
            _fmt_time(entry.executed_at),
            f"[{color}]{entry.status.value}[/{color}]",
            str(entry.response_status or "-"),
            f"{entry.duration_ms}ms",
            entry.error_message or "",
        ]
        if job_id is None:
            row.insert(0, entry.job_id)
        table.add_row(*row)
    console.print(table)


@app.command("stats")
def show_stats(
    job_id: str = typer.Argument(None, help="Job ID (default: summary of all jobs)"),
    period: str = typer.Option("7d", "--period", "-p", help="1d, 7d, 30d or all (summary only)"),
):
    """Show success/failure statistics for one job, or a summary of all jobs."""
    store = _get_store()

    if job_id is None:
        if period not in PERIODS and period != "all":
            console.print("[red]--period must be one of 1d, 7d, 30d, all.[/red]")
            raise typer.Exit(1)
        since = datetime.now(UTC) - PERIODS[period] if period in PERIODS else None
        summary = store.execution_summary(since)

        console.print()
        console.print(f"  [bold]All jobs[/bold] [dim](period: {period})[/dim]")
        console.print(f"  Jobs:          {summary['total_jobs']} ({summary['enabled_jobs']} enabled)")
        console.print(f"  Executions:    {summary['total_executions']}")
        console.print(f"  Succeeded:     [green]{summary['success_count']}[/green]")
        console.print(f"  Failed:        [red]{summary['failure_count']}[/red]")
        console.print(f"  Success rate:  {summary['success_rate']}%")
        console.print(f"  Avg duration:  {summary['average_duration_ms']}ms")
        console.print(f"  Timeouts:      {summary['timeout_count']}")
        console.print(f"  Last run:      {_fmt_time(summary['last_execution'])}")
        console.print()
        return

    job = _require_job(store, job_id)
    stats = store.execution_stats(job_id)

    console.print()
    console.print(f"  [bold]{job.name}[/bold] [dim]({job.id})[/dim]")
    console.print(f"  Executions:    {job.execution_count}")
    console.print(f"  Succeeded:     [green]{job.success_count}[/green]")
    console.print(f"  Failed:        [red]{job.failure_count}[/red]")
    console.print(f"  Success rate:  {job.success_rate}%")
    console.print(f"  Avg duration:  {stats['average_duration_ms']}ms")
    console.print(f"  Timeouts:      {stats['timeout_count']}")
    console.print(f"  Last run:      {_fmt_time(job.last_execution)}")
    console.print(f"  Next run:      {_fmt_time(job.next_execution)}")
    console.print()
