"""cronx CLI — the main entry point."""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from cronx import __version__
from cronx.cli.job_commands import app as jobs_app
from cronx.cli.template_commands import app as templates_app

app = typer.Typer(
    name="cronx",
    help="Scheduled HTTP requests: CRON jobs, request templates, execution history.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(jobs_app, name="jobs")
app.add_typer(templates_app, name="templates")
console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


@app.callback(invoke_without_command=True)
def version_callback(
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
):
    if version:
        console.print(f"cronx [dim]v{__version__}[/dim]")
        raise typer.Exit()


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Override the configured host"),
    port: int = typer.Option(None, "--port", "-p", help="Override the configured port"),
):
    """Run the scheduler daemon with its HTTP API in the foreground."""
    import uvicorn

    from cronx.config.settings import get_settings
    from cronx.server.app import create_app

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    host = host or settings.server.host
    port = port or settings.server.port
    console.print(f"  [bold]cronx[/bold] [dim]v{__version__}[/dim]")
    console.print(f"  [dim]Data:   {settings.data_path}[/dim]")
    console.print(f"  [dim]Server: http://{host}:{port}[/dim]")

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        access_log=False,
        log_level=settings.log_level.lower(),
    )


@app.command()
def init(
    timezone: str = typer.Option("UTC", "--tz", "-t", help="Default timezone for new jobs"),
    data_dir: str = typer.Option(None, "--data-dir", help="Where jobs and logs are stored"),
    port: int = typer.Option(None, "--port", "-p", help="API server port"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
):
    """Write a config file with the given defaults."""
    from cronx.config.settings import CONFIG_FILE, Settings
    from cronx.scheduler.exceptions import InvalidTimezone
    from cronx.scheduler.recurrence import resolve_timezone

    if Settings.config_exists() and not force:
        console.print(f"[yellow]Config already exists at {CONFIG_FILE}.[/yellow]")
        console.print("[dim]Use --force to overwrite it.[/dim]")
        raise typer.Exit(1)

    try:
        resolve_timezone(timezone)
    except InvalidTimezone as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    settings = Settings()
    settings.scheduler.default_timezone = timezone
    if data_dir:
        settings.data_dir = data_dir
    if port:
        settings.server.port = port
    settings.save()

    console.print(f"  [green]\u2713[/green] Wrote {CONFIG_FILE}")
    console.print(f"  [dim]Data: {settings.data_path}  Timezone: {timezone}[/dim]")


@app.command()
def status():
    """Show the current configuration."""
    from cronx.config.settings import CONFIG_FILE, Settings, get_settings
    from cronx.scheduler.store import JsonStore

    settings = get_settings()
    store = JsonStore(settings.data_path)
    jobs = store.all_jobs()
    enabled = sum(1 for j in jobs if j.enabled)

    console.print()
    config = str(CONFIG_FILE) if Settings.config_exists() else "defaults (run cronx init)"
    console.print(f"  [bold]Config:[/bold]     {config}")
    console.print(f"  [bold]Data dir:[/bold]   {settings.data_path}")
    console.print(f"  [bold]Server:[/bold]     {settings.server.host}:{settings.server.port}")
    console.print(f"  [bold]Timezone:[/bold]   {settings.scheduler.default_timezone}")
    console.print(f"  [bold]Jobs:[/bold]       {len(jobs)} ({enabled} enabled)")
    console.print(f"  [bold]Templates:[/bold]  {len(store.all_templates())}")
    console.print()


if __name__ == "__main__":
    app()
