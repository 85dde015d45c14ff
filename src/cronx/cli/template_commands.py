"""CLI commands for HTTP request templates."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="templates",
    help="Manage HTTP request templates — list, add, remove, test.",
    no_args_is_help=True,
)
console = Console()


def _get_store(path=None):
    """Create a JsonStore (works without a running server)."""
    from cronx.config.settings import get_settings
    from cronx.scheduler.store import JsonStore

    return JsonStore(path or get_settings().data_path)


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            console.print(f"[red]Invalid header '{raw}', expected 'Name: value'.[/red]")
            raise typer.Exit(1)
        headers[name.strip()] = value.strip()
    return headers


def _build_auth(bearer: str | None, basic: str | None, api_key: str | None, api_key_in: str):
    from cronx.scheduler.models import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth

    chosen = [opt for opt in (bearer, basic, api_key) if opt]
    if len(chosen) > 1:
        console.print("[red]Use only one of --bearer, --basic, --api-key.[/red]")
        raise typer.Exit(1)

    if bearer:
        return BearerAuth(token=bearer)
    if basic:
        username, _, password = basic.partition(":")
        return BasicAuth(username=username, password=password)
    if api_key:
        key, sep, value = api_key.partition("=")
        if not sep or not key:
            console.print("[red]--api-key must look like 'name=value'.[/red]")
            raise typer.Exit(1)
        return ApiKeyAuth(location=api_key_in, key=key, value=value)
    return NoAuth()


@app.command("list")
def list_templates():
    """List all HTTP templates."""
    store = _get_store()
    templates = store.all_templates()

    if not templates:
        console.print("[dim]No templates configured.[/dim]")
        console.print('[dim]Add one: cronx templates add "Ping" https://example.com/health[/dim]')
        raise typer.Exit()

    table = Table(title="HTTP Templates")
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Name", style="bold")
    table.add_column("Method")
    table.add_column("URL", max_width=50)
    table.add_column("Auth", style="dim")
    table.add_column("Expect")

    for template in templates:
        table.add_row(
            template.id,
            template.name,
            template.method,
            template.url,
            template.auth.type,
            ",".join(str(code) for code in template.expected_status_codes),
        )
    console.print(table)


@app.command("add")
def add_template(
    name: str = typer.Argument(help="Template name"),
    url: str = typer.Argument(help="Request URL"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    header: list[str] = typer.Option([], "--header", "-H", help="Header as 'Name: value'"),
    body: str = typer.Option(None, "--body", "-d", help="Request body"),
    expect: list[int] = typer.Option([200], "--expect", "-e", help="Accepted status code"),
    timeout: int = typer.Option(30, "--timeout", min=1, max=300, help="Timeout in seconds"),
    bearer: str = typer.Option(None, "--bearer", help="Bearer token"),
    basic: str = typer.Option(None, "--basic", help="Basic auth as 'user:password'"),
    api_key: str = typer.Option(None, "--api-key", help="API key as 'name=value'"),
    api_key_in: str = typer.Option("header", "--api-key-in", help="header or query"),
    no_redirects: bool = typer.Option(False, "--no-redirects", help="Do not follow redirects"),
    insecure: bool = typer.Option(False, "--insecure", "-k", help="Skip TLS verification"),
):
    """Add an HTTP request template."""
    from pydantic import ValidationError

    from cronx.scheduler.models import HttpTemplate

    if api_key_in not in ("header", "query"):
        console.print("[red]--api-key-in must be 'header' or 'query'.[/red]")
        raise typer.Exit(1)

    try:
        template = HttpTemplate(
            name=name,
            url=url,
            method=method,
            headers=_parse_headers(header),
            body=body,
            auth=_build_auth(bearer, basic, api_key, api_key_in),
            expected_status_codes=expect,
            timeout_seconds=timeout,
            follow_redirects=not no_redirects,
            validate_ssl=not insecure,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid template: {exc.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    store = _get_store()
    store.add_template(template)
    console.print(f"  [green]\u2713[/green] Added template [bold]{name}[/bold] (ID: {template.id})")
    console.print(f"  [dim]{template.method} {template.url}[/dim]")


@app.command("remove")
def remove_template(
    template_id: str = typer.Argument(help="Template ID to remove"),
):
    """Remove a template. Jobs using it will fail until re-pointed."""
    store = _get_store()

    if store.remove_template(template_id):
        console.print(f"  [green]\u2713[/green] Removed template [bold]{template_id}[/bold].")
    else:
        console.print(f"[red]Template '{template_id}' not found.[/red]")
        raise typer.Exit(1)


@app.command("test")
def send_template(
    template_id: str = typer.Argument(help="Template ID to send once"),
):
    """Send a template's request once. Nothing is retried or recorded."""
    from cronx.config.settings import get_settings
    from cronx.scheduler.executor import HttpExecutor

    store = _get_store()
    template = store.get_template(template_id)
    if template is None:
        console.print(f"[red]Template '{template_id}' not found.[/red]")
        raise typer.Exit(1)

    executor = HttpExecutor(max_body_chars=get_settings().scheduler.max_body_chars)
    with console.status(f"Sending [bold]{template.method} {template.url}[/bold]..."):
        result = asyncio.run(executor.execute(template, 0))

    if result.status_code is not None:
        console.print(
            f"  HTTP {result.status_code} {result.status_text or ''}".rstrip()
            + f" in {result.duration_ms}ms"
        )
    if result.body:
        console.print(result.body[:500], style="dim", markup=False)

    if result.success:
        console.print(f"  [green]\u2713[/green] {template.name} answered as expected.")
        return

    detail = result.error or f"unexpected status {result.status_code}"
    console.print(f"  [red]\u2717[/red] {template.name} failed: {detail}")
    raise typer.Exit(1)
