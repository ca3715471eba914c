"""Sync cache commands."""

from __future__ import annotations

from datetime import UTC, datetime

import typer
from rich.console import Console
from rich.table import Table

from tdcli.cli.config import SyncSettings, get_sync_settings
from tdcli.cli.context import open_context, run_async
from tdcli.cli.errors import ConfigurationError, StoreCorrupt
from tdcli.cli.sync.engine import SyncEngine
from tdcli.cli.sync.types import ResourceScope, normalize_scopes

sync_app = typer.Typer(name="sync", help="Inspect and control the local sync cache")
console = Console()

SCOPES_ARGUMENT = typer.Argument(None, help="Scopes to refresh (default: all)")


def _format_age(timestamp: datetime | None) -> str:
    if timestamp is None:
        return "never"
    seconds = int((datetime.now(UTC) - timestamp).total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h ago"


def _load_settings() -> SyncSettings:
    try:
        return get_sync_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e


@sync_app.command("status")
def sync_status() -> None:
    """Show per-scope sync state."""
    settings = _load_settings()
    console.print(f"Cache: [dim]{settings.db_path}[/dim]")
    console.print(f"TTL: {settings.ttl_seconds}s")
    if not settings.enabled:
        console.print("[yellow]Sync cache is disabled.[/yellow]")
        return

    engine = SyncEngine(settings, fetcher=None)
    try:
        states = engine.status()
    except StoreCorrupt as e:
        console.print(f"[red]Cache is unreadable:[/red] {e}")
        console.print("Run [cyan]td sync clear[/cyan] to reset it.")
        raise typer.Exit(code=1) from e
    finally:
        engine.close()

    table = Table(title="Sync State", show_header=True, header_style="bold magenta")
    table.add_column("Scope", style="cyan", no_wrap=True)
    table.add_column("Entities", justify="right")
    table.add_column("Last refreshed", style="green")
    table.add_column("Token", style="dim")
    table.add_column("Dirty", style="yellow")

    for state in states:
        table.add_row(
            state.scope.value,
            str(state.count),
            _format_age(state.last_refreshed_at),
            state.token or "-",
            "yes" if state.dirty else "",
        )

    console.print(table)


@sync_app.command("refresh")
def sync_refresh(scopes: list[str] | None = SCOPES_ARGUMENT) -> None:
    """Refresh scopes now, ignoring the TTL."""
    try:
        requested = normalize_scopes(scopes)
    except ValueError as e:
        console.print(f"[red]Unknown scope:[/red] {e}")
        raise typer.Exit(code=1) from e
    run_async(_refresh_async, requested)


async def _refresh_async(requested: frozenset[ResourceScope]) -> None:
    async with open_context() as ctx:
        if not ctx.settings.enabled:
            console.print("[yellow]Sync cache is disabled.[/yellow]")
            return
        ctx.engine.mark_dirty(requested)
        repo = await ctx.engine.ensure_fresh(requested)
        error = ctx.engine.last_error

    names = ", ".join(sorted(scope.value for scope in requested))
    if error is None and repo is not None:
        console.print(f"[green]✓[/green] Refreshed {names}")
        return
    console.print(f"[red]Refresh failed:[/red] {error}")
    raise typer.Exit(code=1)


@sync_app.command("clear")
def sync_clear() -> None:
    """Delete every cached entity and sync token."""
    settings = _load_settings()
    engine = SyncEngine(settings, fetcher=None)
    try:
        engine.clear_cache()
    finally:
        engine.close()
    console.print("[green]✓[/green] Sync cache cleared")
