"""Configuration management commands."""

import typer
from rich.console import Console
from rich.table import Table

from tdcli.cli.config import (
    get_config_file,
    load_config,
    parse_config_value,
    set_config_value,
)
from tdcli.cli.errors import ConfigurationError

config_app = typer.Typer(
    name="config",
    help="Manage CLI configuration",
)
console = Console()

SECRET_KEYS = {"api_token"}


def _flatten(config: dict, prefix: str = "") -> list[tuple[str, object]]:
    items: list[tuple[str, object]] = []
    for key, value in sorted(config.items()):
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            items.extend(_flatten(value, f"{full_key}."))
        else:
            items.append((full_key, value))
    return items


def _display(key: str, value: object) -> str:
    if key in SECRET_KEYS and isinstance(value, str) and value:
        return f"{value[:4]}…"
    return str(value)


@config_app.command("show")
def config_show() -> None:
    """Display current configuration."""
    try:
        config = load_config()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    if not config:
        console.print("[yellow]No configuration found.[/yellow]")
        console.print(f"Config file: [dim]{get_config_file()}[/dim]")
        return

    table = Table(title="tdcli Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    for key, value in _flatten(config):
        table.add_row(key, _display(key, value))

    console.print(table)
    console.print(f"\nConfig file: [dim]{get_config_file()}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Configuration key to set (dotted for nested keys)"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Set a configuration value.

    Examples:
        td config set api_token abc123
        td config set sync.ttl_seconds 120
        td config set sync.enabled false
    """
    try:
        set_config_value(key, parse_config_value(value))
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e
    shown = _display(key, value)
    console.print(f"[green]✓[/green] Set [cyan]{key}[/cyan] = [green]{shown}[/green]")
    console.print(f"Config file: [dim]{get_config_file()}[/dim]")
