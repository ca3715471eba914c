"""Authentication commands."""

import typer
from rich.console import Console

from tdcli.cli.config import clear_api_token, get_sync_settings
from tdcli.cli.errors import ConfigurationError
from tdcli.cli.sync.engine import SyncEngine

auth_app = typer.Typer(name="auth", help="Manage authentication")
console = Console()


@auth_app.command("logout")
def logout() -> None:
    """Forget the stored API token and wipe the local cache."""
    try:
        settings = get_sync_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    # The cache must be gone before the credential is
    engine = SyncEngine(settings, fetcher=None)
    try:
        engine.clear_cache()
    finally:
        engine.close()

    clear_api_token()
    console.print("[green]✓[/green] Logged out and cleared the local cache")
