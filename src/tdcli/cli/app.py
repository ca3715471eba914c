"""Main CLI application using Typer."""

import logging

import typer
from rich.console import Console

from tdcli import __version__
from tdcli.cli.commands.auth import auth_app
from tdcli.cli.commands.config import config_app
from tdcli.cli.commands.projects import projects_app
from tdcli.cli.commands.sync import sync_app
from tdcli.cli.commands.tasks import tasks_app
from tdcli.cli.commands.upcoming import upcoming

app = typer.Typer(
    name="td",
    help="td - Todoist from the command line, backed by a local sync cache",
    add_completion=False,
)
console = Console()

# Register subcommands
app.add_typer(config_app, name="config")
app.add_typer(auth_app, name="auth")
app.add_typer(sync_app, name="sync")
app.add_typer(tasks_app, name="tasks")
app.add_typer(projects_app, name="projects")
app.command("upcoming")(upcoming)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def version_callback(value: bool) -> None:
    """Show version information."""
    if value:
        console.print(f"td version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr"),
) -> None:
    """td - Todoist from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )


if __name__ == "__main__":
    app()
