"""Project listing commands."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tdcli.cli.cache.filters import filter_projects_by_workspace
from tdcli.cli.cache.manager import CacheManager
from tdcli.cli.context import open_context, run_async, serve_listing
from tdcli.cli.output import print_footer, print_page_json
from tdcli.cli.pagination import LIMITS, Page, paginate, paginate_local
from tdcli.cli.sync.types import Project, ResourceScope

projects_app = typer.Typer(name="projects", help="List projects")
console = Console()

LIMIT_OPTION = typer.Option(
    LIMITS["projects"], "--limit", min=1, help="Maximum number of projects"
)
CURSOR_OPTION = typer.Option(None, "--cursor", help="Continue from a previous listing")
WORKSPACE_OPTION = typer.Option(None, "--workspace", help="Only projects of this workspace ID")
PERSONAL_OPTION = typer.Option(False, "--personal", help="Only personal projects")
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")


def _render_projects_table(projects: list[Project]) -> None:
    table = Table(title="Projects", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Workspace", style="yellow")
    table.add_column("Shared", style="white")

    for project in projects:
        table.add_row(
            project.id,
            escape(project.name),
            project.workspace_id or "-",
            "yes" if project.is_shared else "no",
        )

    console.print(table)


@projects_app.command("list")
def list_projects(
    limit: int = LIMIT_OPTION,
    cursor: str | None = CURSOR_OPTION,
    workspace: str | None = WORKSPACE_OPTION,
    personal: bool = PERSONAL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List projects."""
    if workspace and personal:
        console.print("[red]--workspace and --personal cannot be combined.[/red]")
        raise typer.Exit(code=1)
    run_async(_list_projects_async, limit, cursor, workspace, personal, json_output)


async def _list_projects_async(
    limit: int,
    cursor: str | None,
    workspace: str | None,
    personal: bool,
    json_output: bool,
) -> None:
    async with open_context() as ctx:

        def from_cache(repo: CacheManager) -> Page[Project]:
            projects = [item for item in repo.list_projects() if not item.is_archived]
            projects = filter_projects_by_workspace(projects, workspace, personal)
            return paginate_local(projects, limit, cursor)

        async def from_remote() -> Page[Project]:
            page = await paginate(ctx.api.get_projects, limit, cursor)
            projects = filter_projects_by_workspace(page.results, workspace, personal)
            return Page(results=projects, next_cursor=page.next_cursor)

        page = await serve_listing(
            ctx, [ResourceScope.PROJECTS], cursor, from_cache, from_remote
        )

    if json_output:
        print_page_json(console, page)
        return

    if not page.results:
        console.print("No projects found.")
    else:
        _render_projects_table(page.results)
    print_footer(console, page.next_cursor)
