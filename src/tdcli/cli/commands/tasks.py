"""Task commands: listing, quick add and completion."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.markup import escape

from tdcli.cli.cache.filters import filter_by_workspace
from tdcli.cli.cache.manager import CacheManager, TaskQuery
from tdcli.cli.context import CommandContext, open_context, run_async, serve_listing
from tdcli.cli.errors import StoreCorrupt
from tdcli.cli.output import print_footer, print_page_json, render_tasks_table
from tdcli.cli.pagination import LIMITS, Page, paginate
from tdcli.cli.sync.types import CachedEntity, Project, ResourceScope, Task

tasks_app = typer.Typer(name="tasks", help="List, add and complete tasks")
console = Console()

PROJECT_OPTION = typer.Option(None, "--project", help="Only tasks of this project ID")
LIMIT_OPTION = typer.Option(LIMITS["tasks"], "--limit", min=1, help="Maximum number of tasks")
CURSOR_OPTION = typer.Option(None, "--cursor", help="Continue from a previous listing")
WORKSPACE_OPTION = typer.Option(None, "--workspace", help="Only tasks of this workspace ID")
PERSONAL_OPTION = typer.Option(False, "--personal", help="Only tasks of personal projects")
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")

TaskListing = tuple[Page[Task], dict[str, Project]]


@tasks_app.command("list")
def list_tasks(
    project: str | None = PROJECT_OPTION,
    limit: int = LIMIT_OPTION,
    cursor: str | None = CURSOR_OPTION,
    workspace: str | None = WORKSPACE_OPTION,
    personal: bool = PERSONAL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List active tasks."""
    if workspace and personal:
        console.print("[red]--workspace and --personal cannot be combined.[/red]")
        raise typer.Exit(code=1)
    run_async(_list_tasks_async, project, limit, cursor, workspace, personal, json_output)


async def _list_tasks_async(
    project: str | None,
    limit: int,
    cursor: str | None,
    workspace: str | None,
    personal: bool,
    json_output: bool,
) -> None:
    async with open_context() as ctx:

        def from_cache(repo: CacheManager) -> TaskListing:
            query = TaskQuery(
                limit=limit,
                cursor=cursor,
                project_id=project,
                workspace_id=workspace,
                personal=personal,
            )
            return repo.query_tasks(query), repo.project_map()

        async def from_remote() -> TaskListing:
            return await _fetch_live(ctx, project, limit, cursor, workspace, personal)

        page, projects = await serve_listing(
            ctx, [ResourceScope.ITEMS, ResourceScope.PROJECTS], cursor, from_cache, from_remote
        )

    if json_output:
        print_page_json(console, page)
        return

    if not page.results:
        console.print("No tasks found.")
    else:
        render_tasks_table(console, page.results, projects)
    print_footer(console, page.next_cursor)


async def _fetch_live(
    ctx: CommandContext,
    project: str | None,
    limit: int,
    cursor: str | None,
    workspace: str | None,
    personal: bool,
) -> TaskListing:
    async def fetch_page(page_cursor: str | None, page_size: int) -> Page[Task]:
        return await ctx.api.get_tasks(page_cursor, page_size, project_id=project)

    page, project_list = await asyncio.gather(
        paginate(fetch_page, limit, cursor), ctx.api.get_all_projects()
    )
    projects = {item.id: item for item in project_list}
    tasks = filter_by_workspace(page.results, projects, workspace, personal)
    return Page(results=tasks, next_cursor=page.next_cursor), projects


@tasks_app.command("add")
def add_task(
    content: str = typer.Argument(..., help="Task content"),
    project: str | None = typer.Option(None, "--project", help="Project name or ID"),
    due: str | None = typer.Option(None, "--due", help="Due date, e.g. 'tomorrow'"),
    priority: int | None = typer.Option(
        None, "--priority", min=1, max=4, help="1 (urgent) to 4 (normal)"
    ),
) -> None:
    """Create a task and add it to the local cache."""
    run_async(_add_task_async, content, project, due, priority)


async def _add_task_async(
    content: str, project: str | None, due: str | None, priority: int | None
) -> None:
    async with open_context() as ctx:
        project_id = await _resolve_project_id(ctx, project) if project else None
        task = await ctx.api.add_task(
            content,
            project_id=project_id,
            due_string=due,
            priority=5 - priority if priority else None,
        )
        ctx.engine.upsert_cached_entity(CachedEntity.of(task))

    console.print(f"[green]✓[/green] Created: {escape(task.content)}")
    if task.due_date:
        console.print(f"Due: {task.due_date}")
    console.print(f"[dim]ID: {task.id}[/dim]")


async def _resolve_project_id(ctx: CommandContext, ref: str) -> str:
    """Map a project name to its ID; anything that is not a known name is taken as an ID."""
    repo = await ctx.engine.ensure_fresh([ResourceScope.PROJECTS])
    if repo is not None:
        try:
            match = repo.projects.get_by_name(ref)
        except StoreCorrupt:
            ctx.engine.clear_cache()
        else:
            return match.id if match else ref

    needle = ref.lower()
    for candidate in await ctx.api.get_all_projects():
        if candidate.name.lower() == needle:
            return candidate.id
    return ref


@tasks_app.command("complete")
def complete_task(task_id: str = typer.Argument(..., help="Task ID")) -> None:
    """Complete a task and drop it from the local cache."""
    run_async(_complete_task_async, task_id)


async def _complete_task_async(task_id: str) -> None:
    async with open_context() as ctx:
        await ctx.api.close_task(task_id)
        ctx.engine.remove_cached_entity(ResourceScope.ITEMS, task_id)

    console.print(f"[green]✓[/green] Completed {task_id}")
