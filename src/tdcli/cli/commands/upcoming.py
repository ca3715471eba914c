"""Upcoming tasks command."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

import typer
from rich.console import Console
from rich.markup import escape

from tdcli.cli.cache.filters import filter_by_assignee, filter_due_until
from tdcli.cli.cache.manager import CacheManager
from tdcli.cli.collaborators import CollaboratorCache, format_assignee
from tdcli.cli.context import CommandContext, open_context, run_async, serve_listing
from tdcli.cli.errors import CursorInvalid, StoreCorrupt
from tdcli.cli.output import print_footer, print_page_json
from tdcli.cli.pagination import LIMITS, Page, is_local_cursor, paginate, paginate_local
from tdcli.cli.sync.types import Project, ResourceScope, Task

logger = logging.getLogger(__name__)
console = Console()

UPCOMING_SCOPES = [ResourceScope.ITEMS, ResourceScope.PROJECTS, ResourceScope.USERS]

DAYS_ARGUMENT = typer.Argument(7, min=1, help="Number of days to look ahead")
ANY_ASSIGNEE_OPTION = typer.Option(
    False, "--any-assignee", help="Show tasks assigned to anyone (default: only me/unassigned)"
)
LIMIT_OPTION = typer.Option(LIMITS["tasks"], "--limit", min=1, help="Maximum number of tasks")
CURSOR_OPTION = typer.Option(None, "--cursor", help="Continue from a previous listing")
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")

UpcomingListing = tuple[Page[Task], dict[str, Project]]


def upcoming(
    days: int = DAYS_ARGUMENT,
    any_assignee: bool = ANY_ASSIGNEE_OPTION,
    limit: int = LIMIT_OPTION,
    cursor: str | None = CURSOR_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show tasks due in the next DAYS days, overdue ones included."""
    run_async(_upcoming_async, days, any_assignee, limit, cursor, json_output)


def _from_cache(
    repo: CacheManager,
    upper_bound: str,
    any_assignee: bool,
    limit: int,
    cursor: str | None,
) -> UpcomingListing | None:
    current_user_id = None if any_assignee else repo.get_current_user_id()
    if not any_assignee and current_user_id is None:
        # Cannot tell which tasks are "mine" offline
        return None

    tasks = filter_due_until(repo.list_tasks(), upper_bound)
    if current_user_id is not None:
        tasks = filter_by_assignee(tasks, current_user_id, include_unassigned=True)
    return paginate_local(tasks, limit, cursor), repo.project_map()


async def _from_remote(
    ctx: CommandContext, days: int, any_assignee: bool, limit: int, cursor: str | None
) -> UpcomingListing:
    base_query = f"due before: {days} days"
    query = base_query if any_assignee else f"({base_query}) & (assigned to: me | !assigned)"

    async def fetch_page(page_cursor: str | None, page_size: int) -> Page[Task]:
        return await ctx.api.get_tasks_by_filter(query, page_cursor, page_size)

    page, project_list = await asyncio.gather(
        paginate(fetch_page, limit, cursor), ctx.api.get_all_projects()
    )
    return page, {project.id: project for project in project_list}


async def _upcoming_async(
    days: int, any_assignee: bool, limit: int, cursor: str | None, json_output: bool
) -> None:
    today = date.today()
    upper_bound = (today + timedelta(days=days - 1)).isoformat()

    async with open_context() as ctx:

        def from_cache(repo: CacheManager) -> UpcomingListing | None:
            return _from_cache(repo, upper_bound, any_assignee, limit, cursor)

        async def from_remote() -> UpcomingListing | None:
            return await _from_remote(ctx, days, any_assignee, limit, cursor)

        listing = await serve_listing(ctx, UPCOMING_SCOPES, cursor, from_cache, from_remote)
        if listing is None:
            if is_local_cursor(cursor):
                raise CursorInvalid("This cursor came from the local cache, which is not available")
            listing = await _from_remote(ctx, days, any_assignee, limit, cursor)
        page, projects = listing

        if json_output:
            print_page_json(console, page)
            return

        collaborators = CollaboratorCache()
        repo = ctx.engine.repository_without_sync()
        if repo is not None:
            try:
                collaborators.seed(repo.list_users())
            except StoreCorrupt as e:
                logger.debug("Skipping cached users: %s", e)
        await collaborators.preload(ctx.api, page.results, projects)

    _render_upcoming(page, projects, collaborators, days, today.isoformat())


def _render_upcoming(
    page: Page[Task],
    projects: dict[str, Project],
    collaborators: CollaboratorCache,
    days: int,
    today: str,
) -> None:
    if not page.results:
        console.print(f"No tasks due in the next {days} day{'' if days == 1 else 's'}.")
    else:
        overdue = [task for task in page.results if task.due_date and task.due_date < today]
        by_date: dict[str, list[Task]] = {}
        for task in page.results:
            if task.due_date and task.due_date >= today:
                by_date.setdefault(task.due_date, []).append(task)

        if overdue:
            console.print(f"[bold red]Overdue ({len(overdue)})[/bold red]")
            for task in overdue:
                _print_task(task, projects, collaborators)
        for due_date in sorted(by_date):
            header = "Today" if due_date == today else due_date
            console.print(f"[bold]{header} ({len(by_date[due_date])})[/bold]")
            for task in by_date[due_date]:
                _print_task(task, projects, collaborators)

    print_footer(console, page.next_cursor)


def _print_task(
    task: Task, projects: dict[str, Project], collaborators: CollaboratorCache
) -> None:
    project = projects.get(task.project_id or "")
    parts = [f"  {escape(task.content)}", f"[dim]{task.id}[/dim]"]
    if project is not None:
        parts.append(f"[cyan]#{escape(project.name)}[/cyan]")
    assignee = format_assignee(task.responsible_uid, collaborators)
    if assignee:
        parts.append(f"[yellow]{escape(assignee)}[/yellow]")
    console.print("  ".join(parts))
