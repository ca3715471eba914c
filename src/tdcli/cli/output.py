"""Rendering helpers shared by the listing commands."""

from __future__ import annotations

import json
from collections.abc import Mapping

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tdcli.cli.pagination import Page
from tdcli.cli.sync.types import Project, Task

PRIORITY_STYLES = {4: "red", 3: "yellow", 2: "blue", 1: "white"}


def format_next_cursor_footer(next_cursor: str | None) -> str:
    if not next_cursor:
        return ""
    return f"More results available. Continue with --cursor {next_cursor}"


def print_page_json(console: Console, page: Page) -> None:
    """Print a page as ``{"results": [...], "next_cursor": ...}``."""
    console.print_json(json.dumps(page.to_dict()))


def print_footer(console: Console, next_cursor: str | None) -> None:
    footer = format_next_cursor_footer(next_cursor)
    if footer:
        console.print(f"\n[dim]{escape(footer)}[/dim]")


def render_tasks_table(
    console: Console,
    tasks: list[Task],
    projects: Mapping[str, Project],
    title: str = "Tasks",
    assignees: Mapping[str, str] | None = None,
) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Content", style="green")
    table.add_column("Due", style="yellow")
    table.add_column("Project", style="white")
    table.add_column("P", justify="right")
    if assignees is not None:
        table.add_column("Assignee", style="dim")

    for task in tasks:
        project = projects.get(task.project_id or "")
        priority_style = PRIORITY_STYLES.get(task.priority, "white")
        row = [
            task.id,
            escape(task.content),
            task.due_date or "-",
            escape(project.name) if project else "-",
            f"[{priority_style}]p{5 - task.priority}[/{priority_style}]",
        ]
        if assignees is not None:
            row.append(escape(assignees.get(task.id, "-")))
        table.add_row(*row)

    console.print(table)
