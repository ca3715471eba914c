"""Pure filter helpers over in-memory task and project lists.

None of these touch the network or the store; they work the same on cached
entities and on results of a live API call.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from tdcli.cli.sync.types import Project, Task


def filter_due_until(tasks: Iterable[Task], upper_bound: str) -> list[Task]:
    """Keep tasks with a due date on or before ``upper_bound`` (YYYY-MM-DD)."""
    return [task for task in tasks if task.due_date is not None and task.due_date <= upper_bound]


def filter_due(tasks: Iterable[Task], due: str, today: str) -> list[Task]:
    """Filter by a due keyword.

    Args:
        tasks: Tasks to filter
        due: ``today``, ``overdue`` or an exact YYYY-MM-DD date
        today: Today's date as YYYY-MM-DD
    """
    if due == "today":
        return [task for task in tasks if task.due_date == today]
    if due == "overdue":
        return [task for task in tasks if task.due_date is not None and task.due_date < today]
    return [task for task in tasks if task.due_date == due]


def filter_by_assignee(
    tasks: Iterable[Task], user_id: str, include_unassigned: bool = True
) -> list[Task]:
    """Keep tasks assigned to ``user_id``.

    With ``include_unassigned`` (the default views' rule) tasks assigned to
    nobody count as the user's own.
    """
    return [
        task
        for task in tasks
        if task.responsible_uid == user_id or (include_unassigned and not task.responsible_uid)
    ]


def filter_unassigned(tasks: Iterable[Task]) -> list[Task]:
    return [task for task in tasks if not task.responsible_uid]


def filter_by_labels(tasks: Iterable[Task], labels: Sequence[str]) -> list[Task]:
    """Keep tasks carrying any of ``labels`` (case-insensitive)."""
    needles = {label.lower() for label in labels}
    return [task for task in tasks if any(label.lower() in needles for label in task.labels)]


def filter_by_workspace(
    tasks: Iterable[Task],
    projects: Mapping[str, Project],
    workspace_id: str | None = None,
    personal: bool = False,
) -> list[Task]:
    """Keep tasks whose project lives in ``workspace_id``, or in no workspace.

    Tasks of unknown projects count as personal.
    """
    tasks = list(tasks)
    if workspace_id is None and not personal:
        return tasks

    def workspace_of(task: Task) -> str | None:
        project = projects.get(task.project_id or "")
        return project.workspace_id if project is not None else None

    if workspace_id is not None:
        return [task for task in tasks if workspace_of(task) == workspace_id]
    return [task for task in tasks if workspace_of(task) is None]


def filter_projects_by_workspace(
    projects: Iterable[Project], workspace_id: str | None = None, personal: bool = False
) -> list[Project]:
    """Project-level counterpart of :func:`filter_by_workspace`."""
    projects = list(projects)
    if workspace_id is not None:
        return [project for project in projects if project.workspace_id == workspace_id]
    if personal:
        return [project for project in projects if project.workspace_id is None]
    return projects
