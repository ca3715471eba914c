"""Tests for the in-memory filter helpers."""

from tdcli.cli.cache.filters import (
    filter_by_assignee,
    filter_by_labels,
    filter_by_workspace,
    filter_due,
    filter_due_until,
    filter_projects_by_workspace,
    filter_unassigned,
)
from tdcli.cli.sync.types import Due, Project, Task


def _task(task_id: str, due: str | None = None, **fields) -> Task:
    return Task(id=task_id, due=Due(date=due) if due else None, **fields)


def test_filter_due_until_includes_boundary():
    """Test the upper bound is inclusive and undated tasks are dropped."""
    tasks = [
        _task("1", "2024-06-01"),
        _task("2", "2024-06-07"),
        _task("3", "2024-06-08"),
        _task("4"),
        _task("5", "2024-06-07T09:00:00"),
    ]

    assert [t.id for t in filter_due_until(tasks, "2024-06-07")] == ["1", "2", "5"]


def test_filter_due_keywords():
    """Test today, overdue and exact-date filters."""
    tasks = [_task("1", "2024-06-01"), _task("2", "2024-06-05"), _task("3", "2024-06-09")]

    assert [t.id for t in filter_due(tasks, "today", "2024-06-05")] == ["2"]
    assert [t.id for t in filter_due(tasks, "overdue", "2024-06-05")] == ["1"]
    assert [t.id for t in filter_due(tasks, "2024-06-09", "2024-06-05")] == ["3"]


def test_unassigned_counts_as_mine():
    """Test the default view keeps own and unassigned tasks only."""
    tasks = [
        _task("1", responsible_uid="me"),
        _task("2", responsible_uid="someone"),
        _task("3"),
    ]

    assert [t.id for t in filter_by_assignee(tasks, "me")] == ["1", "3"]
    assert [t.id for t in filter_by_assignee(tasks, "me", include_unassigned=False)] == ["1"]
    assert [t.id for t in filter_unassigned(tasks)] == ["3"]


def test_filter_by_labels_is_case_insensitive():
    """Test label matching ignores case."""
    tasks = [_task("1", labels=["Work"]), _task("2", labels=["home"]), _task("3")]

    assert [t.id for t in filter_by_labels(tasks, ["work"])] == ["1"]
    assert [t.id for t in filter_by_labels(tasks, ["WORK", "Home"])] == ["1", "2"]


def test_filter_by_workspace():
    """Test workspace and personal filters; unknown projects are personal."""
    projects = {
        "p1": Project(id="p1", name="Team", workspace_id="w1"),
        "p2": Project(id="p2", name="Mine"),
    }
    tasks = [
        _task("1", project_id="p1"),
        _task("2", project_id="p2"),
        _task("3", project_id="unknown"),
    ]

    assert [t.id for t in filter_by_workspace(tasks, projects, workspace_id="w1")] == ["1"]
    assert [t.id for t in filter_by_workspace(tasks, projects, personal=True)] == ["2", "3"]
    assert len(filter_by_workspace(tasks, projects)) == 3


def test_filter_projects_by_workspace():
    """Test the project-level workspace filter."""
    projects = [Project(id="p1", workspace_id="w1"), Project(id="p2")]

    assert [p.id for p in filter_projects_by_workspace(projects, "w1")] == ["p1"]
    assert [p.id for p in filter_projects_by_workspace(projects, personal=True)] == ["p2"]
