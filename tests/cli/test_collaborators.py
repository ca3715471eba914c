"""Tests for the collaborator name cache."""

from unittest.mock import AsyncMock

import pytest

from tdcli.cli.api import WorkspaceUser
from tdcli.cli.collaborators import (
    CollaboratorCache,
    format_assignee,
    format_user_short_name,
)
from tdcli.cli.errors import RemoteUnavailable
from tdcli.cli.sync.types import Collaborator, Project, Task, User

PROJECTS = {
    "shared": Project(id="shared", name="Shared", is_shared=True),
    "team-a": Project(id="team-a", name="Team A", workspace_id="w1"),
    "team-b": Project(id="team-b", name="Team B", workspace_id="w1"),
    "private": Project(id="private", name="Private"),
}


def _api() -> AsyncMock:
    api = AsyncMock()
    api.get_workspace_users.return_value = [
        WorkspaceUser(user_id="u1", full_name="Ann Lee", user_email="ann@example.com"),
        WorkspaceUser(user_id="u2", full_name="Bob Ray", user_email="bob@example.com"),
    ]
    api.get_project_collaborators.return_value = [
        Collaborator(id="u3", name="Cat Stone", email="cat@example.com"),
    ]
    return api


@pytest.mark.parametrize(
    ("full_name", "expected"),
    [("Ann Lee", "Ann L."), ("Jane Q. Doe", "Jane D."), ("Plato", "Plato"), ("", None)],
)
def test_format_user_short_name(full_name: str, expected: str | None):
    """Test names are shortened to first name and last initial."""
    assert format_user_short_name(full_name) == expected


@pytest.mark.asyncio
async def test_preload_batches_by_context():
    """Test one lookup per workspace and per shared project, never per task."""
    api = _api()
    tasks = [
        Task(id="1", project_id="team-a", responsible_uid="u1"),
        Task(id="2", project_id="team-b", responsible_uid="u2"),
        Task(id="3", project_id="shared", responsible_uid="u3"),
        Task(id="4", project_id="shared", responsible_uid="u3"),
        Task(id="5", project_id="private"),
    ]
    cache = CollaboratorCache()

    await cache.preload(api, tasks, PROJECTS)

    api.get_workspace_users.assert_awaited_once_with("w1")
    api.get_project_collaborators.assert_awaited_once_with("shared")
    assert cache.resolve("u1") == "Ann L."
    assert cache.resolve("u3") == "Cat S."
    assert cache.resolve("nobody") is None


@pytest.mark.asyncio
async def test_preload_skips_known_users():
    """Test seeded users need no remote lookup."""
    api = _api()
    cache = CollaboratorCache()
    cache.seed([User(id="u1", full_name="Ann Lee", email="ann@example.com")])

    await cache.preload(api, [Task(id="1", project_id="team-a", responsible_uid="u1")], PROJECTS)

    api.get_workspace_users.assert_not_awaited()
    assert cache.resolve("u1") == "Ann L."


@pytest.mark.asyncio
async def test_preload_is_memoized():
    """Test a second preload for the same context does not refetch."""
    api = _api()
    cache = CollaboratorCache()
    tasks = [Task(id="1", project_id="team-a", responsible_uid="u9")]

    await cache.preload(api, tasks, PROJECTS)
    await cache.preload(api, tasks, PROJECTS)

    assert api.get_workspace_users.await_count == 1


@pytest.mark.asyncio
async def test_preload_failure_is_not_fatal():
    """Test a failed lookup leaves names unresolved instead of raising."""
    api = _api()
    api.get_project_collaborators.side_effect = RemoteUnavailable("down")
    cache = CollaboratorCache()

    await cache.preload(
        api,
        [
            Task(id="1", project_id="shared", responsible_uid="u3"),
            Task(id="2", project_id="team-a", responsible_uid="u1"),
        ],
        PROJECTS,
    )

    assert cache.resolve("u3") is None
    assert cache.resolve("u1") == "Ann L."


def test_format_assignee():
    """Test assignee rendering falls back to the raw id."""
    cache = CollaboratorCache()
    cache.add(Collaborator(id="u1", name="Ann Lee"))

    assert format_assignee("u1", cache) == "+Ann L."
    assert format_assignee("u2", cache) == "+u2"
    assert format_assignee(None, cache) is None
