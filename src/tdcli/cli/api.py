"""Live REST calls used when the local cache cannot serve a listing."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tdcli.cli.client import request_json
from tdcli.cli.errors import RemoteRejected
from tdcli.cli.pagination import Page
from tdcli.cli.sync.types import Collaborator, Project, Task, User

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

M = TypeVar("M", bound=BaseModel)


class WorkspaceUser(BaseModel):
    """A member of a workspace as reported by the workspace users endpoint."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    user_id: str
    full_name: str = ""
    user_email: str = ""
    role: str = Field("MEMBER", description="Workspace role (ADMIN, MEMBER, GUEST)")

    def to_collaborator(self) -> Collaborator:
        return Collaborator(id=self.user_id, name=self.full_name, email=self.user_email)


def _validate(model: type[M], raw: Any, what: str) -> M:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise RemoteRejected(f"Malformed {what} in API response") from e


def _page(model: type[M], data: Any, what: str, key: str = "results") -> Page[M]:
    if not isinstance(data, dict) or not isinstance(data.get(key), list):
        raise RemoteRejected(f"Malformed {what} listing: missing '{key}'")
    return Page(
        results=[_validate(model, row, what) for row in data[key]],
        next_cursor=data.get("next_cursor") or None,
    )


def _params(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class TodoistApi:
    """Thin wrapper over the REST endpoints the commands need."""

    def __init__(self, client: httpx.AsyncClient):
        """Initialize the API wrapper.

        Args:
            client: Authenticated HTTP client; its lifecycle belongs to the caller.
        """
        self._client = client

    async def _get(self, path: str, action: str, **params: Any) -> Any:
        return await request_json(
            self._client, "GET", f"{API_PREFIX}{path}", action, params=_params(**params)
        )

    async def get_tasks(
        self,
        cursor: str | None = None,
        limit: int = 200,
        project_id: str | None = None,
    ) -> Page[Task]:
        """Get one page of active tasks."""
        data = await self._get(
            "/tasks", "list tasks", cursor=cursor, limit=limit, project_id=project_id
        )
        return _page(Task, data, "task")

    async def get_tasks_by_filter(
        self, query: str, cursor: str | None = None, limit: int = 200
    ) -> Page[Task]:
        """Get one page of tasks matching a filter query.

        Args:
            query: Filter expression, e.g. ``due before: 7 days``
            cursor: Service cursor from a previous page
            limit: Page size
        """
        data = await self._get(
            "/tasks/filter", "filter tasks", query=query, cursor=cursor, limit=limit
        )
        return _page(Task, data, "task")

    async def get_projects(self, cursor: str | None = None, limit: int = 200) -> Page[Project]:
        """Get one page of projects."""
        data = await self._get("/projects", "list projects", cursor=cursor, limit=limit)
        return _page(Project, data, "project")

    async def get_all_projects(self) -> list[Project]:
        """Get every project by following cursors to the end."""
        projects: list[Project] = []
        cursor: str | None = None
        while True:
            page = await self.get_projects(cursor=cursor)
            projects.extend(page.results)
            if not page.next_cursor:
                return projects
            cursor = page.next_cursor

    async def add_task(
        self,
        content: str,
        project_id: str | None = None,
        due_string: str | None = None,
        priority: int | None = None,
    ) -> Task:
        """Create a task and return it as stored by the service.

        Args:
            content: Task title
            project_id: Target project; the inbox when omitted
            due_string: Natural language due date ("tomorrow", "every monday")
            priority: Service priority, 4 is the most urgent
        """
        data = await request_json(
            self._client,
            "POST",
            f"{API_PREFIX}/tasks",
            "add task",
            json=_params(
                content=content,
                project_id=project_id,
                due_string=due_string,
                priority=priority,
            ),
        )
        return _validate(Task, data, "task")

    async def close_task(self, task_id: str) -> None:
        """Complete a task."""
        await request_json(
            self._client, "POST", f"{API_PREFIX}/tasks/{task_id}/close", "complete task"
        )

    async def get_user(self) -> User:
        """Get the authenticated user."""
        data = await self._get("/user", "get user")
        return _validate(User, data, "user")

    async def get_project_collaborators(self, project_id: str) -> list[Collaborator]:
        """Get every collaborator of a shared project."""
        collaborators: list[Collaborator] = []
        cursor: str | None = None
        while True:
            data = await self._get(
                f"/projects/{project_id}/collaborators",
                "list collaborators",
                cursor=cursor,
                limit=200,
            )
            page = _page(Collaborator, data, "collaborator")
            collaborators.extend(page.results)
            if not page.next_cursor:
                return collaborators
            cursor = page.next_cursor

    async def get_workspace_users(self, workspace_id: str) -> list[WorkspaceUser]:
        """Get every member of a workspace."""
        users: list[WorkspaceUser] = []
        cursor: str | None = None
        while True:
            data = await self._get(
                "/workspaces/users",
                "list workspace users",
                workspace_id=workspace_id,
                cursor=cursor,
                limit=200,
            )
            page = _page(WorkspaceUser, data, "workspace user", key="workspace_users")
            users.extend(page.results)
            if not data.get("has_more") or not page.next_cursor:
                return users
            cursor = page.next_cursor
