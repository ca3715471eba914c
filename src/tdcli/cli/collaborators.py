"""Command-scoped cache of collaborator display names.

Collaborator lists are scoped to a shared project or to a workspace, so the
names needed to annotate a result set are loaded with one lookup per
distinct project or workspace, all in parallel, before rendering starts.
Nothing here is persisted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping

from tdcli.cli.api import TodoistApi
from tdcli.cli.errors import RemoteRejected, RemoteUnavailable
from tdcli.cli.sync.types import Collaborator, Project, Task, User

logger = logging.getLogger(__name__)


def format_user_short_name(full_name: str | None) -> str | None:
    """Shorten "Jane Q. Doe" to "Jane D."."""
    if not full_name or not full_name.strip():
        return None
    parts = full_name.split()
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]} {parts[-1][0].upper()}."


class CollaboratorCache:
    """Batches and memoizes user name lookups for one command invocation."""

    def __init__(self) -> None:
        self._people: dict[str, Collaborator] = {}
        self._loaded_workspaces: set[str] = set()
        self._loaded_projects: set[str] = set()

    def add(self, collaborator: Collaborator) -> None:
        self._people[collaborator.id] = collaborator

    def seed(self, users: Iterable[User]) -> None:
        """Register users already known locally so they need no lookup."""
        for user in users:
            self.add(Collaborator(id=user.id, name=user.display_name, email=user.email))

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._people

    async def preload(
        self,
        api: TodoistApi,
        tasks: Iterable[Task],
        projects: Mapping[str, Project],
    ) -> None:
        """Load the names of every assignee in ``tasks`` not known yet.

        Args:
            api: Live API used for the lookups
            tasks: Result set about to be rendered
            projects: Projects keyed by ID, used to find each task's context
        """
        workspace_ids: set[str] = set()
        project_ids: set[str] = set()

        for task in tasks:
            if not task.responsible_uid or task.responsible_uid in self._people:
                continue
            project = projects.get(task.project_id or "")
            if project is None:
                continue
            if project.workspace_id:
                workspace_ids.add(project.workspace_id)
            elif project.is_shared:
                project_ids.add(project.id)

        workspace_ids -= self._loaded_workspaces
        project_ids -= self._loaded_projects
        if not workspace_ids and not project_ids:
            return

        logger.debug(
            "Preloading collaborators: %d workspaces, %d projects",
            len(workspace_ids),
            len(project_ids),
        )
        await asyncio.gather(
            *(self._load_workspace(api, workspace_id) for workspace_id in sorted(workspace_ids)),
            *(self._load_project(api, project_id) for project_id in sorted(project_ids)),
        )

    async def _load_workspace(self, api: TodoistApi, workspace_id: str) -> None:
        try:
            users = await api.get_workspace_users(workspace_id)
        except (RemoteUnavailable, RemoteRejected) as e:
            logger.warning("Could not load members of workspace %s: %s", workspace_id, e)
            return
        self._loaded_workspaces.add(workspace_id)
        for user in users:
            self.add(user.to_collaborator())

    async def _load_project(self, api: TodoistApi, project_id: str) -> None:
        try:
            collaborators = await api.get_project_collaborators(project_id)
        except (RemoteUnavailable, RemoteRejected) as e:
            logger.warning("Could not load collaborators of project %s: %s", project_id, e)
            return
        self._loaded_projects.add(project_id)
        for collaborator in collaborators:
            self.add(collaborator)

    def resolve(self, user_id: str) -> str | None:
        """Get a short display name for ``user_id`` from memory only."""
        person = self._people.get(user_id)
        if person is None:
            return None
        return format_user_short_name(person.name) or person.email or None


def format_assignee(user_id: str | None, cache: CollaboratorCache) -> str | None:
    """Render an assignee as ``+Name``; unknown users fall back to their ID."""
    if not user_id:
        return None
    return f"+{cache.resolve(user_id) or user_id}"
