"""Cache manager: the read handle command handlers get from the sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from tdcli.cli.cache.filters import (
    filter_by_labels,
    filter_by_workspace,
    filter_due,
    filter_unassigned,
)
from tdcli.cli.cache.repositories import (
    FilterRepository,
    FolderRepository,
    LabelRepository,
    ProjectRepository,
    SectionRepository,
    TaskRepository,
    UserRepository,
    WorkspaceRepository,
)
from tdcli.cli.cache.store import CacheStore
from tdcli.cli.pagination import LIMITS, Page, paginate_local
from tdcli.cli.sync.types import (
    Filter,
    Folder,
    Label,
    Project,
    Section,
    Task,
    User,
    Workspace,
)

CURRENT_USER_KEY = "current_user_id"


@dataclass
class TaskQuery:
    """Filters and paging for :meth:`CacheManager.query_tasks`."""

    limit: int = LIMITS["tasks"]
    cursor: str | None = None
    project_id: str | None = None
    parent_id: str | None = None
    top_level_only: bool = False
    priority: int | None = None
    due: str | None = None
    labels: list[str] = field(default_factory=list)
    assignee_id: str | None = None
    unassigned: bool = False
    workspace_id: str | None = None
    personal: bool = False
    include_completed: bool = False


class CacheManager:
    """Facade for read access to the local mirror.

    Every call is a snapshot read of the store; nothing here reaches the
    network.
    """

    def __init__(self, store: CacheStore):
        """Initialize the cache manager.

        Args:
            store: The persistent store to read from
        """
        self.store = store
        self.tasks = TaskRepository(store)
        self.projects = ProjectRepository(store)
        self.sections = SectionRepository(store)
        self.labels = LabelRepository(store)
        self.users = UserRepository(store)
        self.filters = FilterRepository(store)
        self.workspaces = WorkspaceRepository(store)
        self.folders = FolderRepository(store)

    # Task operations
    def list_tasks(self, include_completed: bool = False) -> list[Task]:
        return self.tasks.get_all(include_completed)

    def get_task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def query_tasks(self, query: TaskQuery, today: str | None = None) -> Page[Task]:
        """Filter cached tasks and return one page of the result.

        Args:
            query: Filters plus limit/cursor
            today: Today's date as YYYY-MM-DD (local date when omitted)

        Returns:
            The requested page with a local cursor for the next one
        """
        tasks = self.list_tasks(query.include_completed)

        if query.project_id:
            tasks = [task for task in tasks if task.project_id == query.project_id]
        if query.parent_id is not None or query.top_level_only:
            tasks = [task for task in tasks if task.parent_id == query.parent_id]
        if query.priority is not None:
            tasks = [task for task in tasks if task.priority == query.priority]
        if query.due:
            tasks = filter_due(tasks, query.due, today or date.today().isoformat())
        if query.labels:
            tasks = filter_by_labels(tasks, query.labels)
        if query.assignee_id:
            tasks = [task for task in tasks if task.responsible_uid == query.assignee_id]
        if query.unassigned:
            tasks = filter_unassigned(tasks)
        if query.workspace_id or query.personal:
            tasks = filter_by_workspace(
                tasks, self.project_map(), query.workspace_id, query.personal
            )

        return paginate_local(tasks, query.limit, query.cursor)

    # Project operations
    def list_projects(self) -> list[Project]:
        return self.projects.get_all()

    def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    def project_map(self) -> dict[str, Project]:
        """Get cached projects keyed by ID."""
        return {project.id: project for project in self.list_projects()}

    # Other scopes
    def list_sections(self, project_id: str | None = None) -> list[Section]:
        if project_id:
            return self.sections.get_by_project(project_id)
        return self.sections.get_all()

    def list_labels(self) -> list[Label]:
        return self.labels.get_all()

    def list_users(self) -> list[User]:
        return self.users.get_all()

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def list_filters(self) -> list[Filter]:
        return self.filters.get_all()

    def list_workspaces(self) -> list[Workspace]:
        return self.workspaces.get_all()

    def list_folders(self, workspace_id: str | None = None) -> list[Folder]:
        if workspace_id:
            return self.folders.get_by_workspace(workspace_id)
        return self.folders.get_all()

    def get_current_user_id(self) -> str | None:
        """Get the authenticated user's ID.

        Prefers the explicitly recorded ID; falls back to the cached user
        entity when exactly one is known.
        """
        recorded = self.store.get_meta(CURRENT_USER_KEY)
        if recorded:
            return recorded
        users = self.list_users()
        return users[0].id if len(users) == 1 else None
