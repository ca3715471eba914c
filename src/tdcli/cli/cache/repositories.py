"""Repository pattern for read access to cached scopes."""

from __future__ import annotations

from typing import Generic, TypeVar, cast

from tdcli.cli.cache.store import CacheStore
from tdcli.cli.sync.types import (
    Entity,
    Filter,
    Folder,
    Label,
    Project,
    ResourceScope,
    Section,
    Task,
    User,
    Workspace,
)

# Type variable for cached entities
T = TypeVar("T", bound=Entity)


class ScopeRepository(Generic[T]):
    """Base repository bound to one resource scope."""

    scope: ResourceScope

    def __init__(self, store: CacheStore):
        """Initialize the repository.

        Args:
            store: The persistent store to read from
        """
        self.store = store

    def get(self, entity_id: str) -> T | None:
        """Get a cached entity by ID.

        Args:
            entity_id: The service ID to look up

        Returns:
            The cached entity or None if not found
        """
        return cast("T | None", self.store.get(self.scope, entity_id))

    def get_all(self) -> list[T]:
        """Get all cached entities of this scope in first-seen order."""
        return cast("list[T]", self.store.list(self.scope))


class _NameOrderedRepository(ScopeRepository[T]):
    def get_all(self) -> list[T]:
        return sorted(super().get_all(), key=lambda item: getattr(item, "name", "").lower())


class TaskRepository(ScopeRepository[Task]):
    """Repository for cached tasks."""

    scope = ResourceScope.ITEMS

    def get_all(self, include_completed: bool = False) -> list[Task]:
        """Get cached tasks.

        Args:
            include_completed: Also return checked tasks
        """
        tasks = super().get_all()
        if include_completed:
            return tasks
        return [task for task in tasks if not task.checked]

    def get_by_project(self, project_id: str) -> list[Task]:
        return [task for task in self.get_all() if task.project_id == project_id]


class ProjectRepository(ScopeRepository[Project]):
    """Repository for cached projects."""

    scope = ResourceScope.PROJECTS

    def get_by_name(self, name: str) -> Project | None:
        """Get a cached project by name (case-insensitive)."""
        needle = name.lower()
        return next((p for p in self.get_all() if p.name.lower() == needle), None)


class SectionRepository(ScopeRepository[Section]):
    """Repository for cached sections."""

    scope = ResourceScope.SECTIONS

    def get_all(self) -> list[Section]:
        return sorted(super().get_all(), key=lambda section: section.section_order)

    def get_by_project(self, project_id: str) -> list[Section]:
        return [section for section in self.get_all() if section.project_id == project_id]


class LabelRepository(_NameOrderedRepository[Label]):
    """Repository for cached labels."""

    scope = ResourceScope.LABELS


class UserRepository(ScopeRepository[User]):
    """Repository for cached users."""

    scope = ResourceScope.USERS


class FilterRepository(_NameOrderedRepository[Filter]):
    """Repository for cached saved filters."""

    scope = ResourceScope.FILTERS

    def get_all(self) -> list[Filter]:
        return [item for item in super().get_all() if not item.is_deleted]


class WorkspaceRepository(_NameOrderedRepository[Workspace]):
    """Repository for cached workspaces."""

    scope = ResourceScope.WORKSPACES


class FolderRepository(_NameOrderedRepository[Folder]):
    """Repository for cached workspace folders."""

    scope = ResourceScope.FOLDERS

    def get_by_workspace(self, workspace_id: str) -> list[Folder]:
        return [folder for folder in self.get_all() if folder.workspace_id == workspace_id]
