"""Resource scopes, cached entity types and the delta payload."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Sync token that requests a full resync
FULL_SYNC_TOKEN = "*"


class ResourceScope(str, Enum):
    """Kinds of remote collections mirrored by the cache."""

    ITEMS = "items"
    PROJECTS = "projects"
    SECTIONS = "sections"
    LABELS = "labels"
    USERS = "users"
    FILTERS = "filters"
    WORKSPACES = "workspaces"
    FOLDERS = "folders"


ALL_SCOPES: frozenset[ResourceScope] = frozenset(ResourceScope)


def normalize_scopes(scopes: Iterable[ResourceScope | str] | None) -> frozenset[ResourceScope]:
    """Turn a scope list into a set; an empty list means every scope.

    Raises:
        ValueError: If a name is not a known scope.
    """
    resolved = frozenset(ResourceScope(scope) for scope in (scopes or ()))
    return resolved or ALL_SCOPES


class Entity(BaseModel):
    """Common shape of every cached entity.

    Unknown wire fields are kept so the stored snapshot is the service's
    full representation.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str = Field(..., description="Service-assigned identifier")
    is_deleted: bool = Field(False, description="Deletion flag from the wire format")


class Due(BaseModel):
    """Due date of a task."""

    model_config = ConfigDict(extra="allow")

    date: str
    string: str | None = None
    is_recurring: bool = False
    timezone: str | None = None
    lang: str | None = None


class Task(Entity):
    """A task (the service calls them items)."""

    content: str = ""
    description: str = ""
    project_id: str | None = None
    section_id: str | None = None
    parent_id: str | None = None
    labels: list[str] = Field(default_factory=list)
    priority: int = 1
    due: Due | None = None
    checked: bool = False
    responsible_uid: str | None = None
    added_by_uid: str | None = None
    child_order: int = 0
    added_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None

    @property
    def due_date(self) -> str | None:
        """Date part (YYYY-MM-DD) of the due date, if any."""
        if self.due is None or not self.due.date:
            return None
        return self.due.date.split("T")[0]


class Project(Entity):
    """A personal or workspace project."""

    name: str = ""
    color: str = "charcoal"
    parent_id: str | None = None
    workspace_id: str | None = None
    folder_id: str | None = None
    is_shared: bool = False
    is_archived: bool = False
    is_favorite: bool = False
    inbox_project: bool = False
    child_order: int = 0

    @property
    def is_workspace_project(self) -> bool:
        return self.workspace_id is not None


class Section(Entity):
    """A section inside a project."""

    name: str = ""
    project_id: str | None = None
    section_order: int = 0


class Label(Entity):
    """A personal label."""

    name: str = ""
    color: str = "charcoal"
    is_favorite: bool = False
    item_order: int = 0


class User(Entity):
    """The authenticated user as reported by the sync endpoint."""

    email: str = ""
    full_name: str | None = None
    name: str | None = None
    inbox_project_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.name or self.email


class Filter(Entity):
    """A saved filter."""

    name: str = ""
    query: str = ""
    color: str | None = None
    item_order: int = 0
    is_favorite: bool = False


class Workspace(Entity):
    """A team workspace."""

    name: str = ""
    role: str = "MEMBER"
    plan: str = "STARTER"


class Folder(Entity):
    """A project folder inside a workspace."""

    name: str = ""
    workspace_id: str | None = None


class Collaborator(BaseModel):
    """A user that can be assigned tasks in a shared project or workspace."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    name: str = ""
    email: str = ""


ENTITY_TYPES: dict[ResourceScope, type[Entity]] = {
    ResourceScope.ITEMS: Task,
    ResourceScope.PROJECTS: Project,
    ResourceScope.SECTIONS: Section,
    ResourceScope.LABELS: Label,
    ResourceScope.USERS: User,
    ResourceScope.FILTERS: Filter,
    ResourceScope.WORKSPACES: Workspace,
    ResourceScope.FOLDERS: Folder,
}

_SCOPE_BY_TYPE = {entity_type: scope for scope, entity_type in ENTITY_TYPES.items()}


@dataclass(frozen=True)
class CachedEntity:
    """An entity tagged with the scope it belongs to."""

    scope: ResourceScope
    value: Entity

    def __post_init__(self) -> None:
        expected = ENTITY_TYPES[self.scope]
        if not isinstance(self.value, expected):
            raise TypeError(
                f"{self.scope.value} entities must be {expected.__name__}, "
                f"got {type(self.value).__name__}"
            )

    @classmethod
    def of(cls, value: Entity) -> CachedEntity:
        """Wrap an entity, deriving its scope from its type."""
        return cls(scope=_SCOPE_BY_TYPE[type(value)], value=value)

    @classmethod
    def from_wire(cls, scope: ResourceScope, raw: dict[str, Any]) -> CachedEntity:
        """Validate a raw wire row into the entity type for ``scope``."""
        return cls(scope=scope, value=ENTITY_TYPES[scope].model_validate(raw))

    @property
    def id(self) -> str:
        return self.value.id


@dataclass
class DeltaPayload:
    """One unit of change returned by a sync fetch.

    ``scopes`` lists the scopes the fetch covered; a full resync replaces
    each of them even when it carries no rows for one.
    """

    token: str
    is_full_resync: bool = False
    upserts: list[CachedEntity] = field(default_factory=list)
    deletions: list[tuple[ResourceScope, str]] = field(default_factory=list)
    scopes: frozenset[ResourceScope] = frozenset()

    @property
    def covered_scopes(self) -> frozenset[ResourceScope]:
        mentioned = {entity.scope for entity in self.upserts}
        mentioned.update(scope for scope, _ in self.deletions)
        return self.scopes | frozenset(mentioned)
