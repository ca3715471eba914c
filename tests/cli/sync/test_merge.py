"""Tests for applying delta payloads to the store."""

from pathlib import Path

import pytest

from tdcli.cli.cache.store import CacheStore
from tdcli.cli.sync.merge import MergeEngine
from tdcli.cli.sync.types import CachedEntity, DeltaPayload, Project, ResourceScope, Task


@pytest.fixture
def store(tmp_path: Path):
    """Create a store backed by a temporary SQLite file."""
    cache = CacheStore.open(tmp_path / "cache.db")
    yield cache
    cache.close()


def _task(task_id: str, content: str = "", **fields) -> CachedEntity:
    return CachedEntity.of(Task(id=task_id, content=content, **fields))


def _ids(store: CacheStore, scope: ResourceScope = ResourceScope.ITEMS) -> list[str]:
    return [entity.id for entity in store.list(scope)]


def test_full_resync_replaces_scope(store: CacheStore):
    """Test a full resync drops every entity missing from the payload."""
    store.upsert_many(ResourceScope.ITEMS, [Task(id="1"), Task(id="2"), Task(id="3")])

    MergeEngine(store).apply(
        DeltaPayload(
            token="t2",
            is_full_resync=True,
            upserts=[_task("4")],
            scopes=frozenset({ResourceScope.ITEMS}),
        )
    )

    assert _ids(store) == ["4"]
    assert store.get_token(ResourceScope.ITEMS) == "t2"


def test_full_resync_empties_covered_scope_without_rows(store: CacheStore):
    """Test a covered scope with no rows in a full resync ends up empty."""
    store.upsert(ResourceScope.PROJECTS, Project(id="p1"))

    MergeEngine(store).apply(
        DeltaPayload(
            token="t1",
            is_full_resync=True,
            upserts=[_task("1")],
            scopes=frozenset({ResourceScope.ITEMS, ResourceScope.PROJECTS}),
        )
    )

    assert _ids(store, ResourceScope.PROJECTS) == []
    assert store.get_token(ResourceScope.PROJECTS) == "t1"


def test_full_resync_leaves_other_scopes_alone(store: CacheStore):
    """Test scopes outside the payload keep their entities and tokens."""
    store.upsert(ResourceScope.PROJECTS, Project(id="p1"))
    store.set_token(ResourceScope.PROJECTS, "old")

    MergeEngine(store).apply(
        DeltaPayload(token="t1", is_full_resync=True, scopes=frozenset({ResourceScope.ITEMS}))
    )

    assert _ids(store, ResourceScope.PROJECTS) == ["p1"]
    assert store.get_token(ResourceScope.PROJECTS) == "old"


def test_incremental_upsert_and_delete(store: CacheStore):
    """Test an incremental delta touches only the ids it mentions."""
    store.upsert_many(ResourceScope.ITEMS, [Task(id="1"), Task(id="2"), Task(id="3")])

    MergeEngine(store).apply(
        DeltaPayload(
            token="t2",
            upserts=[_task("2", "changed"), _task("5", "new")],
            deletions=[(ResourceScope.ITEMS, "1")],
            scopes=frozenset({ResourceScope.ITEMS}),
        )
    )

    assert _ids(store) == ["2", "3", "5"]
    assert store.get(ResourceScope.ITEMS, "2").content == "changed"


def test_deletion_of_unknown_id_is_noop(store: CacheStore):
    """Test deleting an id that was never cached does not fail."""
    MergeEngine(store).apply(
        DeltaPayload(
            token="t1",
            deletions=[(ResourceScope.ITEMS, "ghost")],
            scopes=frozenset({ResourceScope.ITEMS}),
        )
    )

    assert _ids(store) == []
    assert store.get_token(ResourceScope.ITEMS) == "t1"


def test_upsert_flagged_deleted_is_removed(store: CacheStore):
    """Test an upsert carrying is_deleted acts as a deletion."""
    store.upsert(ResourceScope.ITEMS, Task(id="1"))

    MergeEngine(store).apply(
        DeltaPayload(
            token="t2",
            upserts=[_task("1", is_deleted=True)],
            scopes=frozenset({ResourceScope.ITEMS}),
        )
    )

    assert _ids(store) == []


def test_deletion_wins_within_one_payload(store: CacheStore):
    """Test a deletion and an upsert of the same id in one payload deletes it."""
    MergeEngine(store).apply(
        DeltaPayload(
            token="t1",
            upserts=[_task("1", "resurrected")],
            deletions=[(ResourceScope.ITEMS, "1")],
            scopes=frozenset({ResourceScope.ITEMS}),
        )
    )

    assert _ids(store) == []


def test_later_payload_wins(store: CacheStore):
    """Test an upsert arriving after a deletion brings the entity back."""
    engine = MergeEngine(store)
    scopes = frozenset({ResourceScope.ITEMS})
    engine.apply(DeltaPayload(token="t1", upserts=[_task("1", "a")], scopes=scopes))
    engine.apply(DeltaPayload(token="t2", deletions=[(ResourceScope.ITEMS, "1")], scopes=scopes))
    engine.apply(DeltaPayload(token="t3", upserts=[_task("1", "b")], scopes=scopes))

    assert store.get(ResourceScope.ITEMS, "1").content == "b"
    assert store.get_token(ResourceScope.ITEMS) == "t3"


def test_apply_is_idempotent(store: CacheStore):
    """Test applying the same payload twice gives the same state as once."""
    payload = DeltaPayload(
        token="t2",
        upserts=[_task("1", "a"), _task("2", "b")],
        deletions=[(ResourceScope.ITEMS, "3")],
        scopes=frozenset({ResourceScope.ITEMS}),
    )
    store.upsert(ResourceScope.ITEMS, Task(id="3"))

    engine = MergeEngine(store)
    engine.apply(payload)
    first = [entity.model_dump() for entity in store.list(ResourceScope.ITEMS)]
    engine.apply(payload)
    second = [entity.model_dump() for entity in store.list(ResourceScope.ITEMS)]

    assert first == second
    assert store.get_token(ResourceScope.ITEMS) == "t2"


def test_token_set_for_scope_mentioned_only_by_rows(store: CacheStore):
    """Test a scope that only appears through its rows still gets the token."""
    MergeEngine(store).apply(
        DeltaPayload(token="t9", upserts=[CachedEntity.of(Project(id="p1"))])
    )

    assert store.get_token(ResourceScope.PROJECTS) == "t9"
    assert store.get_token(ResourceScope.ITEMS) is None
