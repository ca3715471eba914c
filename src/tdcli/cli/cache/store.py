"""Persistent store for the sync mirror.

Maps (scope, entity id) to the latest known entity snapshot and keeps one
sync token and one last-refreshed timestamp per scope. Every public method
runs in its own transaction unless called inside :meth:`CacheStore.atomic`,
in which case all work joins the surrounding transaction and becomes visible
to other readers at once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from tdcli.cli.cache.database import get_cache_engine, get_session_factory, init_cache_db
from tdcli.cli.cache.models import CachedEntityRow, CacheMeta, SyncState
from tdcli.cli.errors import StoreCorrupt
from tdcli.cli.sync.types import ENTITY_TYPES, CachedEntity, Entity, ResourceScope

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class ScopeState:
    """Snapshot of one scope's sync bookkeeping."""

    scope: ResourceScope
    token: str | None
    last_refreshed_at: datetime | None
    dirty: bool
    count: int


class CacheStore:
    """Durable (scope, id) -> entity mapping backed by SQLite."""

    def __init__(self, engine: Engine):
        """Initialize the store and create its tables.

        Args:
            engine: SQLAlchemy engine for the cache database

        Raises:
            StoreCorrupt: If the database file cannot be read.
        """
        self._engine = engine
        try:
            init_cache_db(engine)
        except StoreCorrupt:
            engine.dispose()
            raise
        self._sessions = get_session_factory(engine)
        self._active: Session | None = None

    @classmethod
    def open(cls, db_path: Path) -> CacheStore:
        """Open (or create) the store at ``db_path``."""
        return cls(get_cache_engine(db_path))

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group every store call in the block into a single transaction."""
        if self._active is not None:
            yield
            return

        session = self._sessions()
        self._active = session
        try:
            yield
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            self._active = None
            session.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._active is not None:
            yield self._active
            return
        with self._sessions.begin() as session:
            yield session

    def _decode(self, scope: ResourceScope, row: CachedEntityRow) -> Entity:
        try:
            return ENTITY_TYPES[scope].model_validate_json(row.data)
        except ValidationError as e:
            raise StoreCorrupt(
                f"Cached {scope.value} entry {row.entity_id} is unreadable"
            ) from e

    # Entities

    def get(self, scope: ResourceScope, entity_id: str) -> Entity | None:
        """Get the cached snapshot of one entity.

        Returns:
            The entity or None if not cached

        Raises:
            StoreCorrupt: If the stored snapshot cannot be decoded.
        """
        with self._session() as session:
            row = session.get(CachedEntityRow, (scope.value, entity_id))
            return self._decode(scope, row) if row is not None else None

    def list(self, scope: ResourceScope) -> list[Entity]:
        """Get every cached entity of a scope, in first-seen order.

        Raises:
            StoreCorrupt: If any stored snapshot cannot be decoded.
        """
        with self._session() as session:
            stmt = (
                select(CachedEntityRow)
                .where(CachedEntityRow.scope == scope.value)
                .order_by(CachedEntityRow.seq)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._decode(scope, row) for row in rows]

    def count(self, scope: ResourceScope) -> int:
        with self._session() as session:
            stmt = select(func.count()).where(CachedEntityRow.scope == scope.value)
            return int(session.execute(stmt).scalar_one())

    def upsert(self, scope: ResourceScope, entity: Entity) -> None:
        """Save or replace the snapshot of one entity."""
        self.upsert_many(scope, [entity])

    def upsert_many(self, scope: ResourceScope, entities: Iterable[Entity]) -> None:
        """Save or replace several snapshots of the same scope."""
        with self._session() as session:
            next_seq: int | None = None
            for entity in entities:
                CachedEntity(scope=scope, value=entity)  # type check
                data = entity.model_dump_json()
                row = session.get(CachedEntityRow, (scope.value, entity.id))
                if row is not None:
                    row.data = data
                    continue
                if next_seq is None:
                    stmt = select(func.max(CachedEntityRow.seq)).where(
                        CachedEntityRow.scope == scope.value
                    )
                    next_seq = (session.execute(stmt).scalar_one_or_none() or 0) + 1
                session.add(
                    CachedEntityRow(
                        scope=scope.value, entity_id=entity.id, seq=next_seq, data=data
                    )
                )
                next_seq += 1
            session.flush()

    def remove(self, scope: ResourceScope, entity_id: str) -> None:
        """Delete one entity; deleting an unknown id is a no-op."""
        with self._session() as session:
            session.execute(
                delete(CachedEntityRow).where(
                    CachedEntityRow.scope == scope.value,
                    CachedEntityRow.entity_id == entity_id,
                )
            )

    def replace_scope(self, scope: ResourceScope, entities: Iterable[Entity]) -> None:
        """Swap the whole content of a scope for ``entities`` in one transaction."""
        entities = list(entities)
        with self.atomic():
            with self._session() as session:
                session.execute(
                    delete(CachedEntityRow).where(CachedEntityRow.scope == scope.value)
                )
                session.flush()
            self.upsert_many(scope, entities)
        logger.debug("Replaced %s with %d entities", scope.value, len(entities))

    # Sync state

    def _state(self, session: Session, scope: ResourceScope) -> SyncState:
        state = session.get(SyncState, scope.value)
        if state is None:
            state = SyncState(scope=scope.value, dirty=False)
            session.add(state)
        return state

    def get_token(self, scope: ResourceScope) -> str | None:
        with self._session() as session:
            state = session.get(SyncState, scope.value)
            return state.sync_token if state is not None else None

    def set_token(self, scope: ResourceScope, token: str) -> None:
        with self._session() as session:
            self._state(session, scope).sync_token = token

    def get_last_refreshed(self, scope: ResourceScope) -> datetime | None:
        with self._session() as session:
            state = session.get(SyncState, scope.value)
            return _as_utc(state.last_refreshed_at) if state is not None else None

    def set_last_refreshed(self, scope: ResourceScope, timestamp: datetime) -> None:
        with self._session() as session:
            self._state(session, scope).last_refreshed_at = timestamp

    def is_dirty(self, scope: ResourceScope) -> bool:
        with self._session() as session:
            state = session.get(SyncState, scope.value)
            return bool(state.dirty) if state is not None else False

    def set_dirty(self, scope: ResourceScope, dirty: bool) -> None:
        with self._session() as session:
            self._state(session, scope).dirty = dirty

    def states(self) -> list[ScopeState]:
        """Get bookkeeping for every scope, including never-synced ones."""
        with self._session() as session:
            rows = {row.scope: row for row in session.execute(select(SyncState)).scalars()}
            counts = dict(
                session.execute(
                    select(CachedEntityRow.scope, func.count()).group_by(CachedEntityRow.scope)
                ).all()
            )
        result = []
        for scope in ResourceScope:
            state = rows.get(scope.value)
            result.append(
                ScopeState(
                    scope=scope,
                    token=state.sync_token if state else None,
                    last_refreshed_at=_as_utc(state.last_refreshed_at) if state else None,
                    dirty=bool(state.dirty) if state else False,
                    count=int(counts.get(scope.value, 0)),
                )
            )
        return result

    # Metadata

    def get_meta(self, key: str) -> str | None:
        with self._session() as session:
            row = session.get(CacheMeta, key)
            return row.value if row is not None else None

    def set_meta(self, key: str, value: str) -> None:
        with self._session() as session:
            row = session.get(CacheMeta, key)
            if row is None:
                session.add(CacheMeta(key=key, value=value))
            else:
                row.value = value

    def delete_meta(self, key: str) -> None:
        with self._session() as session:
            session.execute(delete(CacheMeta).where(CacheMeta.key == key))

    def clear(self) -> None:
        """Wipe every entity, token, timestamp and metadata entry."""
        with self._session() as session:
            session.execute(delete(CachedEntityRow))
            session.execute(delete(SyncState))
            session.execute(delete(CacheMeta))
        logger.debug("Cache cleared")
