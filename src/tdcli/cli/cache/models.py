"""Local cache models for the sync mirror."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class CacheBase(DeclarativeBase):
    """Base class for all cache SQLAlchemy models."""

    # Type annotation map for common types
    type_annotation_map: ClassVar[dict[type, Any]] = {
        datetime: DateTime(timezone=True),
    }


class CachedEntityRow(CacheBase):
    """Latest known snapshot of one remote entity."""

    __tablename__ = "cached_entities"

    scope: Mapped[str] = mapped_column(String(32), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Insertion order inside a scope; listings fall back to it
    seq: Mapped[int] = mapped_column(nullable=False, default=0)
    data: Mapped[str] = mapped_column(Text, nullable=False)  # JSON object as string
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SyncState(CacheBase):
    """Sync token and refresh bookkeeping for one resource scope."""

    __tablename__ = "sync_state"

    scope: Mapped[str] = mapped_column(String(32), primary_key=True)
    sync_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_refreshed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dirty: Mapped[bool] = mapped_column(default=False, nullable=False)


class CacheMeta(CacheBase):
    """Free-form key/value metadata (credential fingerprint, current user)."""

    __tablename__ = "cache_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
