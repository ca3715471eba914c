"""Local mirror of remote collections."""

from tdcli.cli.cache.database import get_cache_engine, get_session_factory, init_cache_db
from tdcli.cli.cache.models import CacheBase, CachedEntityRow, CacheMeta, SyncState

__all__ = [
    "CacheBase",
    "CacheMeta",
    "CachedEntityRow",
    "SyncState",
    "get_cache_engine",
    "get_session_factory",
    "init_cache_db",
]
