"""Freshness controller for the local sync cache.

``ensure_fresh`` answers one question for a command handler: can the
requested scopes be served from the local mirror? It refreshes stale
scopes with a single delta fetch, lets concurrent callers with overlapping
scopes share that fetch, and never lets a failed fetch destroy data that is
already cached. ``None`` means "no usable cache", and callers fall back to
live API calls.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from tdcli.cli.cache.manager import CURRENT_USER_KEY, CacheManager
from tdcli.cli.cache.store import CacheStore, ScopeState
from tdcli.cli.config import SyncSettings
from tdcli.cli.errors import RemoteRejected, RemoteUnavailable, StoreCorrupt
from tdcli.cli.sync.fetcher import DeltaSource
from tdcli.cli.sync.merge import MergeEngine
from tdcli.cli.sync.types import (
    FULL_SYNC_TOKEN,
    CachedEntity,
    ResourceScope,
    normalize_scopes,
)

logger = logging.getLogger(__name__)

FINGERPRINT_KEY = "token_fingerprint"

# Failures that downgrade to "no usable cache" instead of failing a command
CACHE_FAILURES = (RemoteUnavailable, RemoteRejected, StoreCorrupt, SQLAlchemyError, OSError)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def fingerprint_token(token: str) -> str:
    """Hash a credential so the cache can tell accounts apart without storing it."""
    return hashlib.sha256(token.encode()).hexdigest()


class SyncEngine:
    """Decides when the mirror is fresh enough and refreshes it when not."""

    def __init__(
        self,
        settings: SyncSettings,
        fetcher: DeltaSource | None,
        credential: str | None = None,
        store: CacheStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
        console: Console | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Resolved cache settings (TTL, path, on/off, fetch timeout)
            fetcher: Source of deltas; None disables refreshing
            credential: Bearer credential; its fingerprint scopes the cache to one account
            store: Pre-opened store. If None, one is opened lazily at settings.db_path.
            clock: Returns the current time (timezone-aware)
            console: Where the one-time stale-cache warning goes
        """
        self._settings = settings
        self._fetcher = fetcher
        self._credential = credential
        self._store = store
        self._own_store = store is None
        self._manager: CacheManager | None = CacheManager(store) if store else None
        self._clock = clock
        self._console = console or Console(stderr=True)
        self._inflight: dict[frozenset[ResourceScope], asyncio.Task[bool]] = {}
        self._fingerprint_checked = False
        self._stale_warning_printed = False
        self.last_error: Exception | None = None

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.ttl_seconds)

    def close(self) -> None:
        """Close the store if this engine opened it."""
        if self._store is not None and self._own_store:
            self._store.close()
            self._store = None
            self._manager = None

    # Store lifecycle

    def _open_store(self) -> CacheStore:
        if self._store is None:
            path = self._settings.db_path
            try:
                store = CacheStore.open(path)
            except StoreCorrupt as e:
                logger.warning("Discarding unreadable cache at %s: %s", path, e)
                path.unlink(missing_ok=True)
                store = CacheStore.open(path)
            self._store = store
            self._manager = CacheManager(store)

        if not self._fingerprint_checked and self._credential:
            self._check_fingerprint(self._store, self._credential)
            self._fingerprint_checked = True
        return self._store

    def _open_manager(self) -> CacheManager:
        store = self._open_store()
        if self._manager is None:
            self._manager = CacheManager(store)
        return self._manager

    def _check_fingerprint(self, store: CacheStore, credential: str) -> None:
        fingerprint = fingerprint_token(credential)
        existing = store.get_meta(FINGERPRINT_KEY)
        if existing == fingerprint:
            return
        if existing is not None:
            logger.info("Credential changed; clearing cached data of the previous account")
            store.clear()
        store.set_meta(FINGERPRINT_KEY, fingerprint)

    # Freshness

    def _is_stale(self, store: CacheStore, scopes: frozenset[ResourceScope]) -> bool:
        now = self._clock()
        for scope in scopes:
            if store.is_dirty(scope):
                return True
            last = store.get_last_refreshed(scope)
            if last is None or now - last >= self.ttl:
                return True
        return False

    def _has_snapshot(self, store: CacheStore, scopes: frozenset[ResourceScope]) -> bool:
        return all(store.get_token(scope) is not None for scope in scopes)

    def _token_for(self, store: CacheStore, scopes: frozenset[ResourceScope]) -> str:
        # One joint token covers the set only if every scope agrees on it
        tokens = {store.get_token(scope) for scope in scopes}
        if len(tokens) == 1 and None not in tokens:
            return tokens.pop()  # type: ignore[return-value]
        return FULL_SYNC_TOKEN

    def _find_inflight(
        self, scopes: frozenset[ResourceScope]
    ) -> tuple[frozenset[ResourceScope], asyncio.Task[bool]] | None:
        for key, task in self._inflight.items():
            if key & scopes and not task.done():
                return key, task
        return None

    async def ensure_fresh(
        self, scopes: Iterable[ResourceScope | str] | None = None
    ) -> CacheManager | None:
        """Make sure ``scopes`` are fresh and return a read handle.

        Args:
            scopes: Scopes the caller is about to read; empty means all

        Returns:
            A CacheManager serving fresh data, or stale data if a refresh
            failed after an earlier success; None if the cache is disabled
            or has never been populated and cannot be.
        """
        if not self.enabled:
            return None

        requested = normalize_scopes(scopes)
        try:
            store = self._open_store()
        except CACHE_FAILURES as e:
            self._record_failure(requested, e)
            return None

        while True:
            try:
                if not self._is_stale(store, requested):
                    return self._manager
            except CACHE_FAILURES as e:
                self._record_failure(requested, e)
                return None

            found = self._find_inflight(requested)
            if found is None:
                break

            key, inflight = found
            logger.debug(
                "Joining in-flight refresh of %s", sorted(scope.value for scope in key)
            )
            succeeded = await asyncio.shield(inflight)
            if not succeeded and key >= requested:
                return self._fallback(store, requested)

        task = asyncio.ensure_future(self._refresh(store, requested))
        self._inflight[requested] = task
        task.add_done_callback(lambda done, key=requested: self._forget(key, done))

        succeeded = await asyncio.shield(task)
        if succeeded:
            return self._manager
        return self._fallback(store, requested)

    def _forget(self, key: frozenset[ResourceScope], task: asyncio.Task[bool]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _refresh(self, store: CacheStore, scopes: frozenset[ResourceScope]) -> bool:
        if self._fetcher is None:
            self._record_failure(scopes, RemoteUnavailable("No delta source configured"))
            return False

        token = self._token_for(store, scopes)
        timeout = self._settings.timeout_seconds
        logger.debug(
            "Refreshing %s (%s)",
            sorted(scope.value for scope in scopes),
            "full" if token == FULL_SYNC_TOKEN else "incremental",
        )
        try:
            payload = await asyncio.wait_for(
                self._fetcher.fetch(scopes, token, timeout=timeout), timeout=timeout
            )
            with store.atomic():
                MergeEngine(store).apply(payload)
                refreshed_at = self._clock()
                for scope in scopes:
                    store.set_last_refreshed(scope, refreshed_at)
                    store.set_dirty(scope, False)
        except TimeoutError:
            self._record_failure(
                scopes, RemoteUnavailable(f"Sync request timed out after {timeout}s")
            )
            return False
        except StoreCorrupt as e:
            self._record_failure(scopes, e)
            # Start over with a full resync next time
            try:
                store.clear()
            except CACHE_FAILURES as clear_error:
                logger.warning("Could not reset cache: %s", clear_error)
            return False
        except CACHE_FAILURES as e:
            self._record_failure(scopes, e)
            return False

        self.last_error = None
        return True

    def _record_failure(self, scopes: frozenset[ResourceScope], error: Exception) -> None:
        self.last_error = error
        logger.warning(
            "Cache refresh failed for %s: %s", sorted(scope.value for scope in scopes), error
        )

    def _fallback(
        self, store: CacheStore, scopes: frozenset[ResourceScope]
    ) -> CacheManager | None:
        try:
            usable = self._has_snapshot(store, scopes)
        except CACHE_FAILURES as e:
            logger.warning("Cache unreadable: %s", e)
            return None
        if not usable:
            return None
        self._warn_stale_once()
        return self._manager

    def _warn_stale_once(self) -> None:
        if self._stale_warning_printed:
            return
        self._stale_warning_printed = True
        reason = f" ({self.last_error})" if self.last_error else ""
        self._console.print(f"[yellow]Warning: sync failed, using stale cache{reason}.[/yellow]")

    # Write-through helpers used after direct remote mutations

    def mark_dirty(self, scopes: Iterable[ResourceScope | str] | None = None) -> None:
        """Force the next ensure_fresh of ``scopes`` to refresh, even within the TTL."""
        if not self.enabled:
            return
        try:
            store = self._open_store()
            with store.atomic():
                for scope in normalize_scopes(scopes):
                    store.set_dirty(scope, True)
        except CACHE_FAILURES as e:
            logger.debug("Could not mark scopes dirty: %s", e)

    def upsert_cached_entity(self, entity: CachedEntity) -> None:
        """Store a snapshot returned by a direct create/update call."""
        if not self.enabled:
            return
        try:
            self._open_store().upsert(entity.scope, entity.value)
        except CACHE_FAILURES as e:
            logger.debug("Could not cache %s %s: %s", entity.scope.value, entity.id, e)

    def remove_cached_entity(self, scope: ResourceScope, entity_id: str) -> None:
        """Drop an entity removed by a direct delete call."""
        if not self.enabled:
            return
        try:
            self._open_store().remove(scope, entity_id)
        except CACHE_FAILURES as e:
            logger.debug("Could not drop %s %s: %s", scope.value, entity_id, e)

    def set_cached_current_user_id(self, user_id: str) -> None:
        if not self.enabled:
            return
        try:
            self._open_store().set_meta(CURRENT_USER_KEY, user_id)
        except CACHE_FAILURES as e:
            logger.debug("Could not record current user: %s", e)

    def get_cached_current_user_id(self) -> str | None:
        """Get the authenticated user's ID from the cache, if known."""
        if not self.enabled:
            return None
        try:
            return self._open_manager().get_current_user_id()
        except CACHE_FAILURES as e:
            logger.debug("Could not read current user: %s", e)
            return None

    def repository_without_sync(self) -> CacheManager | None:
        """Get the read handle without checking freshness."""
        if not self.enabled:
            return None
        try:
            return self._open_manager()
        except CACHE_FAILURES as e:
            logger.debug("Cache unavailable: %s", e)
            return None

    def status(self) -> list[ScopeState]:
        """Get per-scope bookkeeping for display.

        Raises:
            StoreCorrupt: If the cache database cannot be read.
        """
        return self._open_store().states()

    def clear_cache(self) -> None:
        """Wipe the cache synchronously, even when caching is disabled.

        Called before the credential is dropped at logout so the next
        account never sees this one's data.
        """
        if self._store is None and not self._settings.db_path.exists():
            return
        try:
            store = self._store or CacheStore.open(self._settings.db_path)
        except StoreCorrupt:
            self._settings.db_path.unlink(missing_ok=True)
            return
        try:
            store.clear()
        finally:
            if store is not self._store:
                store.close()
        self._fingerprint_checked = False
        logger.info("Sync cache cleared")
