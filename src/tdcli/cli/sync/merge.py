"""Merge engine: applies delta payloads onto the persistent store."""

from __future__ import annotations

import logging
from collections import defaultdict

from tdcli.cli.cache.store import CacheStore
from tdcli.cli.sync.types import DeltaPayload, Entity, ResourceScope

logger = logging.getLogger(__name__)


class MergeEngine:
    """Applies deltas idempotently.

    Deleted entities are removed outright, never kept as tombstones. Within
    one payload a deletion beats an upsert of the same id; across payloads
    the later one wins.
    """

    def __init__(self, store: CacheStore):
        self._store = store

    def apply(self, payload: DeltaPayload) -> None:
        """Apply ``payload`` in a single store transaction.

        A full resync replaces each covered scope wholesale; an incremental
        delta touches only the ids it mentions. Every covered scope ends up
        carrying ``payload.token``.
        """
        deleted = set(payload.deletions)
        deleted.update(
            (entity.scope, entity.id) for entity in payload.upserts if entity.value.is_deleted
        )

        upserts: dict[ResourceScope, list[Entity]] = defaultdict(list)
        for entity in payload.upserts:
            if (entity.scope, entity.id) not in deleted:
                upserts[entity.scope].append(entity.value)

        scopes = [scope for scope in ResourceScope if scope in payload.covered_scopes]

        with self._store.atomic():
            if payload.is_full_resync:
                for scope in scopes:
                    self._store.replace_scope(scope, upserts.get(scope, []))
            else:
                for scope, entity_id in sorted(deleted):
                    self._store.remove(scope, entity_id)
                for scope in scopes:
                    if upserts.get(scope):
                        self._store.upsert_many(scope, upserts[scope])

            for scope in scopes:
                self._store.set_token(scope, payload.token)

        logger.debug(
            "Applied %s delta to %s: %d upserts, %d deletions",
            "full" if payload.is_full_resync else "incremental",
            [scope.value for scope in scopes],
            sum(len(values) for values in upserts.values()),
            len(deleted),
        )
