"""Delta fetcher: one round-trip to the sync endpoint per call."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from tdcli.cli.client import request_json
from tdcli.cli.errors import RemoteRejected
from tdcli.cli.sync.types import (
    FULL_SYNC_TOKEN,
    CachedEntity,
    DeltaPayload,
    ResourceScope,
)

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/v1/sync"

# The sync endpoint names the user resource in the singular
_WIRE_RESOURCE_TYPES = {scope: scope.value for scope in ResourceScope}
_WIRE_RESOURCE_TYPES[ResourceScope.USERS] = "user"


class DeltaSource(Protocol):
    """Anything able to fetch a delta for a set of scopes."""

    async def fetch(
        self,
        scopes: frozenset[ResourceScope],
        token: str,
        timeout: float | None = None,
    ) -> DeltaPayload: ...


def _is_deleted(row: dict[str, Any]) -> bool:
    value = row.get("is_deleted", row.get("isDeleted"))
    return value is True or value == 1 or value == "1"


def _rows(data: dict[str, Any], scope: ResourceScope) -> list[dict[str, Any]]:
    if scope == ResourceScope.USERS:
        raw = data.get("users", data.get("user"))
    else:
        raw = data.get(scope.value)
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [raw]
    if not isinstance(raw, list):
        raise RemoteRejected(f"Malformed sync response: '{scope.value}' is not a list")
    return [row for row in raw if isinstance(row, dict)]


def parse_delta_payload(
    data: Any, scopes: frozenset[ResourceScope], requested_token: str = FULL_SYNC_TOKEN
) -> DeltaPayload:
    """Convert a decoded sync response into a DeltaPayload.

    Rows flagged ``is_deleted`` become deletion entries; everything else is
    validated into the entity type of its scope.

    Raises:
        RemoteRejected: If the response is an error or does not follow the protocol.
    """
    if not isinstance(data, dict):
        raise RemoteRejected("Malformed sync response: expected an object")
    if data.get("error"):
        raise RemoteRejected(f"Sync API error: {data['error']}")

    token = data.get("sync_token")
    if not token:
        raise RemoteRejected("Malformed sync response: missing sync_token")

    payload = DeltaPayload(
        token=str(token),
        is_full_resync=bool(data.get("full_sync")) or requested_token == FULL_SYNC_TOKEN,
        scopes=scopes,
    )
    for scope in ResourceScope:
        if scope not in scopes:
            continue
        for row in _rows(data, scope):
            entity_id = row.get("id")
            if entity_id is None:
                continue
            if _is_deleted(row):
                payload.deletions.append((scope, str(entity_id)))
                continue
            try:
                payload.upserts.append(CachedEntity.from_wire(scope, row))
            except ValidationError as e:
                raise RemoteRejected(
                    f"Malformed {scope.value} entry {entity_id} in sync response"
                ) from e
    return payload


class DeltaFetcher:
    """Fetches deltas from the sync endpoint.

    Never retries; callers decide what a failure means.
    """

    def __init__(self, client: httpx.AsyncClient):
        """Initialize the fetcher.

        Args:
            client: Authenticated HTTP client; its lifecycle belongs to the caller.
        """
        self._client = client

    async def fetch(
        self,
        scopes: frozenset[ResourceScope],
        token: str,
        timeout: float | None = None,
    ) -> DeltaPayload:
        """Fetch everything that changed in ``scopes`` since ``token``.

        Args:
            scopes: Scopes to fetch jointly
            token: Sync token, or "*" for a full resync
            timeout: Request timeout in seconds (client default when None)

        Returns:
            The parsed delta payload

        Raises:
            RemoteUnavailable: On transport failure, timeout, 429 or 5xx.
            RemoteRejected: On 4xx responses or a malformed body.
        """
        resource_types = [_WIRE_RESOURCE_TYPES[s] for s in ResourceScope if s in scopes]
        logger.debug("Fetching delta for %s since %s", resource_types, token)

        request_timeout: Any = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT
        data = await request_json(
            self._client,
            "POST",
            SYNC_PATH,
            "sync",
            data={"sync_token": token, "resource_types": json.dumps(resource_types)},
            timeout=request_timeout,
        )

        payload = parse_delta_payload(data, scopes, requested_token=token)
        logger.debug(
            "Delta received: full=%s upserts=%d deletions=%d",
            payload.is_full_resync,
            len(payload.upserts),
            len(payload.deletions),
        )
        return payload
