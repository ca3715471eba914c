"""Incremental sync of remote collections into the local cache."""

from tdcli.cli.sync.types import (
    ALL_SCOPES,
    FULL_SYNC_TOKEN,
    CachedEntity,
    DeltaPayload,
    ResourceScope,
    normalize_scopes,
)

__all__ = [
    "ALL_SCOPES",
    "FULL_SYNC_TOKEN",
    "CachedEntity",
    "DeltaPayload",
    "ResourceScope",
    "normalize_scopes",
]
