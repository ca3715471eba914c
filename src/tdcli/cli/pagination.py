"""Pagination adapter shared by the cache-backed and the live listing paths.

Both paths return a :class:`Page`. Cursors issued by the cache path carry a
``local:`` prefix so a resumed listing always goes back to the same source;
cursors issued by the service are forwarded untouched.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from tdcli.cli.errors import CursorInvalid

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCAL_CURSOR_PREFIX = "local:"

# Default result limits per listing
LIMITS = {
    "tasks": 300,
    "projects": 50,
    "sections": 300,
    "labels": 300,
}


@dataclass
class Page(Generic[T]):
    """One slice of a listing plus the cursor to resume it."""

    results: list[T] = field(default_factory=list)
    next_cursor: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON output shape."""
        return {
            "results": [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in self.results
            ],
            "next_cursor": self.next_cursor,
        }


FetchPage = Callable[[str | None, int], Awaitable[Page[T]]]


def encode_local_cursor(offset: int) -> str:
    return f"{LOCAL_CURSOR_PREFIX}{offset}"


def is_local_cursor(cursor: str | None) -> bool:
    return cursor is not None and cursor.startswith(LOCAL_CURSOR_PREFIX)


def decode_local_cursor(cursor: str | None) -> int:
    """Turn a local cursor back into an offset; no cursor means offset 0.

    Raises:
        CursorInvalid: If the cursor was not issued by the cache path.
    """
    if not cursor:
        return 0
    if not is_local_cursor(cursor):
        raise CursorInvalid(f"Cursor {cursor!r} was not issued by the local cache")
    raw = cursor[len(LOCAL_CURSOR_PREFIX) :]
    if not raw.isdigit():
        raise CursorInvalid(f"Malformed local cursor {cursor!r}")
    return int(raw)


def _check_limit(limit: int) -> None:
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")


def paginate_local(items: Sequence[T], limit: int, cursor: str | None = None) -> Page[T]:
    """Slice an already ordered and filtered sequence.

    Args:
        items: The full listing
        limit: Maximum number of results
        cursor: Local cursor from a previous page, or None for the first page

    Returns:
        The page; ``next_cursor`` is None once the end is reached.
    """
    _check_limit(limit)
    start = decode_local_cursor(cursor)
    end = start + limit
    next_cursor = encode_local_cursor(end) if end < len(items) else None
    return Page(results=list(items[start:end]), next_cursor=next_cursor)


async def paginate_remote(
    fetch_page: FetchPage[T],
    limit: int,
    per_page: int = 200,
    start_cursor: str | None = None,
) -> Page[T]:
    """Collect up to ``limit`` results from a cursor-paginated remote call.

    The service cursor is passed through verbatim; the returned
    ``next_cursor`` is whatever the last fetched page reported.
    """
    _check_limit(limit)
    results: list[T] = []
    cursor = start_cursor
    page_num = 0

    while len(results) < limit:
        page_size = min(limit - len(results), per_page)
        page_num += 1
        logger.debug("Fetching page %d (size=%d, cursor=%s)", page_num, page_size, cursor)

        started = time.perf_counter()
        page = await fetch_page(cursor, page_size)
        logger.debug(
            "Page %d done: %d results in %.0fms",
            page_num,
            len(page.results),
            (time.perf_counter() - started) * 1000,
        )

        results.extend(page.results)
        cursor = page.next_cursor
        if not cursor:
            break

    return Page(results=results[:limit], next_cursor=cursor)


async def paginate(
    source: Sequence[T] | FetchPage[T],
    limit: int,
    cursor: str | None = None,
) -> Page[T]:
    """Paginate either a cached sequence or a live fetch function."""
    if callable(source):
        if is_local_cursor(cursor):
            raise CursorInvalid("A local cursor cannot resume a live listing")
        return await paginate_remote(source, limit, start_cursor=cursor)
    return paginate_local(source, limit, cursor)
