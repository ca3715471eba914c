"""Per-invocation wiring shared by the command handlers.

A command opens one context: settings, one HTTP client, the live API and a
sync engine bound to the same credential. Everything is released when the
command returns.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

import anyio
import httpx
import typer
from rich.console import Console

from tdcli.cli.api import TodoistApi
from tdcli.cli.cache.manager import CacheManager
from tdcli.cli.client import create_client
from tdcli.cli.config import SyncSettings, get_api_token, get_sync_settings
from tdcli.cli.errors import (
    ConfigurationError,
    CursorInvalid,
    RemoteRejected,
    RemoteUnavailable,
    StoreCorrupt,
)
from tdcli.cli.pagination import is_local_cursor
from tdcli.cli.sync.engine import SyncEngine
from tdcli.cli.sync.fetcher import DeltaFetcher
from tdcli.cli.sync.types import ResourceScope

logger = logging.getLogger(__name__)

console = Console()

R = TypeVar("R")


@dataclass
class CommandContext:
    """What a command handler needs to serve a listing."""

    settings: SyncSettings
    client: httpx.AsyncClient
    api: TodoistApi
    engine: SyncEngine


@asynccontextmanager
async def open_context() -> AsyncIterator[CommandContext]:
    """Build the per-command context.

    Raises:
        ConfigurationError: If settings are invalid or no API token is configured.
    """
    settings = get_sync_settings()
    token = get_api_token()
    async with create_client(token) as client:
        engine = SyncEngine(settings, DeltaFetcher(client), credential=token)
        try:
            yield CommandContext(
                settings=settings, client=client, api=TodoistApi(client), engine=engine
            )
        finally:
            engine.close()


async def serve_listing(
    ctx: CommandContext,
    scopes: Iterable[ResourceScope],
    cursor: str | None,
    from_cache: Callable[[CacheManager], R],
    from_remote: Callable[[], Awaitable[R]],
) -> R:
    """Serve a listing from the cache when possible, live otherwise.

    A service cursor always resumes live. A local cursor can only be honored
    by the cache.

    Raises:
        CursorInvalid: If a local cursor is given and the cache is unusable.
    """
    repo = None
    if cursor is None or is_local_cursor(cursor):
        repo = await ctx.engine.ensure_fresh(scopes)

    if repo is not None:
        try:
            return from_cache(repo)
        except StoreCorrupt as e:
            logger.warning("Cached data is unreadable, using the live API: %s", e)
            ctx.engine.clear_cache()

    if is_local_cursor(cursor):
        raise CursorInvalid("This cursor came from the local cache, which is not available")
    return await from_remote()


def run_async(func: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Run a command coroutine, turning expected failures into exit code 1."""
    try:
        anyio.run(func, *args)
    except (ConfigurationError, CursorInvalid) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e
    except (RemoteUnavailable, RemoteRejected) as e:
        console.print(f"[red]Request failed:[/red] {e}")
        raise typer.Exit(code=1) from e
