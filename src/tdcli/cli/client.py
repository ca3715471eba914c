"""Async HTTP client helpers for the CLI."""

from __future__ import annotations

from typing import Any

import httpx

from tdcli.cli.config import get_api_token, get_config_value
from tdcli.cli.errors import RemoteRejected, RemoteUnavailable

DEFAULT_API_URL = "https://api.todoist.com"
DEFAULT_TIMEOUT = 10.0


def get_api_url() -> str:
    """Return the configured API base URL."""
    return str(get_config_value("api_url", DEFAULT_API_URL))


def create_client(
    token: str | None = None, timeout: float = DEFAULT_TIMEOUT
) -> httpx.AsyncClient:
    """Create an async HTTP client authenticated with a bearer credential.

    Args:
        token: API token; read from configuration when omitted.
        timeout: Default timeout in seconds for every request.

    Raises:
        AuthenticationMissing: If no token is given and none is configured.
    """
    headers = {"Authorization": f"Bearer {token or get_api_token()}"}
    return httpx.AsyncClient(base_url=get_api_url(), headers=headers, timeout=timeout)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    action: str,
    **kwargs: Any,
) -> Any:
    """Send a request and decode its JSON body.

    Args:
        client: Client to send the request with
        method: HTTP method
        url: Path relative to the client base URL
        action: What the request does, for error messages ("sync", "list tasks")
        **kwargs: Passed through to ``client.request``

    Returns:
        The decoded JSON body, or None for an empty response

    Raises:
        RemoteUnavailable: On transport or decoding failure, timeout, 429 or 5xx.
        RemoteRejected: On other 4xx responses or an undecodable body.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise RemoteUnavailable(f"Failed to {action}: request timed out") from e
    except httpx.TransportError as e:
        raise RemoteUnavailable(f"Failed to {action}: {e}") from e
    except httpx.RequestError as e:
        # Undecodable body, redirect loop
        raise RemoteUnavailable(f"Failed to {action}: {e}") from e

    status = response.status_code
    if status == 429 or status >= 500:
        raise RemoteUnavailable(f"Failed to {action} ({status})")
    if status >= 400:
        raise RemoteRejected(f"Failed to {action} ({status})", status_code=status)

    if status == 204 or not response.content:
        return None

    try:
        return response.json()
    except ValueError as e:
        raise RemoteRejected(
            f"Failed to {action}: response is not valid JSON", status_code=status
        ) from e
