"""Tests for the delta fetcher."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from tdcli.cli.errors import RemoteRejected, RemoteUnavailable
from tdcli.cli.sync.fetcher import DeltaFetcher, parse_delta_payload
from tdcli.cli.sync.types import Project, ResourceScope, Task, User

ITEMS_AND_PROJECTS = frozenset({ResourceScope.ITEMS, ResourceScope.PROJECTS})


def _make_client(handler) -> httpx.AsyncClient:
    transport = httpx.MockTransport(handler)
    return httpx.AsyncClient(base_url="http://test", transport=transport)


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.mark.asyncio
async def test_fetch_sends_token_and_resource_types():
    """Test the request carries the sync token and the wire resource names."""
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/v1/sync"
        seen.append(_form(request))
        return httpx.Response(200, json={"sync_token": "t2", "full_sync": False})

    async with _make_client(handler) as client:
        payload = await DeltaFetcher(client).fetch(
            frozenset({ResourceScope.ITEMS, ResourceScope.USERS}), "t1"
        )

    assert seen[0]["sync_token"] == "t1"
    assert json.loads(seen[0]["resource_types"]) == ["items", "user"]
    assert payload.token == "t2"
    assert payload.is_full_resync is False


@pytest.mark.asyncio
async def test_fetch_parses_upserts_and_deletions():
    """Test rows become typed upserts, deleted rows become deletions."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "sync_token": "t2",
                "full_sync": False,
                "items": [
                    {"id": "1", "content": "Keep", "priority": 2},
                    {"id": "2", "content": "Gone", "is_deleted": True},
                ],
                "projects": [{"id": 7, "name": "Inbox"}],
            },
        )

    async with _make_client(handler) as client:
        payload = await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")

    assert [(e.scope, e.id) for e in payload.upserts] == [
        (ResourceScope.ITEMS, "1"),
        (ResourceScope.PROJECTS, "7"),
    ]
    assert isinstance(payload.upserts[0].value, Task)
    assert isinstance(payload.upserts[1].value, Project)
    assert payload.deletions == [(ResourceScope.ITEMS, "2")]
    assert payload.scopes == ITEMS_AND_PROJECTS


@pytest.mark.asyncio
async def test_star_token_is_full_resync():
    """Test a request with the full-sync token yields a full resync payload."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"sync_token": "t1", "items": []})

    async with _make_client(handler) as client:
        payload = await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "*")

    assert payload.is_full_resync is True


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_server_errors_are_unavailable(status: int):
    """Test throttling and server errors map to RemoteUnavailable."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="nope")

    async with _make_client(handler) as client:
        with pytest.raises(RemoteUnavailable):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403])
async def test_client_errors_are_rejected(status: int):
    """Test 4xx responses map to RemoteRejected with the status code."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "bad"})

    async with _make_client(handler) as client:
        with pytest.raises(RemoteRejected) as exc_info:
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")

    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_transport_error_is_unavailable():
    """Test a connection failure maps to RemoteUnavailable."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _make_client(handler) as client:
        with pytest.raises(RemoteUnavailable):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")


@pytest.mark.asyncio
async def test_timeout_is_unavailable():
    """Test a request timeout maps to RemoteUnavailable."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with _make_client(handler) as client:
        with pytest.raises(RemoteUnavailable):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1", timeout=0.5)


@pytest.mark.asyncio
async def test_invalid_json_is_rejected():
    """Test an undecodable body maps to RemoteRejected."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    async with _make_client(handler) as client:
        with pytest.raises(RemoteRejected):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")


def test_parse_error_body_is_rejected():
    """Test a 200 response carrying an error object is rejected."""
    with pytest.raises(RemoteRejected, match="Invalid token"):
        parse_delta_payload({"error": "Invalid token"}, ITEMS_AND_PROJECTS)


def test_parse_missing_token_is_rejected():
    """Test a response without sync_token is rejected."""
    with pytest.raises(RemoteRejected):
        parse_delta_payload({"items": []}, ITEMS_AND_PROJECTS)


def test_parse_single_user_object():
    """Test the singular user object becomes one users upsert."""
    payload = parse_delta_payload(
        {"sync_token": "t", "user": {"id": 42, "email": "me@example.com"}},
        frozenset({ResourceScope.USERS}),
    )

    assert len(payload.upserts) == 1
    assert isinstance(payload.upserts[0].value, User)
    assert payload.upserts[0].id == "42"


def test_parse_ignores_unrequested_scopes():
    """Test rows of scopes that were not requested are dropped."""
    payload = parse_delta_payload(
        {"sync_token": "t", "labels": [{"id": "1", "name": "x"}]},
        frozenset({ResourceScope.ITEMS}),
    )

    assert payload.upserts == []


def test_parse_invalid_row_is_rejected():
    """Test a row that fails validation rejects the whole payload."""
    with pytest.raises(RemoteRejected):
        parse_delta_payload(
            {"sync_token": "t", "items": [{"id": "1", "priority": "urgent"}]},
            frozenset({ResourceScope.ITEMS}),
            requested_token="t0",
        )


def _corrupt_gzip(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-encoding": "gzip"},
        stream=httpx.ByteStream(b"not gzip"),
    )


@pytest.mark.asyncio
async def test_undecodable_body_is_unavailable():
    """Test a body that fails content decoding maps to RemoteUnavailable."""
    async with _make_client(_corrupt_gzip) as client:
        with pytest.raises(RemoteUnavailable):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")


@pytest.mark.asyncio
async def test_redirect_loop_is_unavailable():
    """Test a redirect loop maps to RemoteUnavailable."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"location": "/api/v1/sync"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        base_url="http://test", transport=transport, follow_redirects=True, max_redirects=2
    ) as client:
        with pytest.raises(RemoteUnavailable):
            await DeltaFetcher(client).fetch(ITEMS_AND_PROJECTS, "t1")
