"""Tests for GitHub source."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from gh_offline.adapters.sources import GitHubSource
from gh_offline.core import TrackedRepository
from gh_offline.core.errors import (
    AuthFailure,
    MalformedResponse,
    RateLimited,
    RemoteRequestError,
    TransientNetwork,
)

NEXT_URL = "https://api.github.com/repositories/1/issues?page=2"


@pytest.fixture
def repository() -> TrackedRepository:
    return TrackedRepository(owner="octocat", name="hello-world", id=1)


def make_response(status_code: int = 200, payload=None, headers=None, links=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.links = links or {}
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def mock_client_returning(mock_client_class: MagicMock, *responses) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__.return_value = mock_client
    mock_client.get.side_effect = list(responses)
    mock_client_class.return_value = mock_client
    return mock_client


@pytest.mark.asyncio
async def test_fetch_first_page(repository: TrackedRepository) -> None:
    """Test first page request and next cursor extraction."""
    source = GitHubSource(token="secret", per_page=50)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = mock_client_returning(
            mock_client_class,
            make_response(payload=[{"number": 1}], links={"next": {"url": NEXT_URL}}),
        )

        page = await source.fetch_page(repository)

    assert page.records == [{"number": 1}]
    assert page.next_cursor == NEXT_URL
    assert page.cursor is None

    call = mock_client.get.call_args
    assert call.args[0] == "https://api.github.com/repos/octocat/hello-world/issues"
    assert call.kwargs["params"]["state"] == "all"
    assert call.kwargs["params"]["per_page"] == 50
    assert "since" not in call.kwargs["params"]
    assert call.kwargs["headers"]["Authorization"] == "Bearer secret"
    assert call.kwargs["headers"]["X-GitHub-Api-Version"] == "2022-11-28"


@pytest.mark.asyncio
async def test_fetch_follows_cursor_and_since(repository: TrackedRepository) -> None:
    """Test later pages use the cursor URL verbatim."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = mock_client_returning(mock_client_class, make_response(payload=[]))

        page = await source.fetch_page(repository, cursor=NEXT_URL)

    assert page.next_cursor is None
    assert mock_client.get.call_args.args[0] == NEXT_URL
    assert mock_client.get.call_args.kwargs["params"] is None
    assert "Authorization" not in mock_client.get.call_args.kwargs["headers"]


@pytest.mark.asyncio
async def test_fetch_passes_since(repository: TrackedRepository) -> None:
    """Test incremental sync passes since as UTC text."""
    source = GitHubSource()
    since = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = mock_client_returning(mock_client_class, make_response(payload=[]))
        await source.fetch_page(repository, since=since)

    assert mock_client.get.call_args.kwargs["params"]["since"] == "2024-05-01T08:00:00Z"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, headers, expected",
    [
        (401, {}, AuthFailure),
        (403, {}, AuthFailure),
        (404, {}, AuthFailure),
        (429, {}, RateLimited),
        (403, {"retry-after": "30"}, RateLimited),
        (403, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "0"}, RateLimited),
        (502, {}, TransientNetwork),
        (422, {}, RemoteRequestError),
    ],
)
async def test_status_mapping(repository: TrackedRepository, status_code, headers, expected) -> None:
    """Test HTTP status codes map to the error taxonomy."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(mock_client_class, make_response(status_code, headers=headers))

        with pytest.raises(expected):
            await source.fetch_page(repository)


@pytest.mark.asyncio
async def test_rate_limit_retry_after(repository: TrackedRepository) -> None:
    """Test retry-after header becomes the retry delay."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(mock_client_class, make_response(429, headers={"retry-after": "12"}))

        with pytest.raises(RateLimited) as exc_info:
            await source.fetch_page(repository)

    assert exc_info.value.retry_after == 12.0
    assert exc_info.value.repository == "octocat/hello-world"


@pytest.mark.asyncio
async def test_secondary_rate_limit_message(repository: TrackedRepository) -> None:
    """Test a 403 whose message reports a rate limit is retryable, not an auth failure."""
    source = GitHubSource()
    payload = {"message": "You have exceeded a secondary rate limit. Please wait a few minutes."}

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(mock_client_class, make_response(403, payload=payload))

        with pytest.raises(RateLimited) as exc_info:
            await source.fetch_page(repository)

    assert exc_info.value.retry_after is None


@pytest.mark.asyncio
async def test_forbidden_with_other_message_is_auth_failure(repository: TrackedRepository) -> None:
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(mock_client_class, make_response(403, payload={"message": "Resource not accessible"}))

        with pytest.raises(AuthFailure):
            await source.fetch_page(repository)


@pytest.mark.asyncio
async def test_network_error_is_transient(repository: TrackedRepository) -> None:
    """Test transport errors become TransientNetwork."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = mock_client_returning(mock_client_class)
        mock_client.get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(TransientNetwork):
            await source.fetch_page(repository)


@pytest.mark.asyncio
async def test_malformed_body_keeps_next_cursor(repository: TrackedRepository) -> None:
    """Test undecodable pages carry the cursor of the following page."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(
            mock_client_class,
            make_response(payload=json.JSONDecodeError("bad", "doc", 0), links={"next": {"url": NEXT_URL}}),
        )

        with pytest.raises(MalformedResponse) as exc_info:
            await source.fetch_page(repository)

    assert exc_info.value.next_cursor == NEXT_URL


@pytest.mark.asyncio
async def test_non_list_body_is_malformed(repository: TrackedRepository) -> None:
    """Test an object body where a list is expected is malformed."""
    source = GitHubSource()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_returning(mock_client_class, make_response(payload={"message": "oops"}))

        with pytest.raises(MalformedResponse):
            await source.fetch_page(repository)
