"""Tests for the remote fetcher."""

from unittest.mock import AsyncMock

import pytest

from gh_offline.core import Page, RemoteFetcher, RetryPolicy, TrackedRepository
from gh_offline.core.errors import (
    AuthFailure,
    MalformedResponse,
    RateLimited,
    RetriesExhausted,
    TransientNetwork,
)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def repository() -> TrackedRepository:
    return TrackedRepository(owner="octocat", name="hello-world", id=1)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


async def collect(fetcher: RemoteFetcher, repository: TrackedRepository, **kwargs) -> list[Page]:
    return [page async for page in fetcher.pages(repository, **kwargs)]


def test_backoff_is_capped() -> None:
    """Test exponential backoff with a ceiling."""
    policy = RetryPolicy(initial_delay=1.0, max_delay=5.0)

    assert [policy.backoff(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_follows_cursors_in_order(repository: TrackedRepository, sleep: SleepRecorder) -> None:
    """Test pages are fetched sequentially until no next cursor."""
    source = AsyncMock()
    source.fetch_page.side_effect = [
        Page(records=[{"number": 1}], next_cursor="page-2"),
        Page(records=[{"number": 2}], next_cursor="page-3"),
        Page(records=[{"number": 3}]),
    ]
    fetcher = RemoteFetcher(source, sleep=sleep)

    pages = await collect(fetcher, repository)

    assert [page.records[0]["number"] for page in pages] == [1, 2, 3]
    assert [page.cursor for page in pages] == [None, "page-2", "page-3"]
    cursors = [call.kwargs["cursor"] for call in source.fetch_page.call_args_list]
    assert cursors == [None, "page-2", "page-3"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_passes_since(repository: TrackedRepository) -> None:
    """Test the since bound reaches every page request."""
    source = AsyncMock()
    source.fetch_page.side_effect = [Page(records=[], next_cursor="page-2"), Page(records=[])]
    fetcher = RemoteFetcher(source)
    since = object()

    await collect(fetcher, repository, since=since)

    assert all(call.kwargs["since"] is since for call in source.fetch_page.call_args_list)


@pytest.mark.asyncio
async def test_rate_limit_waits_retry_after(repository: TrackedRepository, sleep: SleepRecorder) -> None:
    """Test rate limits wait for the advertised delay and retry the same page."""
    source = AsyncMock()
    source.fetch_page.side_effect = [
        RateLimited(retry_after=7.0),
        RateLimited(),
        Page(records=[{"number": 1}]),
    ]
    fetcher = RemoteFetcher(source, RetryPolicy(default_rate_limit_delay=42.0), sleep=sleep)

    pages = await collect(fetcher, repository)

    assert len(pages) == 1
    assert sleep.delays == [7.0, 42.0]


@pytest.mark.asyncio
async def test_transient_errors_back_off(repository: TrackedRepository, sleep: SleepRecorder) -> None:
    """Test transient errors retry with exponential backoff."""
    source = AsyncMock()
    source.fetch_page.side_effect = [
        TransientNetwork("boom"),
        TransientNetwork("boom"),
        Page(records=[]),
    ]
    fetcher = RemoteFetcher(source, RetryPolicy(initial_delay=0.5), sleep=sleep)

    await collect(fetcher, repository)

    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retries_exhausted(repository: TrackedRepository, sleep: SleepRecorder) -> None:
    """Test the attempt budget bounds retries."""
    source = AsyncMock()
    source.fetch_page.side_effect = TransientNetwork("still down")
    fetcher = RemoteFetcher(source, RetryPolicy(max_attempts=3), sleep=sleep)

    with pytest.raises(RetriesExhausted) as exc_info:
        await collect(fetcher, repository)

    assert source.fetch_page.call_count == 3
    assert len(sleep.delays) == 2
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, TransientNetwork)
    assert exc_info.value.repository == "octocat/hello-world"


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(repository: TrackedRepository, sleep: SleepRecorder) -> None:
    """Test non-retryable errors propagate immediately."""
    source = AsyncMock()
    source.fetch_page.side_effect = AuthFailure("denied")
    fetcher = RemoteFetcher(source, sleep=sleep)

    with pytest.raises(AuthFailure):
        await collect(fetcher, repository)

    assert source.fetch_page.call_count == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_malformed_page_is_dropped(repository: TrackedRepository) -> None:
    """Test a malformed page is skipped and fetching resumes at the next cursor."""
    source = AsyncMock()
    source.fetch_page.side_effect = [
        Page(records=[{"number": 1}], next_cursor="page-2"),
        MalformedResponse("bad json", next_cursor="page-3"),
        Page(records=[{"number": 3}]),
    ]
    fetcher = RemoteFetcher(source)

    pages = await collect(fetcher, repository)

    assert [page.dropped for page in pages] == [False, True, False]
    assert pages[1].records == []
    assert pages[2].cursor == "page-3"


@pytest.mark.asyncio
async def test_malformed_last_page_ends_stream(repository: TrackedRepository) -> None:
    """Test a malformed page without a next cursor ends iteration."""
    source = AsyncMock()
    source.fetch_page.side_effect = [MalformedResponse("bad json")]
    fetcher = RemoteFetcher(source)

    pages = await collect(fetcher, repository)

    assert len(pages) == 1
    assert pages[0].dropped
    assert source.fetch_page.call_count == 1
