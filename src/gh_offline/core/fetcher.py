"""Paginated fetching with retry for one tracked repository."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from gh_offline.core.entities import Page, TrackedRepository
from gh_offline.core.errors import MalformedResponse, RateLimited, RetriesExhausted, TransientNetwork
from gh_offline.core.interfaces import PageSource

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Retry settings for page fetches."""

    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 60.0
    default_rate_limit_delay: float = 60.0

    def backoff(self, attempt: int) -> float:
        """Exponential backoff delay before retry number `attempt` (1-based)."""
        return min(self.initial_delay * (2 ** (attempt - 1)), self.max_delay)

    def rate_limit_delay(self, error: RateLimited) -> float:
        if error.retry_after is not None:
            return max(error.retry_after, 0.0)
        return self.default_rate_limit_delay


class RemoteFetcher:
    """Lazy page stream over a PageSource, hiding cursors and retries."""

    def __init__(
        self,
        source: PageSource,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def pages(
        self,
        repository: TrackedRepository,
        since: Optional[datetime] = None,
        cursor: Optional[str] = None,
    ) -> AsyncIterator[Page]:
        """Yield pages in remote order until the remote signals the end.

        The next page is requested only when the consumer asks for it, so a
        consumer that merges each page before iterating keeps pages strictly
        sequential. Malformed pages are yielded empty with `dropped=True`.
        """
        while True:
            try:
                page = await self._fetch_with_retry(repository, cursor, since)
            except MalformedResponse as e:
                logger.warning(
                    "%s: dropping malformed page (cursor=%s): %s", repository.full_name, cursor, e
                )
                yield Page(records=[], next_cursor=e.next_cursor, cursor=cursor, dropped=True)
                if not e.next_cursor:
                    return
                cursor = e.next_cursor
                continue

            page.cursor = cursor
            yield page

            if not page.next_cursor:
                return
            cursor = page.next_cursor

    async def _fetch_with_retry(
        self,
        repository: TrackedRepository,
        cursor: Optional[str],
        since: Optional[datetime],
    ) -> Page:
        policy = self.retry_policy
        last_error: Optional[Exception] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self.source.fetch_page(repository, cursor=cursor, since=since)
            except RateLimited as e:
                last_error = e
                delay = policy.rate_limit_delay(e)
                reason = "rate limited"
            except TransientNetwork as e:
                last_error = e
                delay = policy.backoff(attempt)
                reason = f"transient error ({e})"

            if attempt == policy.max_attempts:
                break

            logger.info(
                "%s: %s, retrying after %.1fs (attempt %d/%d)",
                repository.full_name,
                reason,
                delay,
                attempt,
                policy.max_attempts,
            )
            await self._sleep(delay)

        raise RetriesExhausted(policy.max_attempts, last_error, repository.full_name)
