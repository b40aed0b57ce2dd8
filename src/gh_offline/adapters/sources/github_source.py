"""GitHub REST source for paginated issue and pull request records."""

import logging
import time
from datetime import datetime
from typing import Optional

import httpx

from gh_offline.core import Page, PageSource, TrackedRepository
from gh_offline.core.entities import format_timestamp
from gh_offline.core.errors import (
    AuthFailure,
    MalformedResponse,
    RateLimited,
    RemoteRequestError,
    TransientNetwork,
)

logger = logging.getLogger(__name__)


class GitHubSource(PageSource):
    """Fetch issue pages (issues and pull requests) from the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base: str = "https://api.github.com",
        per_page: int = 100,
        timeout: float = 30.0,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.per_page = per_page
        self.timeout = timeout

    async def fetch_page(
        self,
        repository: TrackedRepository,
        cursor: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Page:
        """Fetch one page of records.

        The first page is built from the repository; later pages follow the
        `next` URL from the Link header, which is the cursor.
        """
        if cursor:
            url, params = cursor, None
        else:
            url = f"{self.api_base}/repos/{repository.owner}/{repository.name}/issues"
            params = {
                "state": "all",
                "per_page": self.per_page,
                "sort": "updated",
                "direction": "asc",
            }
            if since is not None:
                params["since"] = format_timestamp(since)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=self._get_headers(), params=params)
        except httpx.RequestError as e:
            raise TransientNetwork(f"Network error: {e}", repository.full_name) from e

        self._check_status(response, repository)

        next_cursor = self._next_cursor(response)
        try:
            records = response.json()
        except ValueError as e:
            raise MalformedResponse(
                f"Response is not JSON: {e}", repository.full_name, next_cursor=next_cursor
            ) from e

        if not isinstance(records, list):
            raise MalformedResponse(
                f"Expected a list of records, got {type(records).__name__}",
                repository.full_name,
                next_cursor=next_cursor,
            )

        logger.debug("%s: fetched %d records (next=%s)", repository.full_name, len(records), next_cursor)
        return Page(records=records, next_cursor=next_cursor, cursor=cursor)

    def _check_status(self, response: httpx.Response, repository: TrackedRepository) -> None:
        """Map non-success status codes to the error taxonomy."""
        status = response.status_code
        if 200 <= status < 300:
            return

        if status in (403, 429):
            limited, retry_after = self._rate_limit_signal(response)
            if status == 429 or limited:
                raise RateLimited(retry_after=retry_after, repository=repository.full_name)

        if status == 401:
            raise AuthFailure("GitHub rejected the token (401)", repository.full_name, status_code=status)
        if status == 403:
            raise AuthFailure("GitHub denied access (403)", repository.full_name, status_code=status)
        if status == 404:
            raise AuthFailure(
                "Repository not found or not visible with the current token (404)",
                repository.full_name,
                status_code=status,
            )
        if status >= 500:
            raise TransientNetwork(f"Server error {status}", repository.full_name)

        raise RemoteRequestError(f"Unexpected GitHub response {status}", repository.full_name, status_code=status)

    def _rate_limit_signal(self, response: httpx.Response) -> tuple[bool, Optional[float]]:
        """Read the rate-limit signal from response headers.

        Returns:
            Tuple of (is_rate_limited, retry_after_seconds or None)
        """
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return True, float(retry_after)
            except ValueError:
                return True, None

        if response.headers.get("x-ratelimit-remaining") == "0":
            reset = response.headers.get("x-ratelimit-reset")
            try:
                return True, max(float(reset) - time.time(), 0.0)
            except (TypeError, ValueError):
                return True, None

        # Secondary rate limits may only say so in the error message
        try:
            body = response.json()
        except ValueError:
            return False, None
        message = body.get("message") if isinstance(body, dict) else None
        if isinstance(message, str) and "rate limit" in message.lower():
            return True, None

        return False, None

    def _next_cursor(self, response: httpx.Response) -> Optional[str]:
        return response.links.get("next", {}).get("url")

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "gh-offline",
        }

        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        return headers
