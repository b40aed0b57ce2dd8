"""Shared fixtures."""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import pytest

from gh_offline.adapters.storage import SQLiteStore
from gh_offline.core import Page, PageSource, TrackedRepository


def _make_record(
    number: int,
    *,
    remote_id: Optional[int] = None,
    title: Optional[str] = None,
    body: Optional[str] = "Body",
    state: str = "open",
    pull_request: bool = False,
    author: Optional[str] = "octocat",
    created_at: str = "2024-01-01T00:00:00Z",
    updated_at: str = "2024-01-02T00:00:00Z",
    labels: tuple = (),
    reactions: Optional[dict[str, int]] = None,
) -> dict[str, Any]:
    """Build a raw record shaped like a GitHub issues API entry."""
    record: dict[str, Any] = {
        "id": remote_id if remote_id is not None else 1000 + number,
        "number": number,
        "title": title or f"Item {number}",
        "body": body,
        "state": state,
        "user": {"login": author} if author else None,
        "created_at": created_at,
        "updated_at": updated_at,
        "labels": [
            label if isinstance(label, dict) else {"name": label, "color": "ededed"} for label in labels
        ],
    }
    if pull_request:
        record["pull_request"] = {"url": f"https://api.github.com/pulls/{number}"}
    if reactions is not None:
        record["reactions"] = {"url": "https://api.github.com/reactions", "total_count": sum(reactions.values()), **reactions}
    return record


class ScriptedSource(PageSource):
    """PageSource replaying scripted pages per repository.

    Each script entry is either a list of records (a page) or an exception
    raised when that page is requested.
    """

    def __init__(self, scripts: dict[str, list[Union[list[dict], Exception]]]) -> None:
        self.scripts = scripts
        self.calls: list[tuple[str, Optional[str], Optional[datetime]]] = []

    async def fetch_page(
        self,
        repository: TrackedRepository,
        cursor: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Page:
        self.calls.append((repository.full_name, cursor, since))
        script = self.scripts.get(repository.full_name, [[]])
        index = int(cursor.rsplit("#", 1)[1]) if cursor else 0

        entry = script[index]
        if isinstance(entry, Exception):
            raise entry

        next_cursor = f"{repository.full_name}#{index + 1}" if index + 1 < len(script) else None
        return Page(records=entry, next_cursor=next_cursor, cursor=cursor)


@pytest.fixture
def make_record():
    """Factory for raw GitHub issue records."""
    return _make_record


@pytest.fixture
def scripted_source():
    """Class building a scripted PageSource."""
    return ScriptedSource


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    """Fresh SQLite store in a temporary directory."""
    return SQLiteStore(tmp_path / "mirror.db")
