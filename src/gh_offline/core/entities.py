"""Core domain entities."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ItemKind(str, Enum):
    """Kind of mirrored item."""

    ISSUE = "issue"
    PULL_REQUEST = "pull_request"


class ItemState(str, Enum):
    """State of mirrored item."""

    OPEN = "open"
    CLOSED = "closed"


class ReactionKind(str, Enum):
    """Reaction kinds reported in GitHub reaction roll-ups."""

    PLUS_ONE = "+1"
    MINUS_ONE = "-1"
    LAUGH = "laugh"
    HOORAY = "hooray"
    CONFUSED = "confused"
    HEART = "heart"
    ROCKET = "rocket"
    EYES = "eyes"


class KindFilter(str, Enum):
    """Item kind filter for queries."""

    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    ALL = "all"


class StateFilter(str, Enum):
    """Item state filter for queries."""

    OPEN = "open"
    CLOSED = "closed"
    ALL = "all"


class MergeOutcome(str, Enum):
    """Result of merging one normalized item into the store."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    STALE = "stale"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format datetime as UTC text; lexical order equals chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class TrackedRepository:
    """Remote repository mirrored locally."""

    owner: str
    name: str
    id: Optional[int] = None
    last_synced_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.owner:
            raise ValueError("Owner cannot be empty")
        if not self.name:
            raise ValueError("Name cannot be empty")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, spec: str) -> "TrackedRepository":
        """Parse repository in `owner/name` format."""
        parts = spec.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Repository must be in format owner/name, got '{spec}'")
        return cls(owner=parts[0], name=parts[1])

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Item:
    """Issue or pull request."""

    repo_id: int
    remote_id: int
    number: int
    kind: ItemKind
    title: str
    body: str
    state: ItemState
    author: Optional[str]
    created_at: datetime
    updated_at: datetime
    id: Optional[int] = None

    @property
    def is_pull_request(self) -> bool:
        return self.kind == ItemKind.PULL_REQUEST


@dataclass(frozen=True)
class Label:
    """Repository-scoped label."""

    name: str
    color: Optional[str] = None


@dataclass(frozen=True)
class Reaction:
    """Aggregate reaction count of one kind on one item."""

    kind: ReactionKind
    count: int


@dataclass(frozen=True)
class NormalizedItem:
    """Item with its labels and reaction counts, ready to be merged."""

    item: Item
    labels: tuple[Label, ...] = ()
    reactions: tuple[Reaction, ...] = ()


@dataclass
class NormalizedPage:
    """Result of normalizing one page of raw records."""

    items: list[NormalizedItem]
    rejected: int = 0


@dataclass(frozen=True)
class MirroredItem:
    """Stored item together with its repository and relations."""

    repository: TrackedRepository
    item: Item
    labels: tuple[Label, ...] = ()
    reactions: tuple[Reaction, ...] = ()


@dataclass
class Page:
    """One page of raw remote records."""

    records: list[dict[str, Any]]
    next_cursor: Optional[str] = None
    cursor: Optional[str] = None
    dropped: bool = False


@dataclass
class RepoSyncSummary:
    """Outcome of syncing one repository."""

    repository: TrackedRepository
    items_upserted: int = 0
    items_unchanged: int = 0
    items_stale: int = 0
    pages: int = 0
    warnings: int = 0
    error: Optional[str] = None
    phase: Optional[str] = None
    hint: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Summaries of one sync run across all tracked repositories."""

    summaries: list[RepoSyncSummary] = field(default_factory=list)

    @property
    def failed(self) -> list[RepoSyncSummary]:
        return [s for s in self.summaries if not s.ok]

    @property
    def items_upserted(self) -> int:
        return sum(s.items_upserted for s in self.summaries)
