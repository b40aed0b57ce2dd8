"""Core domain layer."""

from gh_offline.core.entities import (
    Item,
    ItemKind,
    ItemState,
    KindFilter,
    Label,
    MergeOutcome,
    MirroredItem,
    NormalizedItem,
    NormalizedPage,
    Page,
    Reaction,
    ReactionKind,
    RepoSyncSummary,
    StateFilter,
    SyncReport,
    TrackedRepository,
)
from gh_offline.core.fetcher import RemoteFetcher, RetryPolicy
from gh_offline.core.interfaces import ItemRenderer, MirrorStore, PageSource
from gh_offline.core.normalizer import normalize_page

__all__ = [
    "Item",
    "ItemKind",
    "ItemState",
    "KindFilter",
    "Label",
    "MergeOutcome",
    "MirroredItem",
    "NormalizedItem",
    "NormalizedPage",
    "Page",
    "Reaction",
    "ReactionKind",
    "RepoSyncSummary",
    "StateFilter",
    "SyncReport",
    "TrackedRepository",
    "RemoteFetcher",
    "RetryPolicy",
    "ItemRenderer",
    "MirrorStore",
    "PageSource",
    "normalize_page",
]
