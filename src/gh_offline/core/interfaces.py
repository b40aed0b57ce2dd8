"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from gh_offline.core.entities import (
    KindFilter,
    MergeOutcome,
    MirroredItem,
    NormalizedItem,
    Page,
    StateFilter,
    TrackedRepository,
)


class PageSource(ABC):
    """Interface for fetching pages of raw records from the remote tracker."""

    @abstractmethod
    async def fetch_page(
        self,
        repository: TrackedRepository,
        cursor: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Page:
        """Fetch one page; `cursor` None means the first page."""
        pass


class MirrorStore(ABC):
    """Interface for the local mirror."""

    @abstractmethod
    def add_repository(self, owner: str, name: str) -> TrackedRepository:
        pass

    @abstractmethod
    def remove_repository(self, owner: str, name: str) -> None:
        pass

    @abstractmethod
    def get_repository(self, owner: str, name: str) -> TrackedRepository:
        pass

    @abstractmethod
    def list_repositories(self) -> list[TrackedRepository]:
        pass

    @abstractmethod
    def mark_synced(self, repository: TrackedRepository, at: datetime) -> None:
        pass

    @abstractmethod
    def upsert_item(self, repository: TrackedRepository, normalized: NormalizedItem) -> MergeOutcome:
        """Merge one item with its labels and reactions atomically."""
        pass

    @abstractmethod
    def list_items(
        self,
        repository: Optional[TrackedRepository] = None,
        state: StateFilter = StateFilter.OPEN,
        kind: KindFilter = KindFilter.ALL,
    ) -> list[MirroredItem]:
        pass

    @abstractmethod
    def get_item(
        self,
        number: int,
        repository: Optional[TrackedRepository] = None,
        kind: Optional[KindFilter] = None,
    ) -> MirroredItem:
        pass


class ItemRenderer(ABC):
    """Interface for rendering mirrored items."""

    @abstractmethod
    def render_list(self, items: list[MirroredItem], show_kind: bool = False, show_state: bool = False) -> str:
        pass

    @abstractmethod
    def render_detail(self, mirrored: MirroredItem) -> str:
        pass
