"""Business logic use cases."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from gh_offline.core import (
    KindFilter,
    MergeOutcome,
    MirroredItem,
    MirrorStore,
    RemoteFetcher,
    RepoSyncSummary,
    StateFilter,
    SyncReport,
    TrackedRepository,
    normalize_page,
)
from gh_offline.core.errors import IntegrityViolation, SyncError

logger = logging.getLogger(__name__)


class RepositoryService:
    """Service for managing tracked repositories."""

    def __init__(self, store: MirrorStore) -> None:
        self.store = store

    def add(self, spec: str) -> TrackedRepository:
        """Track repository given as `owner/name`; raises AlreadyTracked."""
        repository = TrackedRepository.parse(spec)
        return self.store.add_repository(repository.owner, repository.name)

    def remove(self, spec: str) -> None:
        """Stop tracking repository and delete its mirrored data; raises NotTracked."""
        repository = TrackedRepository.parse(spec)
        self.store.remove_repository(repository.owner, repository.name)

    def list(self) -> list[TrackedRepository]:
        return self.store.list_repositories()


class SyncService:
    """Service for mirroring all tracked repositories into the store."""

    def __init__(
        self,
        store: MirrorStore,
        fetcher: RemoteFetcher,
        concurrency: int = 4,
    ) -> None:
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.store = store
        self.fetcher = fetcher
        self.concurrency = concurrency

    async def sync_all(self, force: bool = False) -> SyncReport:
        """Sync every tracked repository with at most `concurrency` in flight.

        A failing repository never affects its siblings; an IntegrityViolation
        cancels the remaining work and propagates.
        """
        repositories = await asyncio.to_thread(self.store.list_repositories)
        if not repositories:
            return SyncReport()

        semaphore = asyncio.Semaphore(self.concurrency)
        start_time = time.monotonic()
        logger.info("Syncing %d repositories with concurrency=%d", len(repositories), self.concurrency)

        async def worker(repository: TrackedRepository) -> RepoSyncSummary:
            async with semaphore:
                return await self.sync_repository(repository, force=force)

        tasks = [asyncio.create_task(worker(repository)) for repository in repositories]
        try:
            summaries = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        report = SyncReport(summaries=list(summaries))
        logger.info(
            "Sync complete: %d repositories, %d items upserted, %d failed in %.1fs",
            len(report.summaries),
            report.items_upserted,
            len(report.failed),
            time.monotonic() - start_time,
        )
        return report

    async def sync_repository(self, repository: TrackedRepository, force: bool = False) -> RepoSyncSummary:
        """Fetch, normalize and merge one repository page by page.

        Each page is fully merged before the next one is requested, so an
        interruption leaves whole pages committed. Unless `force` is set only
        items updated since the last complete sync are requested.
        """
        summary = RepoSyncSummary(repository=repository)
        started_at = datetime.now(timezone.utc)
        since = None if force else repository.last_synced_at
        phase = "fetch"

        try:
            async for page in self.fetcher.pages(repository, since=since):
                summary.pages += 1
                if page.dropped:
                    summary.warnings += 1
                    continue

                phase = "normalize"
                normalized_page = normalize_page(repository, page.records)
                summary.warnings += normalized_page.rejected

                phase = "merge"
                for normalized in normalized_page.items:
                    outcome = await asyncio.to_thread(self.store.upsert_item, repository, normalized)
                    self._count(summary, outcome)

                phase = "fetch"

            # Unchanged repositories keep their watermark
            if summary.items_upserted or repository.last_synced_at is None:
                await asyncio.to_thread(self.store.mark_synced, repository, started_at)
        except IntegrityViolation:
            logger.error("%s: store integrity violation during %s", repository.full_name, phase)
            raise
        except SyncError as e:
            summary.error = str(e)
            summary.phase = getattr(e, "phase", phase)
            summary.hint = getattr(e, "hint", None)
            logger.warning(
                "%s: sync failed during %s after %d pages: %s",
                repository.full_name,
                summary.phase,
                summary.pages,
                e,
            )
            return summary

        logger.info(
            "%s: %d upserted, %d unchanged, %d stale, %d warnings over %d pages",
            repository.full_name,
            summary.items_upserted,
            summary.items_unchanged,
            summary.items_stale,
            summary.warnings,
            summary.pages,
        )
        return summary

    def _count(self, summary: RepoSyncSummary, outcome: MergeOutcome) -> None:
        if outcome in (MergeOutcome.INSERTED, MergeOutcome.UPDATED):
            summary.items_upserted += 1
        elif outcome == MergeOutcome.UNCHANGED:
            summary.items_unchanged += 1
        else:
            summary.items_stale += 1


class QueryService:
    """Offline reads against the mirror."""

    def __init__(self, store: MirrorStore) -> None:
        self.store = store

    def list_items(
        self,
        kind: KindFilter = KindFilter.ALL,
        state: StateFilter = StateFilter.OPEN,
        repository: Optional[str] = None,
    ) -> list[MirroredItem]:
        """List items matching the filters, most recently updated first."""
        scope = TrackedRepository.parse(repository) if repository else None
        return self.store.list_items(repository=scope, state=state, kind=kind)

    def get_item(
        self,
        number: int,
        kind: Optional[KindFilter] = None,
        repository: Optional[str] = None,
    ) -> MirroredItem:
        """Get one item by number; raises ItemNotFound."""
        scope = TrackedRepository.parse(repository) if repository else None
        return self.store.get_item(number, repository=scope, kind=kind)
