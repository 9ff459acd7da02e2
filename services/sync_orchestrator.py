"""Crawl, targeted sync and full-catalog sync over one source adapter.

Titles are processed one at a time; the only concurrency below this layer is
the chapter batch inside ``ChapterReconciler`` and the throttle in front of
the store. Per-title failures inside a multi-title loop are logged and
counted, never re-raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import config
from repositories import chapters_repo, titles_repo
from .chapter_reconciler import ChapterReconciler
from .title_reconciler import TitleReconciler

LOGGER = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    FETCHING_SOURCE = "fetching_source"
    DIFFING = "diffing"
    APPLYING_NEW = "applying_new"
    APPLYING_CHANGED = "applying_changed"
    APPLYING_REMOVED = "applying_removed"
    REPORTING = "reporting"


@dataclass
class SyncReport:
    new: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.new + self.updated + self.deleted

    def __add__(self, other: "SyncReport") -> "SyncReport":
        return SyncReport(
            new=self.new + other.new,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
        )

    def as_dict(self) -> Dict[str, int]:
        return {"new": self.new, "updated": self.updated, "deleted": self.deleted}


@dataclass
class FullSyncSummary:
    total_titles: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    report: SyncReport = field(default_factory=SyncReport)


@dataclass
class CrawlSummary:
    pages_crawled: int = 0
    titles_processed: int = 0
    titles_failed: int = 0
    chapters_seen: int = 0


@dataclass
class ChapterDiff:
    new: List = field(default_factory=list)
    changed: List = field(default_factory=list)
    removed: List[dict] = field(default_factory=list)


def _title_text(value):
    return value or None


def _content_changed(outcomes, deleted):
    return deleted > 0 or any(outcome.touched for outcome in outcomes)


def diff_chapters(persisted: Dict, source_chapters) -> ChapterDiff:
    """Split source chapters against persisted ones keyed by chapter number.

    * new: number not persisted.
    * changed: persisted, but the chapter title or the page count differs.
    * removed: persisted number absent from the source.
    """
    by_number = {}
    for chapter in source_chapters:
        if chapter.number in by_number:
            LOGGER.warning("Source returned chapter %s more than once; keeping the last one.", chapter.number)
        by_number[chapter.number] = chapter

    diff = ChapterDiff()
    for number, chapter in by_number.items():
        existing = persisted.get(number)
        if existing is None:
            diff.new.append(chapter)
            continue
        if (
            _title_text(existing.get("title")) != _title_text(chapter.title)
            or len(existing.get("pages") or []) != len(chapter.pages)
        ):
            diff.changed.append(chapter)

    diff.removed = [row for number, row in persisted.items() if number not in by_number]
    return diff


class SyncOrchestrator:
    def __init__(
        self,
        source,
        pool,
        throttle,
        *,
        title_reconciler: Optional[TitleReconciler] = None,
        chapter_reconciler: Optional[ChapterReconciler] = None,
        title_delay: Optional[float] = None,
        page_delay: Optional[float] = None,
        sync_delay: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.source = source
        self.pool = pool
        self.throttle = throttle
        self.title_reconciler = title_reconciler or TitleReconciler(pool, throttle)
        self.chapter_reconciler = chapter_reconciler or ChapterReconciler(pool, throttle, sleep=sleep)
        self.title_delay = config.CRAWL_TITLE_DELAY_SECONDS if title_delay is None else title_delay
        self.page_delay = config.CRAWL_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.sync_delay = config.SYNC_TITLE_DELAY_SECONDS if sync_delay is None else sync_delay
        self._sleep = sleep
        self.phase = SyncPhase.IDLE

    async def _pause(self, seconds):
        if seconds and seconds > 0:
            await self._sleep(seconds)

    async def fetch_all_chapters(self, provider_title_id) -> List:
        """Follow the adapter's chapter pagination until it reports no next page."""
        chapters = []
        page = 1
        visited = {page}
        while True:
            result = await self.source.fetch_chapter_list(provider_title_id, page)
            chapters.extend(result.chapters)
            if not result.has_next or not result.chapters:
                break
            next_page = result.next_page or page + 1
            if next_page in visited:
                LOGGER.warning("Chapter pagination for %s loops back to page %s; stopping.", provider_title_id, next_page)
                break
            visited.add(next_page)
            page = next_page
        return chapters

    # --- crawl mode ---

    async def _ingest_title(self, title):
        title_id = await self.title_reconciler.reconcile(title)
        chapters = await self.fetch_all_chapters(title.source_id)
        await self.chapter_reconciler.reconcile_many(chapters, title_id)
        LOGGER.info("Processed %s (id=%s): %s chapter(s) from source", title.title, title_id, len(chapters))
        return title_id, len(chapters)

    async def crawl_title(self, provider_id) -> int:
        """Targeted crawl: detail, title reconcile, full chapter list."""
        title = await self.source.fetch_title_detail(provider_id)
        title_id, _ = await self._ingest_title(title)
        return title_id

    async def crawl(self, start_page: int = 1, end_page: Optional[int] = None) -> CrawlSummary:
        summary = CrawlSummary()
        page = max(1, int(start_page or 1))

        while True:
            LOGGER.info("Crawling catalog page %s...", page)
            result = await self.source.fetch_catalog_page(page)
            if not result.titles:
                LOGGER.info("No titles on page %s; stopping.", page)
                break
            summary.pages_crawled += 1

            for index, title in enumerate(result.titles):
                try:
                    _, chapter_count = await self._ingest_title(title)
                    summary.chapters_seen += chapter_count
                    summary.titles_processed += 1
                except Exception:
                    summary.titles_failed += 1
                    LOGGER.error("Failed to process title %s (%s)", title.title, title.source_id, exc_info=True)
                if index < len(result.titles) - 1:
                    await self._pause(self.title_delay)

            next_page = result.next_page or page + 1
            if not result.has_next or (end_page is not None and next_page > end_page):
                break
            page = next_page
            await self._pause(self.page_delay)

        return summary

    # --- targeted sync ---

    def _load_snapshot(self, identifier):
        with self.pool.transaction() as conn:
            title_row = titles_repo.find_title(conn, identifier)
            if title_row is None:
                return None
            return dict(title_row), chapters_repo.list_chapters_with_pages(conn, title_row["id"])

    def _finish_sync(self, title_id, content_changed):
        with self.pool.transaction() as conn:
            if content_changed:
                titles_repo.touch_content_updated(conn, title_id)
            titles_repo.mark_synced(conn, title_id)

    async def sync_title(self, identifier) -> Optional[SyncReport]:
        """Bring one persisted title's chapters in line with the source.

        Returns None when the title is not persisted. Errors propagate to the
        caller; there is no retry. Chapters applied before a failure still
        refresh the title's last content update.
        """
        title_id = None
        applied = []
        deleted = 0
        finished = False
        try:
            self.phase = SyncPhase.FETCHING_SOURCE
            snapshot = await self.throttle.run(self._load_snapshot, identifier)
            if snapshot is None:
                LOGGER.info("Title %s is not in the store.", identifier)
                return None
            title_row, persisted = snapshot
            title_id = title_row["id"]
            provider_id = title_row.get("source_id") or title_row["slug"]

            source_chapters = await self.fetch_all_chapters(provider_id)
            LOGGER.info("Found %s chapter(s) at source for %s", len(source_chapters), title_row["slug"])

            self.phase = SyncPhase.DIFFING
            diff = diff_chapters(persisted, source_chapters)

            self.phase = SyncPhase.APPLYING_NEW
            for chapter in diff.new:
                LOGGER.info("Adding chapter %s: %s", chapter.number, chapter.title)
            if diff.new:
                await self.chapter_reconciler.reconcile_many(
                    diff.new, title_id, touch_title=False, outcomes=applied
                )

            self.phase = SyncPhase.APPLYING_CHANGED
            for chapter in diff.changed:
                LOGGER.info("Updating chapter %s: %s", chapter.number, chapter.title)
            if diff.changed:
                await self.chapter_reconciler.reconcile_many(
                    diff.changed, title_id, touch_title=False, outcomes=applied
                )

            self.phase = SyncPhase.APPLYING_REMOVED
            for row in diff.removed:
                LOGGER.info("Deleting chapter %s: %s", row["chapter_number"], row.get("title"))
                await self.chapter_reconciler.delete_chapter(row["id"])
                deleted += 1

            self.phase = SyncPhase.REPORTING
            report = SyncReport(new=len(diff.new), updated=len(diff.changed), deleted=len(diff.removed))
            await self.throttle.run(self._finish_sync, title_id, _content_changed(applied, deleted))
            finished = True
            LOGGER.info(
                "Sync finished for %s: %s new, %s updated, %s deleted",
                title_row["slug"], report.new, report.updated, report.deleted,
            )
            return report
        except Exception:
            LOGGER.error("Sync of %s failed during %s", identifier, self.phase.value)
            if not finished and title_id is not None and _content_changed(applied, deleted):
                await self._touch_after_failure(title_id)
            raise
        finally:
            self.phase = SyncPhase.IDLE

    async def _touch_after_failure(self, title_id):
        try:
            await self.chapter_reconciler.touch_title(title_id)
        except Exception:
            LOGGER.error("Could not refresh content timestamp of title %s", title_id, exc_info=True)

    # --- full-catalog sync ---

    def _list_titles(self):
        with self.pool.transaction() as conn:
            return [dict(row) for row in titles_repo.list_titles_oldest_first(conn)]

    async def sync_all(self) -> FullSyncSummary:
        titles = await self.throttle.run(self._list_titles)
        summary = FullSyncSummary(total_titles=len(titles))
        if not titles:
            LOGGER.info("No titles in the store to sync.")
            return summary

        LOGGER.info("Syncing %s title(s), oldest first...", len(titles))
        for index, row in enumerate(titles):
            LOGGER.info("[%s/%s] Syncing %s", index + 1, len(titles), row["title"])
            try:
                report = await self.sync_title(row["slug"])
                if report is None:
                    summary.skipped += 1
                else:
                    summary.report = summary.report + report
                    summary.succeeded += 1
            except Exception:
                summary.failed += 1
                LOGGER.error("Failed to sync title %s", row["title"], exc_info=True)

            if index < len(titles) - 1:
                await self._pause(self.sync_delay)

        return summary
