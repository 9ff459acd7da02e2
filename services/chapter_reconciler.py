"""Write a title's chapters and, only when needed, their pages."""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import config
from repositories import chapters_repo, titles_repo

LOGGER = logging.getLogger(__name__)


def should_update_pages(existing_pages, new_page_refs, force_update=False):
    """Decide whether a chapter's page list has to be rewritten.

    ``existing_pages`` are the persisted rows (``page_number``/``image_url``)
    and ``new_page_refs`` the source's ordered image references. Returning
    False means the page table is left untouched for this chapter.
    """
    if force_update:
        return True
    if len(existing_pages) != len(new_page_refs):
        return True
    if not existing_pages:
        return True

    by_number = {page["page_number"]: page["image_url"] for page in existing_pages}
    for position, ref in enumerate(new_page_refs, start=1):
        if by_number.get(position) != ref.strip():
            return True
    return False


@dataclass(frozen=True)
class ChapterOutcome:
    chapter_id: int
    chapter_number: object
    created: bool
    pages_rewritten: bool
    title_changed: bool = False

    @property
    def touched(self):
        return self.created or self.pages_rewritten or self.title_changed


class ChapterReconciler:
    def __init__(self, pool, throttle, *, batch_size=None, batch_delay=None, sleep=asyncio.sleep):
        self.pool = pool
        self.throttle = throttle
        self.batch_size = config.CHAPTER_BATCH_SIZE if batch_size is None else max(1, int(batch_size))
        self.batch_delay = config.CHAPTER_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self._sleep = sleep

    async def reconcile_one(self, chapter, title_id, *, force_update=False) -> ChapterOutcome:
        return await self.throttle.run(self._reconcile_chapter, chapter, title_id, force_update)

    async def reconcile_many(
        self,
        chapters: Sequence,
        title_id: int,
        *,
        force_update: bool = False,
        touch_title: bool = True,
        outcomes: Optional[List[ChapterOutcome]] = None,
    ) -> List[ChapterOutcome]:
        """Reconcile ``chapters`` in source order, a fixed-size batch at a time.

        Batches never overlap; the pause between them bounds the burst the
        throttle sees. When any chapter was created, had its pages rewritten
        or got a new title, the title's last content update is refreshed once,
        also when a later chapter fails and the error is re-raised.

        Committed outcomes are appended to ``outcomes`` when a list is passed,
        so callers can see what was applied before a failure.
        """
        if outcomes is None:
            outcomes = []
        applied_before = len(outcomes)
        try:
            for start in range(0, len(chapters), self.batch_size):
                batch = chapters[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(self.reconcile_one(chapter, title_id, force_update=force_update) for chapter in batch),
                    return_exceptions=True,
                )
                failure = None
                for result in results:
                    if isinstance(result, BaseException):
                        failure = failure or result
                    else:
                        outcomes.append(result)
                if failure is not None:
                    raise failure

                if start + self.batch_size < len(chapters) and self.batch_delay > 0:
                    await self._sleep(self.batch_delay)
        finally:
            if touch_title and any(outcome.touched for outcome in outcomes[applied_before:]):
                await self.touch_title(title_id)
        return outcomes

    async def touch_title(self, title_id):
        await self.throttle.run(self._touch_title, title_id)

    async def delete_chapter(self, chapter_id):
        return await self.throttle.run(self._delete_chapter, chapter_id)

    def _reconcile_chapter(self, chapter, title_id, force_update):
        with self.pool.transaction() as conn:
            existing = chapters_repo.find_chapter_with_pages(conn, title_id, chapter.number)
            chapter_id, inserted = chapters_repo.upsert_chapter(conn, title_id, chapter)

            existing_pages = existing["pages"] if existing else []
            rewrite = should_update_pages(existing_pages, chapter.pages, force_update)
            if rewrite:
                written = chapters_repo.replace_pages(conn, chapter_id, chapter.pages)
                LOGGER.debug(
                    "Chapter %s (id=%s): pages rewritten %s -> %s",
                    chapter.number, chapter_id, len(existing_pages), written,
                )

        return ChapterOutcome(
            chapter_id=chapter_id,
            chapter_number=chapter.number,
            created=inserted,
            pages_rewritten=rewrite,
            title_changed=existing is not None and (existing.get("title") or None) != (chapter.title or None),
        )

    def _touch_title(self, title_id):
        with self.pool.transaction() as conn:
            titles_repo.touch_content_updated(conn, title_id)

    def _delete_chapter(self, chapter_id):
        with self.pool.transaction() as conn:
            return chapters_repo.delete_chapter(conn, chapter_id)
