"""Upsert a canonical title and its genre links in one throttled transaction."""

import logging

import config
from repositories import titles_repo

LOGGER = logging.getLogger(__name__)


def cover_changed(stored_url, new_url):
    """Plain string comparison; the images themselves are never inspected."""
    return (stored_url or None) != (new_url or None)


class TitleReconciler:
    def __init__(self, pool, throttle, *, transaction_timeout_ms=None):
        self.pool = pool
        self.throttle = throttle
        self.transaction_timeout_ms = (
            config.TITLE_TRANSACTION_TIMEOUT_MS if transaction_timeout_ms is None else transaction_timeout_ms
        )

    async def reconcile(self, title):
        """Persist ``title`` and return its internal id.

        Failures (including the transaction timeout) propagate as
        ``PersistenceError``; the caller decides whether to skip the title.
        """
        return await self.throttle.run(self._reconcile_in_transaction, title)

    def _reconcile_in_transaction(self, title):
        with self.pool.transaction(statement_timeout_ms=self.transaction_timeout_ms) as conn:
            existing = titles_repo.find_title_by_slug(conn, title.slug)
            cover_image_url = title.cover_url
            if existing is not None and cover_changed(existing.get("cover_image_url"), cover_image_url):
                LOGGER.info(
                    "Cover image changed for %s: %s -> %s",
                    title.slug,
                    existing.get("cover_image_url"),
                    cover_image_url,
                )

            title_id = titles_repo.upsert_title(conn, title, cover_image_url)

            if title.genres:
                titles_repo.replace_title_genres(conn, title_id, title.genres)

        LOGGER.debug("Reconciled title %s (id=%s, genres=%s)", title.slug, title_id, len(title.genres))
        return title_id
