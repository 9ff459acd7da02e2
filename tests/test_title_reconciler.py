import asyncio
import logging

from crawlers.models import CanonicalGenre, CanonicalTitle, TitleStatus
from services.connection_throttle import ConnectionThrottle
from services.title_reconciler import TitleReconciler, cover_changed


def _title(cover_url="https://cdn.example/cover-v1.jpg", genres=()):
    return CanonicalTitle(
        source_id="m-1",
        source_name="fake",
        title="Blue Lock",
        slug="blue-lock",
        cover_url=cover_url,
        status=TitleStatus.ONGOING,
        views=10,
        genres=genres,
    )


SPORTS = CanonicalGenre(source_id="7", name="Sports", slug="sports")
DRAMA = CanonicalGenre(source_id="8", name="Drama", slug="drama")


def test_cover_changed_is_a_plain_comparison():
    assert cover_changed("a", "a") is False
    assert cover_changed(None, "") is False
    assert cover_changed("a", "b") is True
    assert cover_changed(None, "b") is True


def test_reconcile_creates_then_updates_the_same_row(memory_store, memory_pool):
    reconciler = TitleReconciler(memory_pool, ConnectionThrottle(2))

    first_id = asyncio.run(reconciler.reconcile(_title()))
    second_id = asyncio.run(reconciler.reconcile(_title(cover_url="https://cdn.example/cover-v2.jpg")))

    assert first_id == second_id
    assert len(memory_store.titles) == 1
    assert memory_store.titles[first_id]["cover_image_url"] == "https://cdn.example/cover-v2.jpg"


def test_cover_change_is_logged(memory_store, memory_pool, caplog):
    reconciler = TitleReconciler(memory_pool, ConnectionThrottle(2))
    asyncio.run(reconciler.reconcile(_title()))

    with caplog.at_level(logging.INFO, logger="services.title_reconciler"):
        asyncio.run(reconciler.reconcile(_title(cover_url="https://cdn.example/cover-v2.jpg")))

    assert "Cover image changed for blue-lock" in caplog.text


def test_genre_links_are_replaced(memory_store, memory_pool):
    reconciler = TitleReconciler(memory_pool, ConnectionThrottle(2))

    title_id = asyncio.run(reconciler.reconcile(_title(genres=(SPORTS, DRAMA))))
    asyncio.run(reconciler.reconcile(_title(genres=(DRAMA,))))

    assert memory_store.title_genres == {(title_id, memory_store.genres["drama"]["id"])}
    assert set(memory_store.genres) == {"sports", "drama"}


def test_empty_genre_list_keeps_existing_links(memory_store, memory_pool):
    reconciler = TitleReconciler(memory_pool, ConnectionThrottle(2))

    asyncio.run(reconciler.reconcile(_title(genres=(SPORTS,))))
    asyncio.run(reconciler.reconcile(_title(genres=())))

    assert len(memory_store.title_genres) == 1


def test_transaction_runs_with_the_configured_timeout(memory_store, memory_pool):
    reconciler = TitleReconciler(memory_pool, ConnectionThrottle(2), transaction_timeout_ms=1234)

    asyncio.run(reconciler.reconcile(_title()))

    assert memory_pool.statement_timeouts == [1234]
