import threading
from contextlib import contextmanager

import pytest

from crawlers.models import CatalogPage, ChapterPage
from repositories import chapters_repo, titles_repo
from services.errors import PersistenceError, SourceUnavailable


class MemoryStore:
    """In-memory stand-in for the four persisted tables.

    Methods mirror the repository functions (``conn`` is the store itself),
    so the fixture below can patch them in directly.
    """

    def __init__(self):
        self.titles = {}
        self.genres = {}
        self.title_genres = set()
        self.chapters = {}
        self.pages = {}
        self.page_writes = []
        self.content_touches = []
        self._next_id = 0
        self._clock = 0

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    def _tick(self):
        self._clock += 1
        return self._clock

    # titles_repo
    def find_title_by_slug(self, slug):
        for row in self.titles.values():
            if row["slug"] == slug:
                return dict(row)
        return None

    def find_title(self, identifier):
        identifier = str(identifier)
        row = self.find_title_by_slug(identifier)
        if row is None and identifier.isdigit() and int(identifier) in self.titles:
            row = dict(self.titles[int(identifier)])
        return row

    def list_titles_oldest_first(self):
        rows = sorted(self.titles.values(), key=lambda row: (row["updated_at"], row["id"]))
        return [dict(row) for row in rows]

    def upsert_title(self, title, cover_image_url):
        existing = self.find_title_by_slug(title.slug)
        title_id = existing["id"] if existing else self._new_id()
        previous = self.titles.get(title_id, {})
        self.titles[title_id] = {
            "id": title_id,
            "source_name": title.source_name,
            "source_id": title.source_id,
            "title": title.title,
            "slug": title.slug,
            "cover_image_url": cover_image_url,
            "status": title.status.value,
            "total_views": title.views,
            "last_chapter_uploaded_at": previous.get("last_chapter_uploaded_at"),
            "updated_at": self._tick(),
        }
        return title_id

    def replace_title_genres(self, title_id, genres):
        self.title_genres = {link for link in self.title_genres if link[0] != title_id}
        for genre in genres:
            row = self.genres.get(genre.slug)
            if row is None:
                row = {"id": self._new_id(), "slug": genre.slug, "name": genre.name}
                self.genres[genre.slug] = row
            row["name"] = genre.name
            self.title_genres.add((title_id, row["id"]))

    def touch_content_updated(self, title_id):
        self.titles[title_id]["last_chapter_uploaded_at"] = self._tick()
        self.content_touches.append(title_id)

    def mark_synced(self, title_id):
        self.titles[title_id]["updated_at"] = self._tick()

    # chapters_repo
    def _chapter_with_pages(self, row):
        chapter = dict(row)
        chapter["pages"] = [dict(page) for page in self.pages.get(row["id"], [])]
        return chapter

    def find_chapter_with_pages(self, title_id, chapter_number):
        for row in self.chapters.values():
            if row["title_id"] == title_id and row["chapter_number"] == chapter_number:
                return self._chapter_with_pages(row)
        return None

    def list_chapters_with_pages(self, title_id):
        return {
            row["chapter_number"]: self._chapter_with_pages(row)
            for row in sorted(self.chapters.values(), key=lambda row: row["chapter_number"])
            if row["title_id"] == title_id
        }

    def upsert_chapter(self, title_id, chapter):
        existing = self.find_chapter_with_pages(title_id, chapter.number)
        chapter_id = existing["id"] if existing else self._new_id()
        self.chapters[chapter_id] = {
            "id": chapter_id,
            "title_id": title_id,
            "chapter_number": chapter.number,
            "title": chapter.title,
            "slug": chapter.slug,
            "view_count": chapter.views,
        }
        return chapter_id, existing is None

    def replace_pages(self, chapter_id, page_urls):
        self.page_writes.append(chapter_id)
        self.pages[chapter_id] = [
            {"page_number": index, "image_url": url.strip()}
            for index, url in enumerate(page_urls, start=1)
        ]
        return len(page_urls)

    def delete_chapter(self, chapter_id):
        self.pages.pop(chapter_id, None)
        return 1 if self.chapters.pop(chapter_id, None) else 0

    # helpers for assertions
    def chapter_numbers(self, title_id):
        return sorted(row["chapter_number"] for row in self.chapters.values() if row["title_id"] == title_id)

    def page_numbers(self, chapter_id):
        return [page["page_number"] for page in self.pages.get(chapter_id, [])]


TITLES_REPO_FUNCTIONS = (
    "find_title_by_slug",
    "find_title",
    "list_titles_oldest_first",
    "upsert_title",
    "replace_title_genres",
    "touch_content_updated",
    "mark_synced",
)

CHAPTERS_REPO_FUNCTIONS = (
    "find_chapter_with_pages",
    "list_chapters_with_pages",
    "upsert_chapter",
    "replace_pages",
    "delete_chapter",
)


class MemoryPool:
    def __init__(self, store):
        self.store = store
        self.closed = False
        self.statement_timeouts = []
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self, statement_timeout_ms=None):
        if self.closed:
            raise PersistenceError("Connection pool is closed.")
        self.statement_timeouts.append(statement_timeout_ms)
        with self._lock:
            yield self.store

    def close(self):
        self.closed = True


class FakeSource:
    name = "fake"

    def __init__(self, catalog_pages=None, chapters=None, details=None, failing=()):
        self.catalog_pages = catalog_pages or {}
        self.chapters = chapters or {}
        self.details = details or {}
        self.failing = set(failing)
        self.chapter_requests = []
        self.auth_token = None
        self.closed = False

    def set_auth_token(self, token):
        self.auth_token = token

    def for_run(self, auth_token=None):
        self.set_auth_token(auth_token)
        return self

    async def close(self):
        self.closed = True

    async def fetch_catalog_page(self, page):
        return self.catalog_pages.get(page, CatalogPage(titles=[], has_next=False))

    async def fetch_title_detail(self, provider_id):
        if provider_id in self.failing:
            raise SourceUnavailable(f"fake source down for {provider_id}", source=self.name)
        return self.details[provider_id]

    async def fetch_chapter_list(self, provider_title_id, page=1):
        self.chapter_requests.append((provider_title_id, page))
        if provider_title_id in self.failing:
            raise SourceUnavailable(f"fake source down for {provider_title_id}", source=self.name)
        return ChapterPage(chapters=list(self.chapters.get(provider_title_id, [])), has_next=False)


@pytest.fixture
def memory_store(monkeypatch):
    for name in TITLES_REPO_FUNCTIONS:
        monkeypatch.setattr(titles_repo, name, getattr(MemoryStore, name))
    for name in CHAPTERS_REPO_FUNCTIONS:
        monkeypatch.setattr(chapters_repo, name, getattr(MemoryStore, name))
    return MemoryStore()


@pytest.fixture
def memory_pool(memory_store):
    return MemoryPool(memory_store)


@pytest.fixture
def no_sleep():
    calls = []

    async def fake_sleep(seconds):
        calls.append(seconds)

    fake_sleep.calls = calls
    return fake_sleep
