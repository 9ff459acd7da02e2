from typing import Any, Dict, List, Optional

import config
from utils.text import clean_text, slugify
from utils.time import parse_iso_utc
from .base_crawler import CatalogSource, SourceConfig
from .models import (
    CanonicalChapter,
    CanonicalGenre,
    CanonicalTitle,
    CatalogPage,
    ChapterPage,
    TitleStatus,
    parse_chapter_number,
)

# MangaRaw's numeric status codes (1 = completed, 2 = ongoing on this provider).
STATUS_MAP = {
    0: TitleStatus.DRAFT,
    1: TitleStatus.COMPLETED,
    2: TitleStatus.ONGOING,
    3: TitleStatus.CANCELLED,
    4: TitleStatus.HIATUS,
}

DETAIL_INCLUDES = "group,user,genres,artist,doujinshi"


def _to_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class MangaRawSource(CatalogSource):
    """MangaRaw admin API (``{data, pagination: {currentPage, totalPages, links: {next}}}``)."""

    DISPLAY_NAME = "MangaRaw"

    def __init__(self, auth_token: Optional[str] = None):
        super().__init__(
            SourceConfig(
                name="mangaraw",
                base_url=config.MANGARAW_BASE_URL.rstrip("/"),
                per_page=config.MANGARAW_PER_PAGE,
                supported_features=["manga", "chapter"],
                requires_auth=True,
                auth_token=auth_token or config.MANGARAW_API_TOKEN,
            )
        )

    @staticmethod
    def _pagination(payload: Dict[str, Any], page: int):
        pagination = payload.get("pagination")
        if not isinstance(pagination, dict):
            return False, None, None
        links = pagination.get("links") if isinstance(pagination.get("links"), dict) else {}
        has_next = bool(links.get("next"))
        current_page = _to_int(pagination.get("currentPage"), page) or page
        total = pagination.get("total")
        return has_next, (current_page + 1 if has_next else None), (_to_int(total) if total is not None else None)

    def _data_list(self, payload: Dict[str, Any], url: str) -> List[Dict[str, Any]]:
        data = payload.get("data")
        if not isinstance(data, list):
            raise self._format_error("'data' is not a list", url, payload)
        return [item for item in data if isinstance(item, dict)]

    async def fetch_catalog_page(self, page: int) -> CatalogPage:
        payload = await self._request_json(
            "/mangas",
            {"page": page, "per_page": self.config.per_page, "include": "genres"},
        )
        items = self._data_list(payload, "/mangas")
        has_next, next_page, total = self._pagination(payload, page)
        return CatalogPage(
            titles=[self.map_title(item) for item in items],
            has_next=has_next,
            next_page=next_page,
            total=total,
        )

    async def fetch_title_detail(self, provider_id: str) -> CanonicalTitle:
        path = f"/mangas/{provider_id}"
        payload = await self._request_json(path, {"include": DETAIL_INCLUDES})
        data = payload.get("data")
        if not isinstance(data, dict):
            raise self._format_error("'data' is not an object", path, payload)
        return self.map_title(data)

    async def fetch_chapter_list(self, provider_title_id: str, page: int = 1) -> ChapterPage:
        payload = await self._request_json(
            "/chapters",
            {
                "filter[manga_id]": provider_title_id,
                "page": page,
                "per_page": config.MANGARAW_CHAPTERS_PER_PAGE,
            },
        )
        items = self._data_list(payload, "/chapters")
        has_next, next_page, total = self._pagination(payload, page)
        return ChapterPage(
            chapters=[self.map_chapter(item, provider_title_id) for item in items],
            has_next=has_next,
            next_page=next_page,
            total=total,
        )

    def _map_genres(self, raw_genres) -> tuple:
        if not isinstance(raw_genres, list):
            return ()
        genres = []
        for genre in raw_genres:
            if not isinstance(genre, dict):
                continue
            name = clean_text(genre.get("name"))
            if not name:
                continue
            slug = clean_text(genre.get("slug")) or slugify(name)
            genres.append(CanonicalGenre(source_id=str(genre.get("id") or slug), name=name, slug=slug))
        return tuple(genres)

    def map_title(self, data: Dict[str, Any]) -> CanonicalTitle:
        source_id = clean_text(str(data.get("id") or ""))
        name = clean_text(data.get("name"))
        slug = clean_text(data.get("slug")) or slugify(name)
        if not source_id or not name or not slug:
            raise self._format_error("title is missing id/name/slug", None, data)

        alternative_titles = {}
        name_alt = clean_text(data.get("name_alt"))
        if name_alt:
            alternative_titles["en"] = name_alt

        return CanonicalTitle(
            source_id=source_id,
            source_name=self.name,
            title=name,
            slug=slug,
            cover_url=clean_text(data.get("cover_full_url")) or None,
            description=data.get("pilot") if isinstance(data.get("pilot"), str) else None,
            status=STATUS_MAP.get(_to_int(data.get("status"), -1), TitleStatus.UNKNOWN),
            views=_to_int(data.get("views")),
            alternative_titles=alternative_titles,
            genres=self._map_genres(data.get("genres")),
            created_at=parse_iso_utc(data.get("created_at")),
            updated_at=parse_iso_utc(data.get("updated_at")),
        )

    def map_chapter(self, data: Dict[str, Any], provider_title_id: str) -> CanonicalChapter:
        try:
            number = parse_chapter_number(data.get("order"))
        except ValueError as exc:
            raise self._format_error(f"chapter has invalid order: {exc}", None, data) from exc

        content = data.get("content")
        if content is None:
            content = []
        if not isinstance(content, list):
            raise self._format_error("chapter 'content' is not a list", None, data)
        pages = tuple(url.strip() for url in content if isinstance(url, str) and url.strip())

        return CanonicalChapter(
            source_id=str(data.get("id") or ""),
            title_source_id=str(provider_title_id),
            number=number,
            title=clean_text(data.get("name")) or None,
            slug=clean_text(data.get("slug")),
            pages=pages,
            views=_to_int(data.get("views")),
            released_at=parse_iso_utc(data.get("created_at")),
        )
