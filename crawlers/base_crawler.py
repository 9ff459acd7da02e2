#crawlers/base_crawler.py
import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

import config
from services.errors import SourceFormatError, SourceUnavailable
from .models import CanonicalChapter, CanonicalTitle, CatalogPage, ChapterPage

LOGGER = logging.getLogger(__name__)

PAYLOAD_EXCERPT_LENGTH = 300


@dataclass
class SourceConfig:
    name: str
    base_url: str
    per_page: int
    supported_features: List[str] = field(default_factory=list)
    requires_auth: bool = False
    auth_token: Optional[str] = None


class _TransientHttpError(Exception):
    """Connection-level failure that the transport may attempt again."""


class CatalogSource(ABC):
    """
    모든 카탈로그 소스 어댑터를 위한 추상 기본 클래스입니다.

    Each adapter fetches list/detail/chapter payloads from one provider and maps
    them onto the canonical records in ``crawlers.models``. Pagination is always
    reported as ``has_next``/``next_page`` so callers never branch on the
    provider.
    """

    def __init__(self, source_config: SourceConfig):
        self.config = source_config
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return self.config.name

    def set_auth_token(self, token: Optional[str]) -> None:
        if token and self.config.requires_auth:
            self.config.auth_token = token

    def for_run(self, auth_token: Optional[str] = None) -> "CatalogSource":
        """Copy of this adapter with its own config and HTTP session.

        The registry keeps one adapter per name; each run works on a copy so
        its token and session stay with that run.
        """
        run_source = copy.copy(self)
        run_source.config = replace(self.config, supported_features=list(self.config.supported_features))
        run_source._session = None
        run_source.set_auth_token(auth_token)
        return run_source

    def _build_headers(self) -> Dict[str, str]:
        headers = dict(config.CRAWLER_HEADERS)
        if self.config.requires_auth and self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=config.CRAWLER_HTTP_TOTAL_TIMEOUT_SECONDS,
                connect=config.CRAWLER_HTTP_CONNECT_TIMEOUT_SECONDS,
                sock_read=config.CRAWLER_HTTP_SOCK_READ_TIMEOUT_SECONDS,
            )
            connector = aiohttp.TCPConnector(limit=config.CRAWLER_HTTP_CONCURRENCY_LIMIT, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_once(self, url: str, params: Optional[Dict[str, Any]]) -> str:
        session = self._get_session()
        try:
            async with session.get(url, headers=self._build_headers(), params=params) as response:
                text = await response.text()
                if response.status >= 400:
                    raise SourceUnavailable(
                        f"{self.name} answered HTTP {response.status} for {url}",
                        source=self.name,
                        url=url,
                        status=response.status,
                    )
                return text
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as exc:
            raise _TransientHttpError(str(exc) or exc.__class__.__name__) from exc

    async def _request_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET ``base_url + path`` and return the decoded JSON object."""
        url = f"{self.config.base_url}{path}"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(config.SOURCE_HTTP_MAX_ATTEMPTS),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(_TransientHttpError),
                reraise=True,
            ):
                with attempt:
                    text = await self._get_once(url, params)
        except _TransientHttpError as exc:
            raise SourceUnavailable(
                f"{self.name} unreachable at {url}: {exc}", source=self.name, url=url
            ) from exc
        except aiohttp.ClientError as exc:
            raise SourceUnavailable(
                f"{self.name} request failed at {url}: {exc}", source=self.name, url=url
            ) from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise self._format_error("response is not JSON", url, text) from exc
        if not isinstance(payload, dict):
            raise self._format_error("response is not a JSON object", url, text)
        return payload

    def _format_error(self, reason: str, url: Optional[str], payload: Any) -> SourceFormatError:
        if isinstance(payload, str):
            excerpt = payload
        else:
            excerpt = json.dumps(payload, ensure_ascii=False, default=str)
        excerpt = excerpt[:PAYLOAD_EXCERPT_LENGTH]
        LOGGER.warning("[%s] unexpected payload (%s) url=%s payload=%s", self.name, reason, url, excerpt)
        return SourceFormatError(
            f"{self.name}: {reason}", source=self.name, url=url, payload_excerpt=excerpt
        )

    @abstractmethod
    async def fetch_catalog_page(self, page: int) -> CatalogPage:
        raise NotImplementedError

    @abstractmethod
    async def fetch_title_detail(self, provider_id: str) -> CanonicalTitle:
        raise NotImplementedError

    @abstractmethod
    async def fetch_chapter_list(self, provider_title_id: str, page: int = 1) -> ChapterPage:
        raise NotImplementedError

    @abstractmethod
    def map_title(self, data: Dict[str, Any]) -> CanonicalTitle:
        """Provider title payload -> ``CanonicalTitle``."""
        raise NotImplementedError

    @abstractmethod
    def map_chapter(self, data: Dict[str, Any], provider_title_id: str) -> CanonicalChapter:
        """Provider chapter payload -> ``CanonicalChapter``."""
        raise NotImplementedError
