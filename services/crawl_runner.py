"""Wire a source, the store and the throttle together for one run."""

import logging
from dataclasses import dataclass
from typing import Optional

import config
from crawlers.registry import default_registry
from database import ConnectionPool
from .connection_throttle import ConnectionThrottle
from .sync_orchestrator import CrawlSummary, FullSyncSummary, SyncOrchestrator, SyncReport

LOGGER = logging.getLogger(__name__)

MODE_CRAWL = "crawl"
MODE_CRAWL_TITLE = "crawl_title"
MODE_SYNC_TITLE = "sync_title"
MODE_SYNC_ALL = "sync_all"


@dataclass
class CrawlOptions:
    source: str = config.DEFAULT_SOURCE
    start_page: int = 1
    end_page: Optional[int] = None
    manga_id: Optional[str] = None
    sync: bool = False
    use_original_images: bool = False
    concurrency: Optional[int] = None
    auth_token: Optional[str] = None

    @property
    def mode(self) -> str:
        if self.sync:
            return MODE_SYNC_TITLE if self.manga_id else MODE_SYNC_ALL
        return MODE_CRAWL_TITLE if self.manga_id else MODE_CRAWL


@dataclass
class RunResult:
    mode: str
    crawl: Optional[CrawlSummary] = None
    title_id: Optional[int] = None
    sync_report: Optional[SyncReport] = None
    full_sync: Optional[FullSyncSummary] = None
    fell_back_to_crawl: bool = False


def describe(options: CrawlOptions) -> str:
    message = f"source: {options.source}"
    if options.manga_id:
        message += f" for title id: {options.manga_id}"
    elif not options.sync:
        page_range = f"{options.start_page}"
        if options.end_page:
            page_range += f" to {options.end_page}"
        message += f" from page {page_range}"
    if options.sync:
        message += " (sync mode)"
    if options.use_original_images:
        message += " (using original images)"
    else:
        # No image re-hosting exists in this service; URLs are stored verbatim either way.
        message += " (image re-hosting unavailable, storing original URLs)"
    return message


async def run_crawler(options: CrawlOptions, *, registry=None, pool_factory=ConnectionPool) -> RunResult:
    """Run one crawl/sync.

    The source is resolved before any I/O, so an unknown name fails fast, and
    the run gets its own copy of the registered adapter. The throttle is always
    drained before the store connections are released.
    """
    registry = registry or default_registry
    source = registry.get(options.source).for_run(options.auth_token)

    max_concurrent = options.concurrency or config.DB_MAX_CONCURRENT_OPERATIONS
    pool = pool_factory(maxconn=max_concurrent)
    throttle = ConnectionThrottle(max_concurrent, close_callback=pool.close)
    orchestrator = SyncOrchestrator(source, pool, throttle)

    result = RunResult(mode=options.mode)
    try:
        if result.mode == MODE_SYNC_TITLE:
            result.sync_report = await orchestrator.sync_title(options.manga_id)
            if result.sync_report is None:
                LOGGER.info("Title %s not found in the store; running a regular crawl for it.", options.manga_id)
                result.fell_back_to_crawl = True
                result.title_id = await orchestrator.crawl_title(options.manga_id)
        elif result.mode == MODE_SYNC_ALL:
            result.full_sync = await orchestrator.sync_all()
        elif result.mode == MODE_CRAWL_TITLE:
            result.title_id = await orchestrator.crawl_title(options.manga_id)
        else:
            result.crawl = await orchestrator.crawl(options.start_page, options.end_page)
    finally:
        await throttle.drain_and_close()
        await source.close()
    return result
