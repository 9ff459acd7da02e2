"""Catalog crawler / sync command line.

Examples:
    python crawl.py mangaraw 1 5 --use-original-images
    python crawl.py mangaraw --manga-id=20463a51-7faf-4a3f-9e67-5c624f80d487
    python crawl.py mangaraw --sync --manga-id=20463a51-7faf-4a3f-9e67-5c624f80d487
    python crawl.py mangaraw --sync
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
import traceback
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

import config
from crawlers.registry import list_sources
from services.crawl_runner import (
    MODE_CRAWL,
    MODE_CRAWL_TITLE,
    MODE_SYNC_ALL,
    MODE_SYNC_TITLE,
    CrawlOptions,
    RunResult,
    run_crawler,
)

LOGGER = logging.getLogger("crawl")


def _setup_logging(level: str) -> None:
    numeric = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def _make_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl a catalog source into the store, or sync stored titles against it.",
        epilog=f"Supported sources: {', '.join(list_sources())}",
    )
    parser.add_argument("source", nargs="?", default=config.DEFAULT_SOURCE, help="Source name (default: %(default)s).")
    parser.add_argument("start_page", nargs="?", type=_positive_int, default=1, help="First catalog page (default: 1).")
    parser.add_argument("end_page", nargs="?", type=_positive_int, default=None, help="Last catalog page (optional).")
    parser.add_argument("--manga-id", dest="manga_id", default=None, help="Crawl (or with --sync, sync) one title.")
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Sync chapters of stored titles; with --manga-id only that title, otherwise all of them.",
    )
    parser.add_argument(
        "--use-original-images",
        action="store_true",
        help="Store source image URLs verbatim.",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help=f"Max concurrent store operations (default: {config.DB_MAX_CONCURRENT_OPERATIONS}).",
    )
    parser.add_argument("--auth-token", dest="auth_token", default=None, help="Bearer token for the source API.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    return parser


def options_from_args(args: argparse.Namespace) -> CrawlOptions:
    return CrawlOptions(
        source=args.source,
        start_page=args.start_page,
        end_page=args.end_page,
        manga_id=args.manga_id,
        sync=args.sync,
        use_original_images=args.use_original_images,
        concurrency=args.concurrency,
        auth_token=args.auth_token,
    )


def _print_banner(options: CrawlOptions) -> None:
    print("Catalog Crawler")
    print("=================")
    print(f"Source: {options.source}")
    if options.manga_id:
        print(f"Title id: {options.manga_id}")
    elif not options.sync:
        print(f"Pages: {options.start_page}{f' to {options.end_page}' if options.end_page else ''}")
    print(f"Original images: {'yes' if options.use_original_images else 'no'}")
    print(f"Concurrency: {options.concurrency or config.DB_MAX_CONCURRENT_OPERATIONS}")
    if options.auth_token:
        token_origin = "provided"
    elif config.MANGARAW_API_TOKEN:
        token_origin = "from environment"
    else:
        token_origin = "none"
    print(f"Auth token: {token_origin}")
    print(f"Sync mode: {'yes' if options.sync else 'no'}")
    print("=================")


def _print_result(result: RunResult) -> None:
    if result.mode == MODE_CRAWL and result.crawl:
        crawl = result.crawl
        print(
            f"[crawl] pages={crawl.pages_crawled} titles={crawl.titles_processed} "
            f"failed={crawl.titles_failed} chapters={crawl.chapters_seen}"
        )
    elif result.mode == MODE_CRAWL_TITLE or result.fell_back_to_crawl:
        print(f"[crawl] title stored with id={result.title_id}")
    elif result.mode == MODE_SYNC_TITLE and result.sync_report:
        report = result.sync_report
        print(f"[sync] new={report.new} updated={report.updated} deleted={report.deleted}")
    elif result.mode == MODE_SYNC_ALL and result.full_sync:
        summary = result.full_sync
        print("\n=== Sync Summary ===")
        print(f"  titles synced: {summary.succeeded}/{summary.total_titles}")
        print(f"  titles failed: {summary.failed}")
        if summary.skipped:
            print(f"  titles skipped: {summary.skipped}")
        print(f"  chapters new: {summary.report.new}")
        print(f"  chapters updated: {summary.report.updated}")
        print(f"  chapters deleted: {summary.report.deleted}")


async def _async_main(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    _print_banner(options)

    start_time = time.time()
    result = await run_crawler(options)
    _print_result(result)
    print(f"Crawler finished successfully in {time.time() - start_time:.2f}s.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _make_arg_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)
    try:
        return asyncio.run(_async_main(args))
    except Exception as e:
        print(f"FATAL: crawler failed: {e}", file=sys.stderr)
        LOGGER.debug("Unhandled crawler error:\n%s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
