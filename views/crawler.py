# views/crawler.py

import asyncio
import logging
import threading

from flask import Blueprint, current_app, jsonify, request

import config
from crawlers.registry import list_sources
from services.crawl_runner import CrawlOptions, describe, run_crawler
from services.errors import RunInProgress

crawler_bp = Blueprint('crawler', __name__)

LOGGER = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str):
    return jsonify({'success': False, 'error': {'code': code, 'message': message}}), status_code


def _optional_int(value, field_name):
    if value is None or value == '':
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field_name} must be an integer')
    if parsed <= 0:
        raise ValueError(f'{field_name} must be positive')
    return parsed


# Admin-triggered runs share one process; only one may be active at a time.
_run_lock = threading.Lock()


def _run_in_thread(options):
    try:
        asyncio.run(run_crawler(options))
    except Exception:
        LOGGER.error('Background crawler run failed (%s)', describe(options), exc_info=True)
    finally:
        _run_lock.release()


def launch_crawler(options):
    """Start a crawler run on a daemon thread with its own event loop."""
    if not _run_lock.acquire(blocking=False):
        raise RunInProgress('A crawler run is already in progress')
    try:
        thread = threading.Thread(target=_run_in_thread, args=(options,), name='crawler-run', daemon=True)
        thread.start()
    except Exception:
        _run_lock.release()
        raise
    return thread


@crawler_bp.route('/api/admin/crawler', methods=['GET'])
def get_crawler_sources():
    try:
        return jsonify({'success': True, 'sources': list_sources()})
    except Exception:
        current_app.logger.exception('Unhandled error in get_crawler_sources')
        return _error_response(500, 'INTERNAL_ERROR', 'Failed to get sources')


@crawler_bp.route('/api/admin/crawler', methods=['POST'])
def start_crawler():
    data = request.get_json(silent=True) or {}

    try:
        options = CrawlOptions(
            source=str(data.get('source') or config.DEFAULT_SOURCE),
            start_page=_optional_int(data.get('startPage'), 'startPage') or 1,
            end_page=_optional_int(data.get('endPage'), 'endPage'),
            manga_id=str(data['mangaId']) if data.get('mangaId') else None,
            sync=bool(data.get('sync', False)),
            use_original_images=bool(data.get('useOriginalImages', False)),
            concurrency=_optional_int(data.get('concurrency'), 'concurrency'),
            auth_token=data.get('authToken') or None,
        )
    except ValueError as e:
        return _error_response(400, 'INVALID_REQUEST', str(e))

    supported = list_sources()
    if options.source.lower() not in supported:
        return _error_response(
            400,
            'UNKNOWN_SOURCE',
            f'Source "{options.source}" not supported. Available sources: {", ".join(supported)}',
        )

    try:
        launch_crawler(options)
    except RunInProgress as e:
        return _error_response(409, 'CRAWLER_BUSY', str(e))
    except Exception:
        current_app.logger.exception('Failed to start crawler')
        return _error_response(500, 'INTERNAL_ERROR', 'Failed to start crawler')

    return jsonify({'success': True, 'message': f'Started crawler from {describe(options)}'})
