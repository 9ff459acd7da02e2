# config.py
import json
import os

# --- Database ---
DATABASE_URL = os.getenv('DATABASE_URL')

# Persistence calls allowed in flight at once (the store has a hard connection ceiling).
DB_MAX_CONCURRENT_OPERATIONS = int(os.getenv('DB_MAX_CONCURRENT_OPERATIONS', 3))
TITLE_TRANSACTION_TIMEOUT_MS = int(os.getenv('TITLE_TRANSACTION_TIMEOUT_MS', 30000))

# --- Crawler ---
CRAWLER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36',
    'Accept': 'application/json',
    'Content-Type': 'application/json',
}

# --- HTTP Client Defaults ---
CRAWLER_HTTP_TOTAL_TIMEOUT_SECONDS = int(os.getenv('CRAWLER_HTTP_TOTAL_TIMEOUT_SECONDS', 60))
CRAWLER_HTTP_CONNECT_TIMEOUT_SECONDS = int(os.getenv('CRAWLER_HTTP_CONNECT_TIMEOUT_SECONDS', 15))
CRAWLER_HTTP_SOCK_READ_TIMEOUT_SECONDS = int(os.getenv('CRAWLER_HTTP_SOCK_READ_TIMEOUT_SECONDS', 45))
CRAWLER_HTTP_CONCURRENCY_LIMIT = int(os.getenv('CRAWLER_HTTP_CONCURRENCY_LIMIT', 10))
SOURCE_HTTP_MAX_ATTEMPTS = max(1, int(os.getenv('SOURCE_HTTP_MAX_ATTEMPTS', 1)))

# --- Reconciliation pacing ---
CHAPTER_BATCH_SIZE = max(1, int(os.getenv('CHAPTER_BATCH_SIZE', 3)))
CHAPTER_BATCH_DELAY_SECONDS = float(os.getenv('CHAPTER_BATCH_DELAY_SECONDS', 0.5))
CRAWL_TITLE_DELAY_SECONDS = float(os.getenv('CRAWL_TITLE_DELAY_SECONDS', 1.0))
CRAWL_PAGE_DELAY_SECONDS = float(os.getenv('CRAWL_PAGE_DELAY_SECONDS', 2.0))
SYNC_TITLE_DELAY_SECONDS = float(os.getenv('SYNC_TITLE_DELAY_SECONDS', 2.0))

# --- Sources ---
DEFAULT_SOURCE = os.getenv('DEFAULT_SOURCE', 'mangaraw')

MANGARAW_BASE_URL = os.getenv('MANGARAW_BASE_URL', 'https://mangaraw.best/api/admin')
MANGARAW_PER_PAGE = int(os.getenv('MANGARAW_PER_PAGE', 50))
MANGARAW_CHAPTERS_PER_PAGE = int(os.getenv('MANGARAW_CHAPTERS_PER_PAGE', 500))
MANGARAW_API_TOKEN = os.getenv('MANGARAW_API_TOKEN', '')


# --- Web ---
def _parse_origins(raw):
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    if raw.startswith('['):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            origins = [str(item).strip() for item in parsed if str(item).strip()]
            return origins or None
    origins = [item.strip() for item in raw.split(',') if item.strip()]
    return origins or None


CORS_ALLOW_ORIGINS = _parse_origins(os.getenv('CORS_ALLOW_ORIGINS'))
CORS_SUPPORTS_CREDENTIALS = os.getenv('CORS_SUPPORTS_CREDENTIALS', '0') == '1'
