# database.py

import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
import psycopg2.pool

import config
from services.errors import ConfigurationError, ConstraintViolation, PersistenceError

LOGGER = logging.getLogger(__name__)

LOCK_TIMEOUT_PGCODE = '55P03'
QUERY_CANCELED_PGCODE = '57014'


def _require_dsn(dsn=None):
    dsn = dsn or config.DATABASE_URL
    if not dsn:
        raise ConfigurationError('DATABASE_URL is not configured.')
    return dsn


def create_standalone_connection(dsn=None):
    """Flask 컨텍스트 밖(크롤러, 스크립트)에서 쓰는 단독 DB 연결을 만듭니다."""
    return psycopg2.connect(_require_dsn(dsn))


def get_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


@contextmanager
def managed_cursor(conn):
    cursor = get_cursor(conn)
    try:
        yield cursor
    finally:
        cursor.close()


def is_lock_timeout_error(exc):
    if getattr(exc, 'pgcode', None) == LOCK_TIMEOUT_PGCODE:
        return True
    return 'lock timeout' in str(exc).lower()


def is_statement_timeout_error(exc):
    if getattr(exc, 'pgcode', None) == QUERY_CANCELED_PGCODE:
        return True
    return 'statement timeout' in str(exc).lower()


def _translate_error(exc):
    """Map a psycopg2 error onto the ingestion error kinds."""
    if isinstance(exc, psycopg2.IntegrityError):
        diag = getattr(exc, 'diag', None)
        constraint = getattr(diag, 'constraint_name', None)
        detail = getattr(diag, 'message_detail', None)
        LOGGER.error(
            'Constraint violation pgcode=%s constraint=%s detail=%s: %s',
            exc.pgcode, constraint, detail, exc,
        )
        return ConstraintViolation(
            str(exc).strip(), pgcode=exc.pgcode, constraint=constraint, detail=detail
        )
    if is_statement_timeout_error(exc):
        return PersistenceError(f'Transaction timed out: {str(exc).strip()}')
    if is_lock_timeout_error(exc):
        return PersistenceError(f'Lock wait timed out: {str(exc).strip()}')
    return PersistenceError(str(exc).strip())


class ConnectionPool:
    """Thread-safe pool of store connections.

    Each ``transaction()`` borrows one connection, commits on success and
    rolls back on any error. psycopg2 errors leave this class translated into
    ``PersistenceError``/``ConstraintViolation``.
    """

    def __init__(self, dsn=None, *, maxconn=None, pool=None):
        maxconn = maxconn or config.DB_MAX_CONCURRENT_OPERATIONS
        self._pool = pool or psycopg2.pool.ThreadedConnectionPool(1, maxconn, _require_dsn(dsn))
        self.closed = False

    @contextmanager
    def transaction(self, statement_timeout_ms=None):
        if self.closed:
            raise PersistenceError('Connection pool is closed.')
        conn = self._pool.getconn()
        try:
            try:
                if statement_timeout_ms:
                    with managed_cursor(conn) as cursor:
                        cursor.execute('SET LOCAL statement_timeout = %s', (int(statement_timeout_ms),))
                yield conn
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise _translate_error(exc) from exc
            except Exception:
                conn.rollback()
                raise
        finally:
            self._pool.putconn(conn)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._pool.closeall()
        LOGGER.info('Store connection pool closed.')


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS titles (
        id SERIAL PRIMARY KEY,
        source_name TEXT,
        source_id TEXT,
        title TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        alternative_titles JSONB NOT NULL DEFAULT '{}'::jsonb,
        description TEXT,
        cover_image_url TEXT,
        status TEXT NOT NULL DEFAULT 'unknown',
        total_views BIGINT NOT NULL DEFAULT 0,
        last_chapter_uploaded_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS genres (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS title_genres (
        title_id INTEGER NOT NULL REFERENCES titles(id) ON DELETE CASCADE,
        genre_id INTEGER NOT NULL REFERENCES genres(id) ON DELETE CASCADE,
        PRIMARY KEY (title_id, genre_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        id SERIAL PRIMARY KEY,
        title_id INTEGER NOT NULL REFERENCES titles(id) ON DELETE CASCADE,
        chapter_number NUMERIC(12, 3) NOT NULL,
        title TEXT,
        slug TEXT,
        release_date TIMESTAMPTZ,
        view_count BIGINT NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (title_id, chapter_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pages (
        id SERIAL PRIMARY KEY,
        chapter_id INTEGER NOT NULL REFERENCES chapters(id) ON DELETE CASCADE,
        page_number INTEGER NOT NULL,
        image_url TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (chapter_id, page_number)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_titles_updated_at ON titles (updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_titles_source ON titles (source_name, source_id)",
)


def setup_database(conn):
    """테이블이 없으면 생성합니다. 여러 번 실행해도 안전합니다."""
    with managed_cursor(conn) as cursor:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)
    conn.commit()


def setup_database_standalone():
    conn = create_standalone_connection()
    try:
        setup_database(conn)
    finally:
        conn.close()
