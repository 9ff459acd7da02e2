"""Repository for titles, genres and their links."""

import psycopg2.extras

from database import get_cursor


def find_title_by_slug(conn, slug):
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, source_name, source_id, title, slug, cover_image_url, updated_at
            FROM titles
            WHERE slug = %s
            """,
            (slug,),
        )
        return cursor.fetchone()
    finally:
        cursor.close()


def find_title(conn, identifier):
    """Look a title up by slug, or by numeric id when the identifier is all digits."""
    identifier = str(identifier).strip()
    cursor = get_cursor(conn)
    try:
        if identifier.isdigit():
            cursor.execute(
                """
                SELECT id, source_name, source_id, title, slug, cover_image_url, updated_at
                FROM titles
                WHERE slug = %s OR id = %s
                ORDER BY (slug = %s) DESC
                LIMIT 1
                """,
                (identifier, int(identifier), identifier),
            )
        else:
            cursor.execute(
                """
                SELECT id, source_name, source_id, title, slug, cover_image_url, updated_at
                FROM titles
                WHERE slug = %s
                """,
                (identifier,),
            )
        return cursor.fetchone()
    finally:
        cursor.close()


def list_titles_oldest_first(conn):
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, source_name, source_id, title, slug, updated_at
            FROM titles
            ORDER BY updated_at ASC, id ASC
            """
        )
        return cursor.fetchall()
    finally:
        cursor.close()


def upsert_title(conn, title, cover_image_url):
    """Insert or update the title row keyed by slug; returns the internal id."""
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            INSERT INTO titles (
                source_name,
                source_id,
                title,
                slug,
                alternative_titles,
                description,
                cover_image_url,
                status,
                total_views,
                created_at,
                updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()), NOW())
            ON CONFLICT (slug)
            DO UPDATE SET
                source_name = EXCLUDED.source_name,
                source_id = EXCLUDED.source_id,
                title = EXCLUDED.title,
                alternative_titles = EXCLUDED.alternative_titles,
                description = EXCLUDED.description,
                cover_image_url = EXCLUDED.cover_image_url,
                status = EXCLUDED.status,
                total_views = EXCLUDED.total_views,
                updated_at = NOW()
            RETURNING id
            """,
            (
                title.source_name,
                title.source_id,
                title.title,
                title.slug,
                psycopg2.extras.Json(dict(title.alternative_titles)),
                title.description,
                cover_image_url,
                title.status.value,
                title.views,
                title.created_at,
            ),
        )
        return cursor.fetchone()["id"]
    finally:
        cursor.close()


def replace_title_genres(conn, title_id, genres):
    """Drop every genre link of the title, then upsert each genre by slug and re-link it."""
    cursor = get_cursor(conn)
    try:
        cursor.execute("DELETE FROM title_genres WHERE title_id = %s", (title_id,))
        for genre in genres:
            cursor.execute(
                """
                INSERT INTO genres (name, slug)
                VALUES (%s, %s)
                ON CONFLICT (slug) DO UPDATE SET name = EXCLUDED.name
                RETURNING id
                """,
                (genre.name, genre.slug),
            )
            genre_id = cursor.fetchone()["id"]
            cursor.execute(
                """
                INSERT INTO title_genres (title_id, genre_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """,
                (title_id, genre_id),
            )
    finally:
        cursor.close()


def touch_content_updated(conn, title_id):
    """Refresh the title's last content update timestamp (chapters changed)."""
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            "UPDATE titles SET last_chapter_uploaded_at = NOW() WHERE id = %s",
            (title_id,),
        )
    finally:
        cursor.close()


def mark_synced(conn, title_id):
    cursor = get_cursor(conn)
    try:
        cursor.execute("UPDATE titles SET updated_at = NOW() WHERE id = %s", (title_id,))
    finally:
        cursor.close()
