"""Repository for chapters and their pages."""

import psycopg2.extras

from database import get_cursor


def find_chapter_with_pages(conn, title_id, chapter_number):
    """Return the chapter row with a ``pages`` list ordered by page number, or None."""
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, title_id, chapter_number, title, slug, release_date, view_count
            FROM chapters
            WHERE title_id = %s AND chapter_number = %s
            """,
            (title_id, chapter_number),
        )
        chapter = cursor.fetchone()
        if chapter is None:
            return None
        cursor.execute(
            """
            SELECT page_number, image_url
            FROM pages
            WHERE chapter_id = %s
            ORDER BY page_number ASC
            """,
            (chapter["id"],),
        )
        chapter = dict(chapter)
        chapter["pages"] = [dict(row) for row in cursor.fetchall()]
        return chapter
    finally:
        cursor.close()


def list_chapters_with_pages(conn, title_id):
    """All chapters of a title keyed by chapter number, each with its ordered pages."""
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, title_id, chapter_number, title, slug
            FROM chapters
            WHERE title_id = %s
            ORDER BY chapter_number ASC
            """,
            (title_id,),
        )
        chapters = {}
        by_id = {}
        for row in cursor.fetchall():
            chapter = dict(row)
            chapter["pages"] = []
            chapters[chapter["chapter_number"]] = chapter
            by_id[chapter["id"]] = chapter
        if not by_id:
            return chapters

        cursor.execute(
            """
            SELECT chapter_id, page_number, image_url
            FROM pages
            WHERE chapter_id = ANY(%s)
            ORDER BY chapter_id ASC, page_number ASC
            """,
            (list(by_id.keys()),),
        )
        for row in cursor.fetchall():
            by_id[row["chapter_id"]]["pages"].append(
                {"page_number": row["page_number"], "image_url": row["image_url"]}
            )
        return chapters
    finally:
        cursor.close()


def upsert_chapter(conn, title_id, chapter):
    """Insert or update the (title_id, chapter_number) row; returns ``(id, inserted)``."""
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            INSERT INTO chapters (
                title_id,
                chapter_number,
                title,
                slug,
                release_date,
                view_count,
                created_at,
                updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()), NOW())
            ON CONFLICT (title_id, chapter_number)
            DO UPDATE SET
                title = EXCLUDED.title,
                slug = EXCLUDED.slug,
                release_date = EXCLUDED.release_date,
                view_count = EXCLUDED.view_count,
                updated_at = NOW()
            RETURNING id, (xmax = 0) AS inserted
            """,
            (
                title_id,
                chapter.number,
                chapter.title,
                chapter.slug,
                chapter.released_at,
                chapter.views,
                chapter.released_at,
            ),
        )
        row = cursor.fetchone()
        return row["id"], bool(row["inserted"])
    finally:
        cursor.close()


def replace_pages(conn, chapter_id, page_urls):
    """Replace the chapter's pages as one unit, numbered 1..N in list order."""
    cursor = get_cursor(conn)
    try:
        cursor.execute("DELETE FROM pages WHERE chapter_id = %s", (chapter_id,))
        rows = [(chapter_id, index, url.strip()) for index, url in enumerate(page_urls, start=1)]
        if rows:
            psycopg2.extras.execute_values(
                cursor,
                "INSERT INTO pages (chapter_id, page_number, image_url) VALUES %s",
                rows,
                page_size=len(rows),
            )
        return len(rows)
    finally:
        cursor.close()


def delete_chapter(conn, chapter_id):
    cursor = get_cursor(conn)
    try:
        cursor.execute("DELETE FROM pages WHERE chapter_id = %s", (chapter_id,))
        cursor.execute("DELETE FROM chapters WHERE id = %s", (chapter_id,))
        return cursor.rowcount
    finally:
        cursor.close()
