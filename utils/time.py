"""Time utilities for provider timestamps.

Providers emit ISO8601 strings, sometimes with a trailing ``Z`` and sometimes
without any offset at all. Everything written to the store is a timezone-aware
UTC datetime so that ``TIMESTAMPTZ`` columns compare cleanly regardless of the
host timezone.
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO8601 string into an aware UTC datetime.

    * A trailing ``Z`` is accepted as UTC.
    * A naive string is treated as UTC.
    * An offset string is converted to UTC.

    Returns ``None`` if the input is missing or cannot be parsed.
    """

    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)
