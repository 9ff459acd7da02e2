"""Text helpers shared by the source adapters."""

import re

_NON_WORD_RE = re.compile(r"[^\w\s-]+", re.UNICODE)
_SEPARATOR_RE = re.compile(r"[\s_-]+", re.UNICODE)


def clean_text(value):
    """Collapse whitespace; anything that is not a string becomes ``""``."""
    if not isinstance(value, str):
        return ""
    return " ".join(value.split()).strip()


def slugify(value):
    """Derive a URL slug from a display name (``"Slice of Life"`` -> ``"slice-of-life"``)."""
    text = clean_text(value).lower()
    if not text:
        return ""
    text = _NON_WORD_RE.sub("", text)
    text = _SEPARATOR_RE.sub("-", text)
    return text.strip("-")
