"""Provider-agnostic catalog records produced by the source adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Tuple


class TitleStatus(str, Enum):
    DRAFT = "draft"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    HIATUS = "hiatus"
    UNKNOWN = "unknown"


# Matches chapters.chapter_number NUMERIC(12, 3).
CHAPTER_NUMBER_SCALE = Decimal("0.001")
CHAPTER_NUMBER_LIMIT = Decimal(10) ** 9


def parse_chapter_number(value) -> Decimal:
    """Chapter numbers are decimals: providers emit things like ``10.5``.

    The value is rounded half-up to three places, the way the store rounds
    it, so numbers read back from the store compare equal to fresh ones.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid chapter number: {value!r}")
    try:
        number = Decimal(str(value).strip())
        if not number.is_finite():
            raise ValueError(f"Invalid chapter number: {value!r}")
        number = number.quantize(CHAPTER_NUMBER_SCALE, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid chapter number: {value!r}") from exc
    if abs(number) >= CHAPTER_NUMBER_LIMIT:
        raise ValueError(f"Chapter number out of range: {value!r}")
    return number


@dataclass(frozen=True)
class CanonicalGenre:
    source_id: str
    name: str
    slug: str


@dataclass(frozen=True)
class CanonicalTitle:
    source_id: str
    source_name: str
    title: str
    slug: str
    cover_url: Optional[str] = None
    description: Optional[str] = None
    status: TitleStatus = TitleStatus.UNKNOWN
    views: int = 0
    alternative_titles: Dict[str, str] = field(default_factory=dict)
    genres: Tuple[CanonicalGenre, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CanonicalChapter:
    source_id: str
    title_source_id: str
    number: Decimal
    slug: str
    title: Optional[str] = None
    pages: Tuple[str, ...] = ()
    views: int = 0
    released_at: Optional[datetime] = None


@dataclass
class CatalogPage:
    titles: List[CanonicalTitle]
    has_next: bool
    next_page: Optional[int] = None
    total: Optional[int] = None


@dataclass
class ChapterPage:
    chapters: List[CanonicalChapter]
    has_next: bool
    next_page: Optional[int] = None
    total: Optional[int] = None
