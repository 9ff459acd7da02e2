from decimal import Decimal

import pytest

from crawlers.models import parse_chapter_number
from utils.text import clean_text, slugify


def test_clean_text_collapses_whitespace():
    assert clean_text("  Blue \n  Lock ") == "Blue Lock"
    assert clean_text(None) == ""
    assert clean_text(12) == ""


def test_slugify():
    assert slugify("Slice of Life") == "slice-of-life"
    assert slugify("  Sci-Fi & Fantasy!  ") == "sci-fi-fantasy"
    assert slugify("") == ""


@pytest.mark.parametrize("raw, expected", [(1, Decimal(1)), ("10.5", Decimal("10.5")), (2.25, Decimal("2.25"))])
def test_parse_chapter_number(raw, expected):
    assert parse_chapter_number(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", True, "NaN", "Infinity"])
def test_parse_chapter_number_rejects_invalid_values(raw):
    with pytest.raises(ValueError):
        parse_chapter_number(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [("10.5555", Decimal("10.556")), (10.5554, Decimal("10.555")), ("-0.0005", Decimal("-0.001"))],
)
def test_parse_chapter_number_rounds_to_stored_scale(raw, expected):
    number = parse_chapter_number(raw)

    assert number == expected
    assert number.as_tuple().exponent == -3


@pytest.mark.parametrize("raw", ["1000000000", "1e30"])
def test_parse_chapter_number_rejects_values_the_store_cannot_hold(raw):
    with pytest.raises(ValueError):
        parse_chapter_number(raw)
