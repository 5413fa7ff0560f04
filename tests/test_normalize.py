"""Tests for normalize.py"""

import math
from datetime import datetime, timezone

import pytest

from profit_watch.normalize import (
    ParseError,
    ensure_aware,
    normalize_marketplace,
    parse_timestamp,
    to_bool,
    to_number,
    to_optional_str,
)


def test_to_number_plain_values():
    assert to_number(12) == 12.0
    assert to_number("149.90") == 149.9
    assert to_number(" 7 ") == 7.0


def test_to_number_decimal_comma():
    assert to_number("1.249,90") == 1249.9
    assert to_number("159,90") == 159.9


def test_to_number_missing_and_garbage_become_zero():
    assert to_number(None) == 0.0
    assert to_number("") == 0.0
    assert to_number(float("nan")) == 0.0
    assert to_number("abc") == 0.0


def test_to_number_rejects_infinity():
    assert to_number(math.inf) == 0.0
    assert to_number("-inf") == 0.0


def test_to_number_keeps_negatives():
    assert to_number("-5.5") == -5.5


def test_to_bool():
    assert to_bool("true") is True
    assert to_bool("Evet", default=True) is True
    assert to_bool("0") is False
    assert to_bool(None, default=True) is True
    assert to_bool(1) is True


def test_to_optional_str():
    assert to_optional_str("  Mutfak ") == "Mutfak"
    assert to_optional_str("   ") is None
    assert to_optional_str(float("nan")) is None


def test_normalize_marketplace():
    assert normalize_marketplace(" Trendyol") == "trendyol"
    assert normalize_marketplace(None) == ""


def test_parse_timestamp_with_offset():
    ts = parse_timestamp("2026-03-01T10:00:00+03:00")
    assert ts == datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc)


def test_parse_timestamp_naive_is_utc():
    ts = parse_timestamp("2026-03-01T10:00:00")
    assert ts.tzinfo is not None
    assert ts == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_parse_timestamp_errors():
    with pytest.raises(ParseError):
        parse_timestamp(None)
    with pytest.raises(ParseError):
        parse_timestamp("not a date")


def test_ensure_aware():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_aware(naive).tzinfo is timezone.utc
    assert ensure_aware(None).tzinfo is not None


def test_to_number_thousands_comma():
    assert to_number("1,249.90") == 1249.9
    assert to_number("1,249,000.00") == 1249000.0
    assert to_number("-2,000.5") == -2000.5


def test_to_number_unparseable_logs_warning(caplog):
    with caplog.at_level("WARNING", logger="profit_watch.normalize"):
        assert to_number("12 TL") == 0.0
    assert "Unparseable" in caplog.text
