"""Coercion of raw store rows into engine-safe values."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

import pandas as pd
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_DECIMAL_COMMA = re.compile(r"^\s*-?\d+(?:\.\d{3})*,\d+\s*$")
_THOUSANDS_COMMA = re.compile(r"^\s*-?\d{1,3}(?:,\d{3})+(?:\.\d+)?\s*$")
_TRUE = {"true", "1", "yes", "y", "t", "on"}
_FALSE = {"false", "0", "no", "n", "f", "off"}


class ParseError(Exception):
    """Raised when a value that must be present cannot be parsed."""


def _is_missing(raw: Any) -> bool:
    if raw is None:
        return True
    try:
        return bool(pd.isna(raw))
    except (TypeError, ValueError):
        return False


def to_number(raw: Any) -> float:
    """
    Coerce a raw numeric field to a finite float.

    Missing, NaN, infinite and unparseable values all become ``0.0`` so that a
    bad cell can never block a profit calculation:

    - ``None`` / ``""`` / ``NaN``   → ``0.0``
    - ``"149.90"``                  → ``149.9``
    - ``"1.249,90"`` (decimal comma) → ``1249.9``
    - ``"1,249.90"`` (thousands comma) → ``1249.9``
    - ``"abc"``                     → ``0.0``
    """
    if isinstance(raw, bool):
        return float(raw)
    if _is_missing(raw):
        return 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        s = str(raw).strip()
        if not s:
            return 0.0
        if _DECIMAL_COMMA.match(s):
            s = s.replace(".", "").replace(",", ".")
        elif _THOUSANDS_COMMA.match(s):
            s = s.replace(",", "")
        try:
            value = float(s)
        except ValueError:
            logger.warning("Unparseable numeric value %r coerced to 0", raw)
            return 0.0
    return value if math.isfinite(value) else 0.0


def to_bool(raw: Any, default: bool = False) -> bool:
    """Interpret common truthy/falsy spellings; anything else returns *default*."""
    if _is_missing(raw):
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    s = str(raw).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return default


def to_optional_str(raw: Any) -> str | None:
    """Strip a text field; empty / NaN becomes ``None``."""
    if _is_missing(raw):
        return None
    s = str(raw).strip()
    return s if s else None


def normalize_marketplace(raw: Any) -> str:
    """Lower-cased marketplace key, e.g. ``" Trendyol"`` → ``"trendyol"``."""
    return (to_optional_str(raw) or "").lower()


def parse_timestamp(raw: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp (or pass a datetime through) as an aware datetime.

    Naive values are interpreted as UTC.

    Raises:
        ParseError: for missing or unparseable input.
    """
    if isinstance(raw, pd.Timestamp):
        raw = raw.to_pydatetime()
    if isinstance(raw, datetime):
        value = raw
    else:
        s = to_optional_str(raw)
        if s is None:
            raise ParseError("Timestamp is missing")
        try:
            value = date_parser.isoparse(s)
        except (ValueError, OverflowError) as exc:
            raise ParseError(f"Cannot parse timestamp {s!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_aware(now: datetime | None) -> datetime:
    """``None`` becomes the current UTC time; naive datetimes are taken as UTC."""
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now
