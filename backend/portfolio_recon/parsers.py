"""Tolerant numeric and date parsing for brokerage exports."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Iterator

import pandas as pd

_EMPTY_TOKENS = {"", "--", "N/A", "n/a", "NA"}
_CURRENCY_STRIP_RE = re.compile(r"[$,%()\s]")
_US_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")

# Filename tokens in priority order: ISO, underscore separated, US style.
_FILENAME_DATE_PATTERNS = (
    (re.compile(r"(\d{4})-(\d{2})-(\d{2})"), ("y", "m", "d")),
    (re.compile(r"(\d{4})_(\d{2})_(\d{2})"), ("y", "m", "d")),
    (re.compile(r"(\d{2})-(\d{2})-(\d{4})"), ("m", "d", "y")),
)


class DateParseError(ValueError):
    """Raised when a date token cannot be recovered from a value."""


def parse_currency(value: Any) -> float:
    """Parse ``"$1,234.56"``, ``"(500.00)"`` or ``"--"`` style values.

    Parentheses mean a negative amount. Placeholders and anything that is not
    numeric after cleaning parse as ``0.0``; the function never raises.
    """

    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    text = str(value).strip()
    if text in _EMPTY_TOKENS:
        return 0.0
    negative = "(" in text and ")" in text
    cleaned = _CURRENCY_STRIP_RE.sub("", text)
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -abs(number) if negative else number


def parse_quantity(value: Any) -> float | None:
    """Parse a share quantity, returning ``None`` for blank cells."""

    if value is None:
        return None
    text = str(value).strip()
    if text in _EMPTY_TOKENS:
        return None
    number = parse_currency(text)
    return number or None


def _build_date(year: str, month: str, day: str, source: str) -> date:
    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise DateParseError(f"Invalid calendar date in {source!r}") from exc


def parse_statement_date(value: str) -> date:
    """Return the first ``MM/DD/YYYY`` date in ``value``.

    ``"07/16/2025 as of 07/15/2025"`` parses as 2025-07-16.
    """

    match = _US_DATE_RE.search(value or "")
    if not match:
        raise DateParseError(f"No MM/DD/YYYY date found in {value!r}")
    month, day, year = match.groups()
    return _build_date(year, month, day, value)


def parse_filename_date(filename: str) -> date:
    """Recover a statement period-end date embedded in a file name."""

    for pattern, order in _FILENAME_DATE_PATTERNS:
        match = pattern.search(filename)
        if not match:
            continue
        parts = dict(zip(order, match.groups()))
        return _build_date(parts["y"], parts["m"], parts["d"], filename)
    raise DateParseError(f"Could not extract a date from filename {filename!r}")


def month_key(d: date) -> str:
    return d.strftime("%Y-%m")


def month_end(d: date) -> date:
    return pd.Period(pd.Timestamp(d), freq="M").end_time.date()


def iter_months(start: date, end: date) -> Iterator[date]:
    """Yield month-end dates from ``start``'s month to ``end``'s month inclusive."""

    if end < start:
        return
    for period in pd.period_range(start=pd.Timestamp(start), end=pd.Timestamp(end), freq="M"):
        yield month_end(period.start_time.date())


__all__ = [
    "DateParseError",
    "iter_months",
    "month_end",
    "month_key",
    "parse_currency",
    "parse_filename_date",
    "parse_quantity",
    "parse_statement_date",
]
