"""Utility functions for the loan tracker.

This module provides helpers for parsing user input into Python data types and
for handling dates, including adding months, counting whole months between
two dates and normalizing ISO date strings to ``datetime.date`` instances.
Money helpers round ``Decimal`` values to cents the same way everywhere in
the engine.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
import calendar
from typing import Any

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENTS = Decimal("0.01")


def parse_date(value: Any) -> date:
    """Parse an ISO date (``YYYY-MM-DD``) into a ``date`` object.

    ``date`` and ``datetime`` instances are accepted as-is (datetimes are
    truncated to their date). A bare ``YYYY-MM`` string is normalized to the
    first day of that month.

    Raises
    ------
    ValueError
        If the value is not a valid date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    text = value.strip()
    try:
        parts = text.split("-")
        if len(parts) == 2:
            return date(int(parts[0]), int(parts[1]), 1)
        return date.fromisoformat(text[:10])
    except Exception as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29). Negative offsets move
    backwards.
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(later: date, earlier: date) -> int:
    """Return the number of full months from ``earlier`` to ``later``.

    A partial month does not count, so Jan 31 -> Feb 28 is zero months.
    The result is negative when ``later`` precedes ``earlier``.
    """
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if months > 0 and later.day < earlier.day:
        months -= 1
    elif months < 0 and later.day > earlier.day:
        months += 1
    return months


def decimal_from_str(value: Any) -> Decimal:
    """Convert a numeric string (or number) into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. Floats are converted through ``str`` so that ``0.1`` stays
    ``Decimal("0.1")``. It raises ``ValueError`` if conversion fails.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def to_cents(value: Decimal) -> Decimal:
    """Round a money amount half-up to two decimal places."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def term_in_months(duration: int, unit: str = "months") -> int:
    """Convert a loan duration to months.

    ``unit`` is either ``"months"`` or ``"years"``.
    """
    unit = unit.lower()
    if unit == "years":
        return duration * 12
    if unit == "months":
        return duration
    raise ValueError(f"Duration unit must be 'months' or 'years'; got {unit}")
