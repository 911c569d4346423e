"""Shared value parsing for aggregator payloads.

The Plaid SDK hands back ``datetime.date`` objects and floats, while webhook
bodies and recorded fixtures carry ISO strings.  Everything that turns a raw
payload value into a typed one lives here.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation


def parse_date(value) -> date | None:
    """Parse an ISO date string (or date/datetime object) to a ``date``.

    Args:
        value: A ``"YYYY-MM-DD"`` string, an ISO datetime string, a date,
            a datetime, or None.

    Returns:
        The calendar date, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value_str = str(value)
    try:
        return date.fromisoformat(value_str[:10])
    except (ValueError, TypeError):
        return None


def to_decimal(value) -> Decimal | None:
    """Convert a number or numeric string to Decimal, returning None on failure.

    Floats go through ``str()`` so ``42.5`` becomes ``Decimal("42.5")``
    rather than its binary expansion.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def to_float(value) -> float | None:
    """Convert a number or numeric string to float, returning None on failure."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def optional_str(value) -> str | None:
    """Return ``str(value)``, or None for None and empty strings."""
    if value is None:
        return None
    value_str = str(value)
    return value_str or None
