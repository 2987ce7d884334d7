"""Shared parsing utilities for aggregator payloads.

Centralises the date and amount parsing logic the GoCardless mappers need:
ISO 8601 strings, date-only strings, string-encoded decimals, timezone
normalisation.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles the formats GoCardless produces:
    - Microsecond timestamps with Z suffix ("2024-01-15T10:30:00.123456Z")
    - Standard ISO with colon offset ("2024-06-28T18:42:46+00:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return date_to_datetime(value)

    value_str = str(value).strip()
    if not value_str:
        return None

    # Handle Z suffix: "2024-01-15T10:30:00Z" -> "2024-01-15T10:30:00+00:00"
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(value_str))
    except (ValueError, TypeError):
        pass

    parsed = parse_iso_date(value_str)
    return date_to_datetime(parsed) if parsed else None


def parse_iso_date(value) -> date | None:
    """Parse a ``YYYY-MM-DD`` string (or date/datetime) to a date.

    Args:
        value: A string, date, datetime, or None.

    Returns:
        The date, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except (ValueError, TypeError):
        return None


def parse_decimal(value) -> Decimal | None:
    """Parse a string-encoded amount (GoCardless sends ``"-12.50"``) to Decimal.

    Returns:
        The Decimal, or None for missing/unparseable values.
    """
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    If the datetime is naive, attach UTC; otherwise convert to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def date_to_datetime(d: date) -> datetime:
    """Convert a date to a midnight-UTC datetime."""
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
