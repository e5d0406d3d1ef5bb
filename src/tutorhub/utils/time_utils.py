"""Timestamp helpers.

All timestamps are stored as UTC ISO-8601 strings with microseconds, so
lexical order in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from tutorhub.core.errors import ValidationError


def utc_now() -> str:
    """Current time as a stored timestamp string."""
    return to_iso(datetime.now(timezone.utc))


def to_iso(value: datetime) -> str:
    """Normalize a datetime to the stored format (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_datetime(raw: Any, name: str = "date") -> str | None:
    """Parse a client-supplied date or datetime into the stored format.

    Accepts datetime/date objects and ISO strings ("2026-01-05",
    "2026-01-05T10:00:00Z"). None stays None.

    Raises:
        ValidationError: If the value is not a recognizable date, or falls
            outside the representable range once converted to UTC
    """
    if raw is None:
        return None
    try:
        if isinstance(raw, datetime):
            return to_iso(raw)
        if isinstance(raw, date):
            return to_iso(datetime(raw.year, raw.month, raw.day))
        return to_iso(datetime.fromisoformat(str(raw).strip()))
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid {name} '{raw}'") from None


def days_ago(days: int) -> str:
    """Stored timestamp for `days` days before now."""
    return to_iso(datetime.now(timezone.utc) - timedelta(days=days))


def start_of_day(offset_days: int = 0) -> str:
    """Stored timestamp for UTC midnight today, shifted by `offset_days`."""
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return to_iso(today + timedelta(days=offset_days))
