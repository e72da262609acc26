"""Date normalization — loosely formatted upstream dates to ISO-8601 UTC.

Accepted inputs include ISO-8601 with or without milliseconds and offsets,
SQL-style ``YYYY-MM-DD HH:MM:SS`` timestamps and anything else
``dateutil`` can parse. Values without an offset are read in the caller's
timezone (UTC by default) before conversion.
"""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from reviews.errors import ValidationFailure
from reviews.review.review import format_utc


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationFailure({"timezone": [f"Unknown timezone: {name}"]}) from exc


def parse_date(value: str, zone: tzinfo = UTC) -> datetime:
    """Parse a date string into an aware datetime.

    Raises ``ValueError`` when no supported format matches.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid date format: {value!r}")

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid date format: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed


def normalize_date(value: str, zone: tzinfo = UTC, field: str = "date") -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:mm:ss.sssZ`` or raise ValidationFailure."""
    try:
        return format_utc(parse_date(value, zone))
    except (ValueError, OverflowError) as exc:
        # OverflowError: parsed, but out of range once shifted to UTC
        raise ValidationFailure({field: [f"Failed to normalize date: {value!r}"]}) from exc
