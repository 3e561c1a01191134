"""Timestamp helpers shared by the tracker, calculators and API client.

Timestamps cross module boundaries as ISO-8601 strings. They are parsed into
timezone-aware UTC datetimes only where ordering or duration arithmetic is
needed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

_SECONDS_PER_HOUR = 3600.0


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a timezone-aware UTC datetime.

    A trailing ``Z`` is accepted. Naive timestamps are assumed to be UTC.
    Empty values return ``None``.
    """
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with a ``Z`` suffix."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


def hours_between(start: Optional[str], end: Optional[str]) -> Optional[float]:
    """Return raw (unrounded) hours from ``start`` to ``end``.

    ``None`` when either endpoint is missing. The result is negative when
    ``end`` precedes ``start``.
    """
    start_at = parse_timestamp(start)
    end_at = parse_timestamp(end)
    if start_at is None or end_at is None:
        return None
    return (end_at - start_at).total_seconds() / _SECONDS_PER_HOUR
