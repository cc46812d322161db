"""Timezone-aware clock utilities.

All timestamps in safezone-core MUST be UTC-aware.  This module is the
single source of "now" so tests can monkey-patch it trivially.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(start: datetime | None, end: datetime) -> float:
    """Seconds from *start* to *end*, clamped at zero.

    Returns 0.0 when *start* is unknown.
    """
    if start is None:
        return 0.0
    return max((end - start).total_seconds(), 0.0)
