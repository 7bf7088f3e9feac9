"""
questboard.engine.clock — Timezone-aware time helpers
======================================================

SQLite (tests) hands back naive datetimes even for ``timezone=True``
columns, so everything that compares instants goes through
:func:`ensure_utc` first.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current UTC time with tzinfo attached."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def event_start(scheduled_date: date, start_time: time, tz_name: str = "UTC") -> datetime:
    """Combine an instance's wall-clock date and time into an aware UTC instant."""
    tz = UTC if tz_name == "UTC" else ZoneInfo(tz_name)
    local = datetime.combine(scheduled_date, start_time, tzinfo=tz)
    return local.astimezone(UTC)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600
