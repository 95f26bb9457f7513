"""Small helpers for timezone-aware timestamps and minute arithmetic."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

MINUTE = timedelta(minutes=1)


def utcnow() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime.

    Naive datetimes are taken to already be in UTC so that records coming from
    the institute API without an offset still compare against aware clocks.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_z(dt: datetime) -> str:
    """Return an RFC3339 timestamp in UTC with a Z suffix."""
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def ceil_minutes(delta: timedelta) -> int:
    return math.ceil(delta / MINUTE)


def floor_minutes(delta: timedelta) -> int:
    return math.floor(delta / MINUTE)
