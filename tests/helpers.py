"""Builders for windows and rooms on a fixed test day."""

from datetime import datetime, timezone

from campus_live.models import ResourceTimetable, TemporalWindow


def at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    """An instant on the fixed test day (2025-03-10, UTC)."""
    return datetime(2025, 3, 10, hour, minute, second, tzinfo=timezone.utc)


def window(id: str, start: datetime, end=None, resource_id: str = "room-a") -> TemporalWindow:
    return TemporalWindow(id=id, start=start, end=end, resource_id=resource_id)


def room(resource_id: str, *windows: TemporalWindow, name=None) -> ResourceTimetable:
    return ResourceTimetable(resource_id=resource_id, name=name or resource_id, windows=list(windows))
