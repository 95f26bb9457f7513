"""Room occupancy aggregation.

Combines the classifier output of every window booked on a room into the
room's current state and the forecast until its next change. Nothing here is
cached: a summary is recomputed from the timetables on every clock tick.

Overlapping windows on one room are not resolved. When several windows are
LIVE at once the first one in timetable order is reported as active, and
:func:`find_overlaps` only lists the clashes so an operator can see them.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .classifier import DEFAULT_DURATION, classify, effective_end
from .config import settings
from .models import (
    AvailabilityReport,
    OccupancySnapshot,
    OccupancySummary,
    ResourceTimetable,
    TemporalWindow,
    WindowStatus,
)
from .timeutil import ceil_minutes, ensure_utc

logger = logging.getLogger(__name__)


def aggregate(
    timetable: ResourceTimetable,
    now: datetime,
    warn_threshold_minutes: int = settings.warn_threshold_minutes,
    default_duration: timedelta = DEFAULT_DURATION,
) -> OccupancySnapshot:
    """Compute the occupancy of one room at ``now``."""
    now = ensure_utc(now)
    active: Optional[TemporalWindow] = None
    active_remaining: Optional[int] = None
    upcoming: Optional[TemporalWindow] = None

    for window in timetable.windows:
        result = classify(window, now, default_duration)
        if result.status is WindowStatus.LIVE:
            if active is None:
                active = window
                active_remaining = result.remaining_minutes
            else:
                logger.debug(
                    "Room %s has overlapping live windows %s and %s; keeping %s",
                    timetable.resource_id,
                    active.id,
                    window.id,
                    active.id,
                )
        elif result.status is WindowStatus.UPCOMING:
            # strict < keeps the earlier entry on ties
            if upcoming is None or window.start < upcoming.start:
                upcoming = window

    if active is not None:
        return OccupancySnapshot(
            resource_id=timetable.resource_id,
            is_occupied=True,
            active_window=active,
            next_window=upcoming,
            minutes_to_transition=active_remaining,
            warn=False,
            windows_total=len(timetable.windows),
        )

    minutes: Optional[int] = None
    warn = False
    if upcoming is not None:
        minutes = ceil_minutes(upcoming.start - now)
        warn = minutes <= warn_threshold_minutes
    return OccupancySnapshot(
        resource_id=timetable.resource_id,
        is_occupied=False,
        next_window=upcoming,
        minutes_to_transition=minutes,
        warn=warn,
        windows_total=len(timetable.windows),
    )


def summarize(
    timetables: Iterable[ResourceTimetable],
    now: datetime,
    warn_threshold_minutes: int = settings.warn_threshold_minutes,
    default_duration: timedelta = DEFAULT_DURATION,
) -> OccupancySummary:
    """Aggregate every room and count how many are free and occupied."""
    now = ensure_utc(now)
    rooms = [aggregate(t, now, warn_threshold_minutes, default_duration) for t in timetables]
    occupied = sum(1 for r in rooms if r.is_occupied)
    return OccupancySummary(
        generated_at=now,
        free_count=len(rooms) - occupied,
        occupied_count=occupied,
        total_windows=sum(r.windows_total for r in rooms),
        rooms=rooms,
    )


def _overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def check_availability(
    timetable: ResourceTimetable,
    start: datetime,
    end: Optional[datetime] = None,
    default_duration: timedelta = DEFAULT_DURATION,
) -> AvailabilityReport:
    """Report which booked windows would clash with ``[start, end)``.

    This is informational only; callers decide what to do with a clash.
    """
    start = ensure_utc(start)
    end = ensure_utc(end) if end is not None else start + default_duration
    conflicts = [
        w
        for w in timetable.windows
        if _overlaps(start, end, w.start, effective_end(w, default_duration))
    ]
    if conflicts:
        logger.info(
            "Room %s has %d booking(s) clashing with %s - %s",
            timetable.resource_id,
            len(conflicts),
            start.isoformat(),
            end.isoformat(),
        )
    return AvailabilityReport(
        resource_id=timetable.resource_id,
        requested_start=start,
        requested_end=end,
        available=not conflicts,
        conflicts=conflicts,
        windows_total=len(timetable.windows),
    )


def find_overlaps(
    timetable: ResourceTimetable,
    default_duration: timedelta = DEFAULT_DURATION,
) -> List[Tuple[TemporalWindow, TemporalWindow]]:
    """List pairs of windows on the same room whose intervals intersect."""
    spans = [(w, w.start, effective_end(w, default_duration)) for w in timetable.windows]
    pairs: List[Tuple[TemporalWindow, TemporalWindow]] = []
    for i, (a, a_start, a_end) in enumerate(spans):
        for b, b_start, b_end in spans[i + 1 :]:
            if _overlaps(a_start, a_end, b_start, b_end):
                pairs.append((a, b))
    return pairs


# Timetable grid

def time_slots(first: str = "08:00", last: str = "17:00", step_minutes: int = 30) -> List[str]:
    """Return ``HH:MM`` labels from ``first`` to ``last`` inclusive."""
    start = _to_minutes(first)
    stop = _to_minutes(last)
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    return [f"{m // 60:02d}:{m % 60:02d}" for m in range(start, stop + 1, step_minutes)]


def _to_minutes(label: str) -> int:
    hours, minutes = label.split(":")
    return int(hours) * 60 + int(minutes)


def nearest_slot(moment: time, slots: List[str]) -> str:
    """Snap a time of day to the closest slot label; earlier slot wins ties."""
    if not slots:
        raise ValueError("slots must not be empty")
    target = moment.hour * 60 + moment.minute
    return min(slots, key=lambda s: abs(_to_minutes(s) - target))


def slot_grid(
    timetables: Iterable[ResourceTimetable],
    slots: Optional[List[str]] = None,
) -> Dict[str, Dict[str, TemporalWindow]]:
    """Place every window on the nearest slot of a ``slot -> room -> window`` grid.

    Times are read in UTC. When two windows of one room snap to the same slot
    the later one in timetable order replaces the earlier.
    """
    slots = slots or time_slots()
    grid: Dict[str, Dict[str, TemporalWindow]] = {s: {} for s in slots}
    for timetable in timetables:
        for window in timetable.windows:
            slot = nearest_slot(window.start.time(), slots)
            grid[slot][timetable.resource_id] = window
    return grid


def active_slots(grid: Dict[str, Dict[str, TemporalWindow]]) -> List[str]:
    """Slots that hold at least one window, or every other slot when the grid is empty."""
    used = [slot for slot, cells in grid.items() if cells]
    if used:
        return used
    return [slot for i, slot in enumerate(grid) if i % 2 == 0]
