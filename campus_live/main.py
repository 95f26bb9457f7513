"""Room status service.

This module defines the FastAPI application that serves live room occupancy
for wallboards and the timetable overview. Timetables are fetched from the
institute API and cached per day for ``refresh_seconds``; occupancy itself is
recomputed from the cached timetables on every request, so the reported state
always matches the current minute even while the cache is warm.

Endpoints:
  - ``/api/rooms/status``: occupancy of every room for a day.
  - ``/api/rooms/{room_id}/availability``: informational clash check.
  - ``/healthz``: simple health check endpoint.

Errors from the institute API are recorded per day and surfaced via the
``lastError`` field; a stale timetable is served when a refresh fails. At
most ``cache_max_days`` days are kept, least recently used first out.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .api_client import InstituteClient
from .classifier import classify, format_duration
from .config import settings
from .models import ResourceTimetable, RoomStatus, WindowBlock
from .occupancy import check_availability, summarize
from .timeutil import ensure_utc, iso_z, utcnow

logger = logging.getLogger("campus_live")
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Room Status Service")

# Wallboards normally share the service origin; CORS is opt-in via ENABLE_CORS.
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

TimetableSource = Callable[[date], List[ResourceTimetable]]

# Per-day entries: {"timetables": [...], "fetched_at": datetime, "last_error": str | None}.
# Least recently used days are evicted past ``settings.cache_max_days``.
_cache_lock = threading.Lock()
_cache: "OrderedDict[date, Dict[str, Any]]" = OrderedDict()


def get_timetable_source() -> TimetableSource:
    """Dependency returning the function that loads a day's timetables."""
    return InstituteClient().fetch_room_timetables


def get_now() -> datetime:
    """Dependency returning the instant used to classify windows."""
    return utcnow()


def _cache_fresh(ts: Optional[datetime], max_age_seconds: int) -> bool:
    """Return True if the timestamp ``ts`` is within ``max_age_seconds`` of now."""
    if ts is None:
        return False
    return (utcnow() - ts).total_seconds() < max_age_seconds


def reset_cache() -> None:
    with _cache_lock:
        _cache.clear()


def cached_days() -> List[date]:
    with _cache_lock:
        return list(_cache)


def _get_timetables_cached(day: date, source: TimetableSource) -> Tuple[List[ResourceTimetable], Optional[str]]:
    """Return the timetables for ``day`` and that day's last error, refreshing when stale."""
    with _cache_lock:
        entry = _cache.get(day)
        if entry is not None:
            _cache.move_to_end(day)
            if _cache_fresh(entry["fetched_at"], settings.refresh_seconds):
                return entry["timetables"], entry["last_error"]
    try:
        timetables = source(day)
    except Exception as exc:
        logger.exception("Error fetching timetables for %s: %s", day, exc)
        if entry is None:
            raise
        with _cache_lock:
            entry["last_error"] = f"TIMETABLE_ERROR: {exc}"
            return entry["timetables"], entry["last_error"]
    with _cache_lock:
        _cache[day] = {"timetables": timetables, "fetched_at": utcnow(), "last_error": None}
        _cache.move_to_end(day)
        while len(_cache) > settings.cache_max_days:
            evicted, _ = _cache.popitem(last=False)
            logger.debug("Evicted cached timetables for %s", evicted)
    return timetables, None


def _room_status(timetable: ResourceTimetable, snapshot, now: datetime) -> RoomStatus:
    blocks = []
    for window in timetable.windows:
        blocks.append(
            WindowBlock(
                id=window.id,
                start=iso_z(window.start),
                end=iso_z(window.end) if window.end else None,
                label=window.label or window.course_name,
                status=classify(window, now).status,
            )
        )
    return RoomStatus(
        roomId=timetable.resource_id,
        roomName=timetable.name or timetable.resource_id,
        capacity=timetable.capacity,
        location=timetable.location,
        isOccupied=snapshot.is_occupied,
        warn=snapshot.warn,
        minutesToTransition=snapshot.minutes_to_transition,
        countdown=format_duration(snapshot.minutes_to_transition) if snapshot.is_occupied else None,
        activeWindowId=snapshot.active_window.id if snapshot.active_window else None,
        nextWindowId=snapshot.next_window.id if snapshot.next_window else None,
        windowsToday=snapshot.windows_total,
        windows=blocks,
    )


@app.get("/api/rooms/status")
def api_status(
    day: Optional[date] = Query(default=None, alias="date"),
    source: TimetableSource = Depends(get_timetable_source),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    """Return computed occupancy status for all rooms."""
    day = day or now.date()
    try:
        timetables, last_error = _get_timetables_cached(day, source)
    except Exception as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    summary = summarize(timetables, now, settings.warn_threshold_minutes)
    items = [_room_status(t, s, now) for t, s in zip(timetables, summary.rooms)]
    # Sort for stable ordering: roomName
    items.sort(key=lambda s: s.roomName.lower())
    return {
        "generatedAt": iso_z(summary.generated_at),
        "date": day.isoformat(),
        "refreshSeconds": settings.tick_seconds,
        "warnMinutes": settings.warn_threshold_minutes,
        "freeCount": summary.free_count,
        "occupiedCount": summary.occupied_count,
        "totalWindows": summary.total_windows,
        "items": [s.model_dump() for s in items],
        "lastError": last_error,
    }


@app.get("/api/rooms/{room_id}/availability")
def api_availability(
    room_id: str,
    start: datetime,
    end: Optional[datetime] = None,
    source: TimetableSource = Depends(get_timetable_source),
) -> Dict[str, Any]:
    """Report bookings that would clash with the requested slot."""
    start = ensure_utc(start)
    end = ensure_utc(end) if end is not None else None
    if end is not None and end <= start:
        raise HTTPException(status_code=400, detail="end must be after start")
    try:
        timetables, _ = _get_timetables_cached(start.date(), source)
    except Exception as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    timetable = next((t for t in timetables if t.resource_id == room_id), None)
    if timetable is None:
        raise HTTPException(status_code=404, detail=f"unknown room {room_id}")
    report = check_availability(timetable, start, end)
    return report.model_dump(mode="json")


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return {"ok": True, "time": iso_z(utcnow())}
