"""View-scoped controllers that tie clocks, fetches and overlays together.

A view is mounted when its screen opens and unmounted when it closes. Loads
are tagged with a generation number: a response is applied only if the view
is still mounted and no newer load was started in the meantime. Anything
else is a stale response and is discarded without touching state. Requests
already in flight are not aborted.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Coroutine, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from .classifier import DEFAULT_DURATION, classify_many, format_duration
from .clock import Clock, Unsubscribe
from .commit import OverlayCommitter, Submit
from .config import settings
from .errors import StaleViewError
from .models import (
    ClassificationResult,
    CommitResult,
    OccupancySnapshot,
    OccupancySummary,
    ResourceTimetable,
    TemporalWindow,
    WindowStatus,
)
from .occupancy import summarize
from .overlay import Overlay

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")


class LiveView(ABC):
    """Base class for a screen instance with a mount/unmount lifecycle."""

    def __init__(self) -> None:
        self._mounted = False
        self._mount_token = 0
        self._generation = 0

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._mount_token += 1
        self.on_mount()

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self._mount_token += 1
        self._generation += 1
        self.on_unmount()

    def on_mount(self) -> None:
        pass

    def on_unmount(self) -> None:
        pass

    def guard(self) -> Callable[[], bool]:
        """Return a check that stays True only while this mount is alive."""
        token = self._mount_token
        return lambda: self._mounted and self._mount_token == token

    async def load(self, fetch: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Await ``fetch`` and apply its result unless it went stale meanwhile.

        Returns the applied result, or None when it was discarded.
        """
        self._generation += 1
        generation = self._generation
        result = await fetch()
        if not self._mounted or generation != self._generation:
            logger.info("%s", StaleViewError(f"{type(self).__name__} discarded load #{generation}"))
            return None
        self.apply(result)
        return result

    @abstractmethod
    def apply(self, result: Any) -> None:
        """Install a freshly loaded response."""


class RoomOverviewView(LiveView):
    """Live occupancy of every room, recomputed on each clock tick."""

    def __init__(
        self,
        clock: Clock,
        warn_threshold_minutes: int = settings.warn_threshold_minutes,
        default_duration: timedelta = DEFAULT_DURATION,
    ) -> None:
        super().__init__()
        self._clock = clock
        self.warn_threshold_minutes = warn_threshold_minutes
        self.default_duration = default_duration
        self._timetables: List[ResourceTimetable] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._listeners: List[Callable[[OccupancySummary], None]] = []
        self.summary: Optional[OccupancySummary] = None

    def on_mount(self) -> None:
        self._unsubscribe = self._clock.subscribe(self.refresh)
        self.refresh()

    def on_unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def apply(self, result: Iterable[ResourceTimetable]) -> None:
        self._timetables = list(result)
        self.refresh()

    def add_listener(self, listener: Callable[[OccupancySummary], None]) -> None:
        self._listeners.append(listener)

    def refresh(self, now: Optional[datetime] = None) -> OccupancySummary:
        now = now or self._clock.now()
        self.summary = summarize(self._timetables, now, self.warn_threshold_minutes, self.default_duration)
        for listener in list(self._listeners):
            listener(self.summary)
        return self.summary

    def room(self, resource_id: str) -> Optional[OccupancySnapshot]:
        if self.summary is None:
            return None
        for snapshot in self.summary.rooms:
            if snapshot.resource_id == resource_id:
                return snapshot
        return None

    def countdown(self, resource_id: str) -> Optional[str]:
        """Time left in the active window, formatted; None for free rooms."""
        snapshot = self.room(resource_id)
        if snapshot is None or not snapshot.is_occupied:
            return None
        return format_duration(snapshot.minutes_to_transition)


class ScheduleView(LiveView):
    """A flat list of windows (e.g. one teacher's sessions) classified live."""

    def __init__(self, clock: Clock, default_duration: timedelta = DEFAULT_DURATION) -> None:
        super().__init__()
        self._clock = clock
        self.default_duration = default_duration
        self._windows: List[TemporalWindow] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self.entries: List[Tuple[TemporalWindow, ClassificationResult]] = []

    def on_mount(self) -> None:
        self._unsubscribe = self._clock.subscribe(self.refresh)
        self.refresh()

    def on_unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def apply(self, result: Iterable[TemporalWindow]) -> None:
        self._windows = sorted(result, key=lambda w: w.start)
        self.refresh()

    def refresh(self, now: Optional[datetime] = None) -> None:
        self.entries = classify_many(self._windows, now or self._clock.now(), self.default_duration)

    def counts(self) -> Dict[WindowStatus, int]:
        tally = Counter(result.status for _, result in self.entries)
        return {status: tally.get(status, 0) for status in WindowStatus}

    def with_status(self, status: WindowStatus) -> List[TemporalWindow]:
        return [w for w, result in self.entries if result.status is status]


class BulkEditView(LiveView, Generic[V]):
    """Owns the overlay of one bulk-edit screen.

    ``build`` turns a fetched response into an overlay. A reload while edits
    are pending swaps in the new server snapshot and keeps the edits. The
    overlay is dropped when the view unmounts, and a commit whose response
    arrives after that is discarded.
    """

    def __init__(self, build: Callable[[Any], Overlay[V]], submit: Submit) -> None:
        super().__init__()
        self._build = build
        self._submit = submit
        self._overlay: Optional[Overlay[V]] = None
        self._committer: Optional[OverlayCommitter[V]] = None

    @property
    def overlay(self) -> Optional[Overlay[V]]:
        return self._overlay

    def apply(self, result: Any) -> None:
        fresh = self._build(result)
        if self._overlay is None:
            self._overlay = fresh
            self._committer = OverlayCommitter(fresh, self._submit, is_current=self.guard())
        else:
            self._overlay.load(fresh.server_values())

    def on_unmount(self) -> None:
        self._overlay = None
        self._committer = None

    def commit(self) -> Coroutine[Any, Any, CommitResult]:
        """Capture the pending edits now; await the result to send them."""
        if self._committer is None:
            raise RuntimeError("nothing loaded to commit")
        return self._committer.commit()
