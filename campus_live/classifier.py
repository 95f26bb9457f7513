"""Temporal window classification.

``classify`` maps a window and an instant to UPCOMING, LIVE or PAST plus the
minute counts the schedule and room views display. It is a pure function: the
caller supplies ``now`` (usually from a :mod:`campus_live.clock` tick) and the
same inputs always give the same result.

A malformed window (end not after start) must never break a view. It is
logged and classified as a zero-width window that is PAST as soon as
``now >= start``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from .config import settings
from .errors import MalformedWindowError
from .models import ClassificationResult, TemporalWindow, WindowStatus
from .timeutil import ceil_minutes, ensure_utc, floor_minutes

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(minutes=settings.default_window_minutes)


def effective_end(window: TemporalWindow, default_duration: timedelta = DEFAULT_DURATION) -> datetime:
    """Return the instant the window stops being LIVE.

    Windows without an end get ``default_duration``; malformed windows end at
    their start.
    """
    if window.end is None:
        return window.start + default_duration
    if window.end <= window.start:
        return window.start
    return window.end


def classify(
    window: TemporalWindow,
    now: datetime,
    default_duration: timedelta = DEFAULT_DURATION,
) -> ClassificationResult:
    """Classify ``window`` at ``now``."""
    now = ensure_utc(now)
    malformed = window.is_malformed
    if malformed:
        logger.warning("%s; treating it as zero-width", MalformedWindowError(window.id, window.start, window.end))

    end = effective_end(window, default_duration)

    if now < window.start:
        return ClassificationResult(
            status=WindowStatus.UPCOMING,
            minutes_until_start=ceil_minutes(window.start - now),
            malformed=malformed,
        )
    if now < end:
        return ClassificationResult(
            status=WindowStatus.LIVE,
            remaining_minutes=ceil_minutes(end - now),
        )
    return ClassificationResult(
        status=WindowStatus.PAST,
        elapsed_minutes=floor_minutes(now - end),
        malformed=malformed,
    )


def classify_many(
    windows: Iterable[TemporalWindow],
    now: datetime,
    default_duration: timedelta = DEFAULT_DURATION,
) -> List[Tuple[TemporalWindow, ClassificationResult]]:
    """Classify every window at the same instant, keeping input order."""
    return [(w, classify(w, now, default_duration)) for w in windows]


def format_duration(minutes: Optional[int]) -> Optional[str]:
    """Render a minute count for display: ``45m``, ``2h`` or ``1h 30m``.

    Returns None for missing or non-positive counts so that a finished
    countdown is hidden rather than shown as ``0m``.
    """
    if minutes is None or minutes <= 0:
        return None
    hours, rest = divmod(minutes, 60)
    if hours == 0:
        return f"{rest}m"
    if rest == 0:
        return f"{hours}h"
    return f"{hours}h {rest}m"
