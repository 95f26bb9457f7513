"""Injectable clock sources that drive re-classification.

Views never read the system clock themselves. They are handed a clock, take
the initial instant from ``now()`` and re-render on every tick delivered to
the callback they subscribed. Each subscription owns its own timer, so two
views never share ticking state, and nothing ticks once every subscriber has
unsubscribed.

``IntervalClock`` ticks from an asyncio task per subscription.
``ManualClock`` only moves when told to and is what the tests use.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol

from .config import settings
from .timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)

TickCallback = Callable[[datetime], None]
Unsubscribe = Callable[[], None]


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def subscribe(self, callback: TickCallback) -> Unsubscribe:
        ...


def _deliver(callback: TickCallback, now: datetime) -> None:
    try:
        callback(now)
    except Exception as exc:
        logger.error(
            "Error in clock subscriber %s: %s",
            getattr(callback, "__name__", repr(callback)),
            exc,
            exc_info=True,
        )


class IntervalClock:
    """Wall clock that ticks every ``interval_seconds`` on the running event loop.

    ``subscribe`` must be called from inside a running loop; it starts one
    task for that subscriber, and the returned function cancels it.
    """

    def __init__(
        self,
        interval_seconds: float = settings.tick_seconds,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._now_fn = now_fn
        self._tasks: Dict[int, asyncio.Task] = {}
        self._ids = itertools.count()

    def now(self) -> datetime:
        return ensure_utc(self._now_fn())

    @property
    def active(self) -> bool:
        """True while at least one subscription is ticking."""
        return bool(self._tasks)

    @property
    def subscriber_count(self) -> int:
        return len(self._tasks)

    def subscribe(self, callback: TickCallback) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        token = next(self._ids)
        self._tasks[token] = loop.create_task(self._run(callback), name=f"clock-tick-{token}")
        logger.debug("Clock subscription %s started (every %ss)", token, self.interval_seconds)

        def unsubscribe() -> None:
            task = self._tasks.pop(token, None)
            if task is not None:
                task.cancel()
                logger.debug("Clock subscription %s stopped", token)

        return unsubscribe

    def close(self) -> None:
        """Cancel every subscription."""
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    async def _run(self, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            _deliver(callback, self.now())


class ManualClock:
    """Clock that only moves when ``advance`` or ``set`` is called.

    Every move notifies the subscribers synchronously, so a test can step a
    view through a schedule without sleeping.
    """

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)
        self._subscribers: Dict[int, TickCallback] = {}
        self._ids = itertools.count()

    def now(self) -> datetime:
        return self._now

    @property
    def active(self) -> bool:
        return bool(self._subscribers)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: TickCallback) -> Unsubscribe:
        token = next(self._ids)
        self._subscribers[token] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def advance(self, delta: Optional[timedelta] = None, *, minutes: float = 0, seconds: float = 0) -> datetime:
        """Move forward by ``delta`` (or the given minutes/seconds) and tick."""
        step = delta if delta is not None else timedelta(minutes=minutes, seconds=seconds)
        if step < timedelta(0):
            raise ValueError("a clock cannot move backwards")
        return self.set(self._now + step)

    def set(self, now: datetime) -> datetime:
        self._now = ensure_utc(now)
        self.tick()
        return self._now

    def tick(self) -> None:
        """Deliver the current instant to every subscriber."""
        for callback in list(self._subscribers.values()):
            _deliver(callback, self._now)
