"""Single-batch commit of an overlay's valid edits.

The diff is captured synchronously when :meth:`OverlayCommitter.commit` is
called, before the request starts, so edits made while it is in flight are
neither sent nor lost. Only one commit per overlay may be in flight. A failed
request leaves the overlay exactly as it was and is not retried; the
operator retries by committing again.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Coroutine, Generic, Hashable, List, Optional, TypeVar

from .errors import CommitInProgressError, CommitTransportError, StaleViewError
from .models import CommitPayload, CommitResult
from .overlay import Overlay

logger = logging.getLogger(__name__)

V = TypeVar("V")

Submit = Callable[[CommitPayload], Awaitable[Any]]


class OverlayCommitter(Generic[V]):
    """Sends an overlay's diff to a bulk update collaborator.

    Args:
        overlay: the overlay to commit.
        submit: coroutine function accepting the payload; it must raise on
            any rejection since the batch is all-or-nothing.
        is_current: optional guard from the owning view; when it returns
            False after the request resolves the response is discarded.
    """

    def __init__(
        self,
        overlay: Overlay[V],
        submit: Submit,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._overlay = overlay
        self._submit = submit
        self._is_current = is_current
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def commit(self) -> Coroutine[Any, Any, CommitResult]:
        """Capture the valid diff now and return the coroutine that sends it.

        The diff is taken and the commit is marked in flight before this
        call returns. Await the returned coroutine (or wrap it in a task) to
        send the batch; edits made after this call are never part of it.
        """
        if self._in_flight:
            raise CommitInProgressError("a commit for this overlay is already in flight")

        records = self._overlay.diff()
        excluded = list(self._overlay.invalid_entries())
        if excluded:
            logger.warning("Excluding %d invalid edit(s) from commit: %s", len(excluded), excluded)
        if not records:
            logger.info("Nothing valid to commit")
            return _resolved(CommitResult(excluded=excluded))

        self._in_flight = True
        return self._send(CommitPayload(records=records), excluded)

    async def _send(self, payload: CommitPayload, excluded: List[Hashable]) -> CommitResult:
        records = payload.records
        try:
            await self._submit(payload)
        except CommitTransportError as exc:
            logger.error("Bulk commit of %d record(s) failed: %s", len(records), exc)
            raise
        except Exception as exc:
            logger.error("Bulk commit of %d record(s) failed: %s", len(records), exc)
            raise CommitTransportError(str(exc)) from exc
        finally:
            self._in_flight = False

        if self._is_current is not None and not self._is_current():
            logger.info("%s", StaleViewError("commit response arrived after the view was closed; discarded"))
            return CommitResult(committed=records, excluded=excluded)

        self._overlay.apply_commit(records)
        logger.info("Committed %d record(s)", len(records))
        return CommitResult(committed=records, excluded=excluded)


async def _resolved(result: CommitResult) -> CommitResult:
    return result
