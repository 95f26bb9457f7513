"""Client for the institute backend that owns timetables and bulk updates.

The backend is an external collaborator: this module only knows the minimal
shapes the live engine consumes. Reads return timetables and attendance or
result snapshots; writes send ``{"records": [{"id": ..., "value": ...}]}``
which the backend accepts or rejects as a whole.

The HTTP calls are synchronous ``requests`` calls. The ``async_*`` wrappers
run them in a worker thread so the event loop driving the views is never
blocked. Writes are not retried: a failed commit is surfaced as
:class:`CommitTransportError` and the operator retries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from .config import settings
from .errors import CommitTransportError
from .models import CommitPayload, ResourceTimetable

logger = logging.getLogger(__name__)

ROOMS_OVERVIEW_PATH = "/api/admin/rooms/schedule/overview"
ATTENDANCE_PATH = "/api/teachers/me/sessions/{session_id}/attendance"
RESULTS_PATH = "/api/teachers/me/exams/{exam_id}/results"


class InstituteClient:
    """Thin wrapper around a ``requests.Session`` bound to the institute API."""

    def __init__(
        self,
        base_url: str = settings.institute_api_url,
        timeout: float = settings.request_timeout_seconds,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.session.get(self._url(path), params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("GET %s failed: %s", path, exc)
            raise
        return response.json()

    def _post(self, path: str, payload: CommitPayload) -> Any:
        body = payload.model_dump(mode="json")
        try:
            response = self.session.post(self._url(path), json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("POST %s with %d record(s) failed: %s", path, len(payload.records), exc)
            raise CommitTransportError(f"bulk update rejected: {exc}") from exc
        if not response.content:
            return None
        return response.json()

    # Reads

    def fetch_room_timetables(self, day: date) -> List[ResourceTimetable]:
        """Return every active room with its windows for ``day``."""
        data = self._get(ROOMS_OVERVIEW_PATH, params={"date": day.isoformat()})
        rooms = data.get("rooms", []) if isinstance(data, dict) else data
        timetables = [ResourceTimetable.model_validate(room) for room in rooms]
        logger.debug("Fetched %d room timetable(s) for %s", len(timetables), day)
        return timetables

    def fetch_attendance(self, session_id: str) -> Dict[str, Any]:
        return self._get(ATTENDANCE_PATH.format(session_id=session_id))

    def fetch_results(self, exam_id: str) -> Dict[str, Any]:
        return self._get(RESULTS_PATH.format(exam_id=exam_id))

    # Writes

    def submit_attendance(self, session_id: str, payload: CommitPayload) -> Any:
        return self._post(ATTENDANCE_PATH.format(session_id=session_id) + "/bulk", payload)

    def submit_results(self, exam_id: str, payload: CommitPayload) -> Any:
        return self._post(RESULTS_PATH.format(exam_id=exam_id) + "/bulk", payload)

    # Event-loop friendly wrappers

    async def async_fetch_room_timetables(self, day: date) -> List[ResourceTimetable]:
        return await asyncio.to_thread(self.fetch_room_timetables, day)

    async def async_fetch_attendance(self, session_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.fetch_attendance, session_id)

    async def async_fetch_results(self, exam_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.fetch_results, exam_id)

    async def async_submit_attendance(self, session_id: str, payload: CommitPayload) -> Any:
        return await asyncio.to_thread(self.submit_attendance, session_id, payload)

    async def async_submit_results(self, exam_id: str, payload: CommitPayload) -> Any:
        return await asyncio.to_thread(self.submit_results, exam_id, payload)
