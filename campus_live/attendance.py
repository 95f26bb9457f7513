"""Attendance marking sheet for one class session."""

from __future__ import annotations

import logging
from typing import Any, Hashable, Mapping, Optional

from .models import AttendanceCounts, AttendanceStatus
from .overlay import Overlay
from .validation import ChoiceValidator

logger = logging.getLogger(__name__)


def count_statuses(values: Mapping[Hashable, Optional[AttendanceStatus]]) -> AttendanceCounts:
    """Reducer: how many students are present, absent or not yet marked."""
    present = absent = unmarked = 0
    for status in values.values():
        if status == AttendanceStatus.PRESENT:
            present += 1
        elif status == AttendanceStatus.ABSENT:
            absent += 1
        else:
            unmarked += 1
    return AttendanceCounts(present=present, absent=absent, unmarked=unmarked, total=len(values))


class AttendanceSheet(Overlay[AttendanceStatus]):
    """Overlay of PRESENT/ABSENT marks keyed by student id."""

    def __init__(
        self,
        session_id: str,
        records: Optional[Mapping[Hashable, Optional[AttendanceStatus]]] = None,
    ) -> None:
        super().__init__(records, validator=ChoiceValidator(AttendanceStatus))
        self.session_id = session_id

    @classmethod
    def from_api(cls, session_id: str, payload: Mapping[str, Any]) -> "AttendanceSheet":
        """Build a sheet from the session attendance endpoint.

        Expects ``{"students": [{"status": ..., "student": {"student_id": ...}}]}``;
        unknown status strings are kept as unmarked and logged.
        """
        records = {}
        for item in payload.get("students", []):
            student_id = str(item["student"]["student_id"])
            raw = item.get("status")
            status = None
            if raw is not None:
                try:
                    status = AttendanceStatus(str(raw).upper())
                except ValueError:
                    logger.warning("Unknown attendance status %r for student %s", raw, student_id)
            records[student_id] = status
        return cls(session_id, records)

    def mark(self, student_id: Hashable, status: AttendanceStatus) -> None:
        self.set_override(student_id, status)

    def mark_all(self, status: AttendanceStatus) -> int:
        return self.bulk_set_override(status)

    def toggle(self, student_id: Hashable) -> AttendanceStatus:
        """Flip PRESENT and ABSENT; an unmarked student becomes PRESENT."""
        current = self.get_effective(student_id)
        new = AttendanceStatus.ABSENT if current == AttendanceStatus.PRESENT else AttendanceStatus.PRESENT
        self.set_override(student_id, new)
        return new

    def counts(self) -> AttendanceCounts:
        return self.compute_live_aggregate(count_statuses)
