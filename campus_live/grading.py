"""Exam score entry sheet.

Marks typed by the operator are stored as entered. Text that is not a number
becomes NaN so that it shows up as invalid instead of being dropped or
rounded into range; only valid marks count towards the live summary and the
commit diff.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Hashable, Mapping, Optional, Union

from .config import settings
from .models import GradeEntry, GradeSummary
from .overlay import Overlay
from .validation import GradeValidator

logger = logging.getLogger(__name__)

GOOD_PERCENT = 75
AVERAGE_PERCENT = 50


def parse_marks(value: Union[float, int, str, None]) -> Optional[float]:
    """Turn operator input into a float; blank means no mark, junk means NaN."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return math.nan
    return float(value)


def make_summary(max_marks: float, pass_ratio: float) -> Callable[[Mapping[Hashable, Optional[GradeEntry]]], GradeSummary]:
    """Build a reducer computing filled/average/highest/lowest/pass rate."""
    validator = GradeValidator(max_marks)

    def summarize(values: Mapping[Hashable, Optional[GradeEntry]]) -> GradeSummary:
        marks = [entry.marks for entry in values.values() if entry is not None and validator(entry) is None]
        if not marks:
            return GradeSummary(total=len(values))
        passed = sum(1 for m in marks if m >= max_marks * pass_ratio)
        return GradeSummary(
            filled=len(marks),
            total=len(values),
            average=round(sum(marks) / len(marks), 2),
            highest=max(marks),
            lowest=min(marks),
            pass_rate=round(passed / len(marks) * 100),
        )

    return summarize


class GradeSheet(Overlay[GradeEntry]):
    """Overlay of exam results keyed by student id."""

    def __init__(
        self,
        exam_id: str,
        max_marks: float,
        records: Optional[Mapping[Hashable, Optional[GradeEntry]]] = None,
        pass_ratio: float = settings.pass_ratio,
    ) -> None:
        if max_marks <= 0:
            raise ValueError("max_marks must be positive")
        super().__init__(records, validator=GradeValidator(max_marks))
        self.exam_id = exam_id
        self.max_marks = max_marks
        self.pass_ratio = pass_ratio
        self._summary = make_summary(max_marks, pass_ratio)

    @classmethod
    def from_api(cls, exam_id: str, payload: Mapping[str, Any], **kwargs: Any) -> "GradeSheet":
        """Build a sheet from the exam results endpoint.

        Expects ``{"exam": {"max_marks": ...}, "results": [{"marks_obtained": ...,
        "grade": ..., "student": {"student_id": ...}}]}``.
        """
        records = {}
        for item in payload.get("results", []):
            student_id = str(item["student"]["student_id"])
            marks = item.get("marks_obtained")
            grade = item.get("grade")
            if marks is None and not grade:
                records[student_id] = None
            else:
                records[student_id] = GradeEntry(marks=marks, grade=grade or None)
        return cls(exam_id, payload["exam"]["max_marks"], records, **kwargs)

    def set_marks(self, student_id: Hashable, marks: Union[float, int, str, None]) -> None:
        """Store new marks for a student.

        Landing back on the server value clears the edit. Blanking a mark the
        server already holds stays a pending, invalid edit.
        """
        current = self.get_effective(student_id) or GradeEntry()
        self._put(student_id, current.model_copy(update={"marks": parse_marks(marks)}))

    def set_grade(self, student_id: Hashable, grade: Optional[str]) -> None:
        current = self.get_effective(student_id) or GradeEntry()
        label = grade.strip() if grade else None
        self._put(student_id, current.model_copy(update={"grade": label or None}))

    def _put(self, student_id: Hashable, entry: GradeEntry) -> None:
        # no override may equal the server value
        server = self.entity(student_id).server_value if student_id in self else None
        blank = entry.marks is None and entry.grade is None
        if entry == server or (blank and server is None):
            self.clear_override(student_id)
        else:
            self.set_override(student_id, entry)

    def summary(self) -> GradeSummary:
        return self.compute_live_aggregate(self._summary)

    def percent(self, marks: float) -> int:
        return round(marks / self.max_marks * 100)

    def score_band(self, marks: float) -> str:
        """``good`` from 75 %, ``average`` from 50 %, otherwise ``poor``."""
        percent = self.percent(marks)
        if percent >= GOOD_PERCENT:
            return "good"
        if percent >= AVERAGE_PERCENT:
            return "average"
        return "poor"
