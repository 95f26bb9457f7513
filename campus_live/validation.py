"""Field validators for overlay values.

A validator is any callable that takes a value and returns ``None`` when it
is acceptable or a short reason when it is not. Validators never raise: the
overlay uses them to leave invalid edits out of the commit diff while still
reporting them to the operator.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Hashable, Iterable, Optional

from .errors import ValidationError
from .models import GradeEntry

Validator = Callable[[Any], Optional[str]]

MAX_GRADE_LENGTH = 10


class RangeValidator:
    """Accept finite numbers within ``[min_value, max_value]`` inclusive."""

    def __init__(self, max_value: float, min_value: float = 0) -> None:
        if max_value < min_value:
            raise ValueError("max_value must not be below min_value")
        self.min_value = min_value
        self.max_value = max_value

    def __call__(self, value: Any) -> Optional[str]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"{value!r} is not a number"
        if not math.isfinite(value):
            return f"{value!r} is not a finite number"
        if value < self.min_value or value > self.max_value:
            return f"{value:g} is outside [{self.min_value:g}, {self.max_value:g}]"
        return None


class ChoiceValidator:
    """Accept only members of a declared set (usually an Enum)."""

    def __init__(self, choices: Iterable[Any]) -> None:
        self.choices = frozenset(choices)

    def __call__(self, value: Any) -> Optional[str]:
        try:
            if value in self.choices:
                return None
        except TypeError:
            pass
        return f"{value!r} is not one of {sorted(str(c) for c in self.choices)}"


class GradeValidator:
    """Accept a :class:`GradeEntry` whose marks lie within ``[0, max_marks]``."""

    def __init__(self, max_marks: float, max_grade_length: int = MAX_GRADE_LENGTH) -> None:
        self.marks = RangeValidator(max_marks)
        self.max_grade_length = max_grade_length

    def __call__(self, value: Any) -> Optional[str]:
        if not isinstance(value, GradeEntry):
            return f"{value!r} is not a grade entry"
        if value.marks is None:
            return "marks are missing"
        reason = self.marks(value.marks)
        if reason:
            return reason
        if value.grade is not None and len(value.grade) > self.max_grade_length:
            return f"grade label longer than {self.max_grade_length} characters"
        return None


def validate_or_raise(validator: Validator, entity_id: Hashable, value: Any) -> Any:
    """Strict variant for callers that want an exception instead of a reason."""
    reason = validator(value)
    if reason is not None:
        raise ValidationError(entity_id, reason)
    return value
