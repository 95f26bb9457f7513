"""Pydantic data models for the live engine.

Records fetched from the institute API are parsed into explicit value objects
here instead of being passed around as implicitly shaped dictionaries. The
classification and occupancy results are derived models; they are recomputed
on every clock tick and never stored. The camelCase models at the bottom
define the JSON returned by the room status service.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Hashable, List, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

from .timeutil import ensure_utc

V = TypeVar("V")


class WindowStatus(str, Enum):
    """Position of a window relative to "now"."""

    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    PAST = "PAST"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"


def _to_str_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class TemporalWindow(BaseModel):
    """One scheduled occurrence (a class session) with an optional end.

    A window whose ``end`` is not after its ``start`` is accepted as-is; the
    classifier treats it as a zero-width window instead of rejecting it.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("id", "session_id"))
    start: datetime = Field(validation_alias=AliasChoices("start", "session_date"))
    end: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("end", "end_time"))
    resource_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("resource_id", "room_id"))
    label: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "topic"))
    group_name: Optional[str] = None
    course_name: Optional[str] = None
    teacher_name: Optional[str] = None

    @field_validator("id", "resource_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _to_str_id(value)

    @field_validator("start", "end")
    @classmethod
    def _normalise_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def is_malformed(self) -> bool:
        return self.end is not None and self.end <= self.start


class ResourceTimetable(BaseModel):
    """All windows booked on one resource (a room) for the loaded period."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    resource_id: str = Field(validation_alias=AliasChoices("resource_id", "room_id"))
    name: Optional[str] = None
    capacity: Optional[int] = None
    location: Optional[str] = None
    windows: List[TemporalWindow] = Field(
        default_factory=list, validation_alias=AliasChoices("windows", "sessions")
    )

    @field_validator("resource_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _to_str_id(value)


class ClassificationResult(BaseModel):
    """Status of one window at one instant."""

    model_config = ConfigDict(frozen=True)

    status: WindowStatus
    remaining_minutes: Optional[int] = None
    elapsed_minutes: Optional[int] = None
    minutes_until_start: Optional[int] = None
    malformed: bool = False


class OccupancySnapshot(BaseModel):
    """Occupancy of one resource at one instant."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    is_occupied: bool
    active_window: Optional[TemporalWindow] = None
    next_window: Optional[TemporalWindow] = None
    minutes_to_transition: Optional[int] = None
    warn: bool = False
    windows_total: int = 0


class OccupancySummary(BaseModel):
    """Occupancy across a set of resources, recomputed on every call."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    free_count: int
    occupied_count: int
    total_windows: int
    rooms: List[OccupancySnapshot] = Field(default_factory=list)


class AvailabilityReport(BaseModel):
    """Result of an informational double-booking check."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    requested_start: datetime
    requested_end: datetime
    available: bool
    conflicts: List[TemporalWindow] = Field(default_factory=list)
    windows_total: int = 0


class GradeEntry(BaseModel):
    """A score for one student on one exam plus an optional letter grade."""

    model_config = ConfigDict(frozen=True)

    marks: Optional[float] = None
    grade: Optional[str] = None


class EditableEntity(BaseModel, Generic[V]):
    """A server value with an optional local override on top of it."""

    id: Hashable
    server_value: Optional[V] = None
    override: Optional[V] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dirty(self) -> bool:
        return self.override is not None


class CommitRecord(BaseModel):
    id: Hashable
    value: Any


class CommitPayload(BaseModel):
    """Body of a bulk update request: accepted or rejected as a whole."""

    records: List[CommitRecord] = Field(default_factory=list)


class CommitResult(BaseModel):
    committed: List[CommitRecord] = Field(default_factory=list)
    excluded: List[Hashable] = Field(default_factory=list)


class AttendanceCounts(BaseModel):
    present: int = 0
    absent: int = 0
    unmarked: int = 0
    total: int = 0


class GradeSummary(BaseModel):
    """Live statistics over the effective marks of a grade sheet."""

    filled: int = 0
    total: int = 0
    average: float = 0.0
    highest: float = 0.0
    lowest: float = 0.0
    pass_rate: int = 0


class WindowBlock(BaseModel):
    """Represents a booked window on a room for the status API."""

    id: str
    start: str
    end: Optional[str] = None
    label: Optional[str] = None
    status: WindowStatus


class RoomStatus(BaseModel):
    """Represents the computed status of a room at a point in time."""

    roomId: str
    roomName: str
    capacity: Optional[int] = None
    location: Optional[str] = None

    isOccupied: bool
    warn: bool
    minutesToTransition: Optional[int] = None
    countdown: Optional[str] = None
    activeWindowId: Optional[str] = None
    nextWindowId: Optional[str] = None
    windowsToday: int = 0
    windows: List[WindowBlock] = []
