"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity when loading
from the database or YAML config files. Immutable records (phases, entries,
tags, groups) are frozen so they can be hashed and shared safely.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


PAUSED_SPLIT_ID = 0
PAUSED_SPLIT_NAME = "_paused_"


def to_timestamp_ms(dt: datetime) -> datetime:
    """
    Normalize a datetime to the ledger's timestamp format.

    Aware datetimes are converted to UTC; the result is naive and truncated
    to millisecond resolution.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=dt.microsecond - dt.microsecond % 1000)


class TimerPhase(BaseModel):
    """
    One named, timed segment of a TimeSplit.

    Examples: "Work" 25 minutes (work=True), "Break" 5 minutes (work=False)
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    name: str = Field(..., min_length=1)
    length: timedelta
    work: bool

    @field_validator("length")
    @classmethod
    def _check_length(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("phase length must be non-negative")
        # Entries are stored with millisecond resolution, so are phase lengths
        return v - timedelta(microseconds=v.microseconds % 1000)


class TimeSplit(BaseModel):
    """
    A named, reusable template defining an ordered cycle of timer phases.

    Phase order is the order in which the phases were inserted.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    deleted: bool = False
    phases: List[TimerPhase] = Field(default_factory=list)

    @property
    def cycle_length(self) -> timedelta:
        return sum((p.length for p in self.phases), timedelta(0))

    @property
    def is_sentinel(self) -> bool:
        return self.id == PAUSED_SPLIT_ID


class TimesheetGroup(BaseModel):
    """One run (session) of a TimeSplit, grouping its resulting entries"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    time_split_id: int


class TimesheetEntry(BaseModel):
    """
    One immutable, finalized interval produced by completing a phase.

    start_time and end_time are each unique across the whole ledger.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    timesheet_group: int
    start_time: datetime
    end_time: datetime
    work: bool

    @model_validator(mode="after")
    def _check_interval(self) -> "TimesheetEntry":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def length(self) -> timedelta:
        return self.end_time - self.start_time


class Tag(BaseModel):
    """A user-defined label attachable to sessions"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    tag: str = Field(..., min_length=1)
    deleted: bool = False


class SessionPreferences(BaseModel):
    """
    Session engine policy.

    Loaded from settings.yaml so the partial-phase policy can be changed
    without touching code.
    """
    model_config = ConfigDict(from_attributes=True)

    record_partial_on_skip: bool = Field(
        default=True,
        description="Record a truncated entry when a phase is skipped mid-way"
    )
    record_partial_on_stop: bool = Field(
        default=True,
        description="Record a truncated entry when a session is stopped mid-phase"
    )


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class SessionStatus(BaseModel):
    """Read-only snapshot of a session, e.g. for a countdown display"""

    group_id: int
    state: SessionState
    phase_index: int
    phase_name: Optional[str] = None
    work: Optional[bool] = None
    elapsed: timedelta = timedelta(0)
    remaining: timedelta = timedelta(0)
