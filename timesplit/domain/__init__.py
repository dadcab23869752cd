"""Domain layer - Pure business entities and logic"""

from .models import (
    TimerPhase,
    TimeSplit,
    TimesheetGroup,
    TimesheetEntry,
    Tag,
    SessionPreferences,
    SessionState,
    SessionStatus,
    PAUSED_SPLIT_ID,
    to_timestamp_ms,
)
from .errors import (
    TimeSplitError,
    NotFound,
    Conflict,
    DuplicateStart,
    DuplicateEnd,
    Overlap,
    InvalidSplit,
    NonMonotonicTime,
    InvalidTransition,
    InvalidInterval,
)

__all__ = [
    "TimerPhase", "TimeSplit", "TimesheetGroup", "TimesheetEntry", "Tag",
    "SessionPreferences", "SessionState", "SessionStatus", "PAUSED_SPLIT_ID", "to_timestamp_ms",
    "TimeSplitError", "NotFound", "Conflict", "DuplicateStart", "DuplicateEnd",
    "Overlap", "InvalidSplit", "NonMonotonicTime", "InvalidTransition",
    "InvalidInterval",
]
