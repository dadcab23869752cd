"""
Error taxonomy.

Every error here is a local, recoverable condition reported to the caller.
A command that raises one of these leaves persisted state unchanged.
"""


class TimeSplitError(Exception):
    """Base class for all engine errors"""


class NotFound(TimeSplitError, LookupError):
    """Unknown id (split, tag, group or session)"""


class Conflict(TimeSplitError):
    """Duplicate unique key"""


class DuplicateStart(Conflict):
    """An entry already starts at this instant"""


class DuplicateEnd(Conflict):
    """An entry already ends at this instant"""


class Overlap(TimeSplitError):
    """Interval intersects an existing entry of the same group"""


class InvalidSplit(TimeSplitError):
    """Split cannot be run (deleted, no phases or zero cycle length)"""


class NonMonotonicTime(TimeSplitError):
    """Timestamp earlier than the last one observed for the session"""


class InvalidTransition(TimeSplitError):
    """Command not allowed in the session's current state"""


class InvalidInterval(TimeSplitError, ValueError):
    """Entry does not end after it starts at millisecond resolution"""
