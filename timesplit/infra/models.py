"""
SQLAlchemy ORM models.
Separated from db.py for cleaner imports.
"""

from .db import (
    Base,
    TimeSplitModel,
    TimeSplitTimerModel,
    TimesheetGroupModel,
    TimesheetModel,
    TagModel,
    TimesheetTagModel,
    MigrationModel,
)

__all__ = [
    "Base", "TimeSplitModel", "TimeSplitTimerModel", "TimesheetGroupModel",
    "TimesheetModel", "TagModel", "TimesheetTagModel", "MigrationModel",
]
