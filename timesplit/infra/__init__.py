"""Infrastructure layer - Database and persistence"""

from .db import DatabaseEngine, get_engine, init_db
from .migrations import apply_migrations
from .models import (
    TimeSplitModel, TimeSplitTimerModel, TimesheetGroupModel,
    TimesheetModel, TagModel, TimesheetTagModel,
)

__all__ = [
    "DatabaseEngine", "get_engine", "init_db", "apply_migrations",
    "TimeSplitModel", "TimeSplitTimerModel", "TimesheetGroupModel",
    "TimesheetModel", "TagModel", "TimesheetTagModel",
]
