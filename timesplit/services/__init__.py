"""Services layer - Business logic"""

from .catalog_service import CatalogService
from .clock import Clock
from .ledger_service import TimesheetLedger
from .report_service import ReportService
from .session_engine import SessionEngine, TimerSession
from .tag_service import TagIndex

__all__ = [
    "CatalogService", "Clock", "TimesheetLedger", "ReportService",
    "SessionEngine", "TimerSession", "TagIndex",
]
