"""
Report Generation Service using Jinja2 templates.

Architecture Decision: Template Pattern
Allows users to customize reports without changing code.
"""

import datetime
from pathlib import Path
from typing import Optional
from jinja2 import Environment, FileSystemLoader

from timesplit.infra.db import DatabaseEngine
from timesplit.services.catalog_service import CatalogService
from timesplit.services.ledger_service import TimesheetLedger
from timesplit.services.tag_service import TagIndex

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "resources" / "templates"


class ReportService:
    """
    Renders timesheet reports for a session from Jinja2 templates.
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None,
                 template_dir: Optional[Path] = None):
        """
        Initialize the report service.

        Args:
            engine: Database to read from (global engine if omitted)
            template_dir: Directory containing Jinja2 templates
        """
        self.template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self.catalog = CatalogService(engine)
        self.ledger = TimesheetLedger(engine)
        self.tags = TagIndex(engine)

        # Setup Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            trim_blocks=True,
            lstrip_blocks=True
        )

        # Add custom filters
        self.env.filters['format_duration'] = self._format_duration
        self.env.filters['format_time'] = self._format_time

    @staticmethod
    def _format_duration(delta: datetime.timedelta) -> str:
        """Format a duration as HH:MM:SS"""
        total_seconds = int(delta.total_seconds())
        hours, remainder = divmod(total_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    @staticmethod
    def _format_time(dt: datetime.datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        return dt.strftime(fmt)

    async def generate_report(self, group_id: int,
                              template_name: str = "session_report.txt",
                              output_file: Optional[Path] = None) -> str:
        """
        Generate the report of one session.

        Args:
            group_id: Timesheet group to report on
            template_name: Name of the template file
            output_file: Optional file path to save the report

        Returns:
            The generated report as a string
        """
        group = await self.ledger.get_group(group_id)
        split = await self.catalog.get_time_split(group.time_split_id, include_deleted=True)
        entries = await self.ledger.list_entries(group_id)
        tags = sorted(t.tag for t in await self.tags.tags_for(group_id))

        template = self.env.get_template(template_name)
        report = template.render(
            group=group,
            split=split,
            tags=tags,
            entries=entries,
            total_work=sum((e.length for e in entries if e.work), datetime.timedelta(0)),
            total_break=sum((e.length for e in entries if not e.work), datetime.timedelta(0)),
        )

        if output_file:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(report, encoding='utf-8')

        return report
