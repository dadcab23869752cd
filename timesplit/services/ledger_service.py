"""
Timesheet Ledger - append-only log of finalized intervals.

The ledger is the final authority on timesheet invariants: whatever the
session engine believes, an entry is only stored if its start and end are
globally unique and it does not overlap another entry of its group.
"""

import asyncio
import datetime
import logging
from typing import List, Optional

from timesplit.domain.errors import InvalidInterval, NotFound
from timesplit.domain.models import TimesheetEntry, TimesheetGroup, to_timestamp_ms
from timesplit.infra.db import DatabaseEngine
from timesplit.infra.repository import TimesheetGroupRepository, TimesheetRepository

logger = logging.getLogger(__name__)


class TimesheetLedger:
    """
    Persists and queries timesheet groups and entries.
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None):
        self.group_repo = TimesheetGroupRepository(engine)
        self.entry_repo = TimesheetRepository(engine)
        # Check-then-insert must not interleave between two appends
        self._append_lock = asyncio.Lock()

    async def create_group(self, time_split_id: int) -> TimesheetGroup:
        group = await self.group_repo.create(time_split_id)
        logger.info(f"Created timesheet group {group.id} for split {time_split_id}")
        return group

    async def get_group(self, group_id: int) -> TimesheetGroup:
        group = await self.group_repo.get_by_id(group_id)
        if group is None:
            raise NotFound(f"Timesheet group {group_id} not found")
        return group

    async def list_groups(self, time_split_id: Optional[int] = None) -> List[TimesheetGroup]:
        return await self.group_repo.get_all(time_split_id)

    async def append(self, group_id: int, entry: TimesheetEntry) -> TimesheetEntry:
        """
        Append a finalized entry to a group.

        Args:
            group_id: Group the entry belongs to (overrides entry.timesheet_group)
            entry: The interval to store

        Returns:
            The stored entry with millisecond timestamps

        Raises:
            NotFound, DuplicateStart, DuplicateEnd, Overlap, InvalidInterval
        """
        start_time = to_timestamp_ms(entry.start_time)
        end_time = to_timestamp_ms(entry.end_time)
        if end_time <= start_time:
            raise InvalidInterval(
                f"Entry {entry.start_time} -> {entry.end_time} is empty at millisecond resolution"
            )
        entry = TimesheetEntry(
            timesheet_group=group_id, start_time=start_time, end_time=end_time, work=entry.work
        )
        async with self._append_lock:
            stored = await self.entry_repo.append(entry)
        logger.debug(
            f"Group {group_id}: stored {'work' if stored.work else 'break'} "
            f"{stored.start_time} -> {stored.end_time}"
        )
        return stored

    async def list_entries(self, group_id: int,
                           start: Optional[datetime.datetime] = None,
                           end: Optional[datetime.datetime] = None) -> List[TimesheetEntry]:
        """
        Entries of a group ordered by start_time.

        With a range, only entries lying entirely inside [start, end] are returned.
        """
        await self.get_group(group_id)
        return await self.entry_repo.get_by_group(
            group_id,
            start_date=to_timestamp_ms(start) if start else None,
            end_date=to_timestamp_ms(end) if end else None,
        )

    async def entries_between(self, start: datetime.datetime,
                              end: datetime.datetime) -> List[TimesheetEntry]:
        """Entries of all groups starting at or after start and ending before end"""
        return await self.entry_repo.get_between(to_timestamp_ms(start), to_timestamp_ms(end))

    async def total_work_time(self, group_id: int) -> datetime.timedelta:
        entries = await self.list_entries(group_id)
        return sum((e.length for e in entries if e.work), datetime.timedelta(0))

    async def total_break_time(self, group_id: int) -> datetime.timedelta:
        entries = await self.list_entries(group_id)
        return sum((e.length for e in entries if not e.work), datetime.timedelta(0))
