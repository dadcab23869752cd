"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Add caching (see CatalogService)
- Swap in an in-memory database for testing

Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete, and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timesplit.domain.errors import Conflict, DuplicateStart, DuplicateEnd, NotFound, Overlap
from timesplit.domain.models import TimeSplit, TimerPhase, TimesheetGroup, TimesheetEntry, Tag
from timesplit.infra.db import (
    TimeSplitModel, TimeSplitTimerModel, TimesheetGroupModel, TimesheetModel,
    TagModel, TimesheetTagModel, get_engine, DatabaseEngine,
)


class _Repository:
    def __init__(self, engine: Optional[DatabaseEngine] = None):
        self.engine = engine

    async def _get_session(self) -> AsyncSession:
        """Get session - from the injected engine or the global one"""
        engine = self.engine or get_engine()
        return engine.get_session()


class TimeSplitRepository(_Repository):
    """
    Handles TimeSplit and TimerPhase persistence.

    Phases come back in insertion order (hidden autoincrement id).
    """

    async def _load_phases(self, session: AsyncSession, split_id: int) -> List[TimerPhase]:
        result = await session.execute(
            select(TimeSplitTimerModel)
            .where(TimeSplitTimerModel.time_split_id == split_id)
            .order_by(TimeSplitTimerModel.id)
        )
        return [TimerPhase.model_validate(pm) for pm in result.scalars().all()]

    async def get_by_id(self, split_id: int) -> Optional[TimeSplit]:
        """Get a split with its phases, deleted or not"""
        session = await self._get_session()
        async with session:
            model = await session.get(TimeSplitModel, split_id)
            if model is None:
                return None
            phases = await self._load_phases(session, split_id)
            return TimeSplit(
                id=model.id,
                name=model.name,
                description=model.description,
                deleted=model.deleted,
                phases=phases,
            )

    async def get_all(self, include_deleted: bool = True) -> List[TimeSplit]:
        """Get all splits ordered by id"""
        session = await self._get_session()
        async with session:
            stmt = select(TimeSplitModel).order_by(TimeSplitModel.id)
            if not include_deleted:
                stmt = stmt.where(TimeSplitModel.deleted == False)
            models = (await session.execute(stmt)).scalars().all()

            splits = []
            for m in models:
                splits.append(TimeSplit(
                    id=m.id,
                    name=m.name,
                    description=m.description,
                    deleted=m.deleted,
                    phases=await self._load_phases(session, m.id),
                ))
            return splits

    async def create(self, split: TimeSplit) -> TimeSplit:
        """Create a split and its phases in one transaction"""
        session = await self._get_session()
        async with session:
            model = TimeSplitModel(
                name=split.name,
                description=split.description,
                deleted=split.deleted,
            )
            session.add(model)
            await session.flush()
            # Flush one phase at a time so insertion order is the list order
            for phase in split.phases:
                session.add(TimeSplitTimerModel(
                    time_split_id=model.id,
                    length=phase.length,
                    name=phase.name,
                    work=phase.work,
                ))
                await session.flush()
            await session.commit()
            return split.model_copy(update={"id": model.id})

    async def add_phase(self, split_id: int, phase: TimerPhase) -> None:
        """Append a phase to the end of a split's cycle"""
        session = await self._get_session()
        async with session:
            session.add(TimeSplitTimerModel(
                time_split_id=split_id,
                length=phase.length,
                name=phase.name,
                work=phase.work,
            ))
            await session.commit()

    async def soft_delete(self, split_id: int) -> bool:
        """Flag a split as deleted. Returns False if the id is unknown."""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                update(TimeSplitModel)
                .where(TimeSplitModel.id == split_id)
                .values(deleted=True)
            )
            await session.commit()
            return result.rowcount > 0

    async def is_referenced(self, split_id: int) -> bool:
        """True once any timesheet group uses this split"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimesheetGroupModel.id)
                .where(TimesheetGroupModel.time_split_id == split_id)
                .limit(1)
            )
            return result.first() is not None


class TagRepository(_Repository):
    """
    Handles Tag persistence.
    """

    async def get_by_id(self, tag_id: int) -> Optional[Tag]:
        session = await self._get_session()
        async with session:
            model = await session.get(TagModel, tag_id)
            return Tag.model_validate(model) if model else None

    async def get_by_label(self, label: str) -> Optional[Tag]:
        """Exact, case-sensitive label lookup"""
        session = await self._get_session()
        async with session:
            result = await session.execute(select(TagModel).where(TagModel.tag == label))
            model = result.scalar_one_or_none()
            return Tag.model_validate(model) if model else None

    async def get_all(self, include_deleted: bool = True) -> List[Tag]:
        session = await self._get_session()
        async with session:
            stmt = select(TagModel).order_by(TagModel.id)
            if not include_deleted:
                stmt = stmt.where(TagModel.deleted == False)
            result = await session.execute(stmt)
            return [Tag.model_validate(m) for m in result.scalars().all()]

    async def create(self, tag: Tag) -> Tag:
        """Create a new tag. Raises Conflict if the label is taken."""
        session = await self._get_session()
        async with session:
            model = TagModel(tag=tag.tag, deleted=tag.deleted)
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise Conflict(f"Tag {tag.tag!r} already exists") from e
            await session.refresh(model)
            return Tag.model_validate(model)

    async def soft_delete(self, tag_id: int) -> bool:
        """Flag a tag as deleted. Returns False if the id is unknown."""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                update(TagModel)
                .where(TagModel.id == tag_id)
                .values(deleted=True)
            )
            await session.commit()
            return result.rowcount > 0


class TimesheetGroupRepository(_Repository):
    """
    Handles TimesheetGroup persistence. Groups are never updated or deleted.
    """

    async def create(self, time_split_id: int) -> TimesheetGroup:
        session = await self._get_session()
        async with session:
            model = TimesheetGroupModel(time_split_id=time_split_id)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return TimesheetGroup.model_validate(model)

    async def get_by_id(self, group_id: int) -> Optional[TimesheetGroup]:
        session = await self._get_session()
        async with session:
            model = await session.get(TimesheetGroupModel, group_id)
            return TimesheetGroup.model_validate(model) if model else None

    async def get_all(self, time_split_id: Optional[int] = None) -> List[TimesheetGroup]:
        session = await self._get_session()
        async with session:
            stmt = select(TimesheetGroupModel).order_by(TimesheetGroupModel.id)
            if time_split_id is not None:
                stmt = stmt.where(TimesheetGroupModel.time_split_id == time_split_id)
            result = await session.execute(stmt)
            return [TimesheetGroup.model_validate(m) for m in result.scalars().all()]


class TimesheetRepository(_Repository):
    """
    Append-only store of finalized timesheet entries.

    There is deliberately no update or delete.
    """

    async def append(self, entry: TimesheetEntry) -> TimesheetEntry:
        """
        Insert an entry after checking its invariants in the same transaction.

        Raises:
            NotFound: the group does not exist
            DuplicateStart / DuplicateEnd: the instant is already used by any entry
            Overlap: the interval intersects another entry of the same group
        """
        session = await self._get_session()
        async with session:
            async with session.begin():
                if await session.get(TimesheetGroupModel, entry.timesheet_group) is None:
                    raise NotFound(f"Timesheet group {entry.timesheet_group} not found")

                existing = await session.execute(
                    select(TimesheetModel.start_time)
                    .where(TimesheetModel.start_time == entry.start_time)
                    .limit(1)
                )
                if existing.first() is not None:
                    raise DuplicateStart(f"An entry already starts at {entry.start_time}")

                existing = await session.execute(
                    select(TimesheetModel.end_time)
                    .where(TimesheetModel.end_time == entry.end_time)
                    .limit(1)
                )
                if existing.first() is not None:
                    raise DuplicateEnd(f"An entry already ends at {entry.end_time}")

                if await self._has_overlap(session, entry.timesheet_group,
                                           entry.start_time, entry.end_time):
                    raise Overlap(
                        f"[{entry.start_time}, {entry.end_time}) overlaps an entry "
                        f"of group {entry.timesheet_group}"
                    )

                session.add(TimesheetModel(
                    timesheet_group=entry.timesheet_group,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    work=entry.work,
                ))
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise Conflict(f"Timesheet constraint violated: {e.orig}") from e
            return entry

    @staticmethod
    async def _has_overlap(session: AsyncSession, group_id: int,
                           start_time: datetime, end_time: datetime) -> bool:
        # Overlap logic: (StartA < EndB) and (EndA > StartB)
        query = select(TimesheetModel.start_time).where(
            and_(
                TimesheetModel.timesheet_group == group_id,
                TimesheetModel.start_time < end_time,
                TimesheetModel.end_time > start_time,
            )
        )
        result = await session.execute(query.limit(1))
        return result.first() is not None

    async def get_by_group(self, group_id: int, start_date: Optional[datetime] = None,
                           end_date: Optional[datetime] = None) -> List[TimesheetEntry]:
        """Get all entries of a group by start_time ascending, optionally within a range"""
        session = await self._get_session()
        async with session:
            query = select(TimesheetModel).where(TimesheetModel.timesheet_group == group_id)

            if start_date:
                query = query.where(TimesheetModel.start_time >= start_date)
            if end_date:
                query = query.where(TimesheetModel.end_time <= end_date)

            result = await session.execute(query.order_by(TimesheetModel.start_time))
            return [TimesheetEntry.model_validate(m) for m in result.scalars().all()]

    async def get_between(self, start_date: datetime, end_date: datetime) -> List[TimesheetEntry]:
        """Entries of every group with start >= start_date and end < end_date"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimesheetModel)
                .where(
                    and_(
                        TimesheetModel.start_time >= start_date,
                        TimesheetModel.end_time < end_date,
                    )
                )
                .order_by(TimesheetModel.start_time)
            )
            return [TimesheetEntry.model_validate(m) for m in result.scalars().all()]


class TimesheetTagRepository(_Repository):
    """
    Many-to-many association between timesheet groups and tags.
    """

    async def attach(self, group_id: int, tag_id: int) -> bool:
        """Insert the pair unless present. Returns True if a row was added."""
        session = await self._get_session()
        async with session:
            if await session.get(TimesheetTagModel, (group_id, tag_id)) is not None:
                return False
            session.add(TimesheetTagModel(timesheet_group=group_id, tag_id=tag_id))
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race with a concurrent attach of the same pair
                await session.rollback()
                return False
            return True

    async def detach(self, group_id: int, tag_id: int) -> bool:
        """Remove the pair. Returns True if a row was removed."""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                delete(TimesheetTagModel).where(
                    and_(
                        TimesheetTagModel.timesheet_group == group_id,
                        TimesheetTagModel.tag_id == tag_id,
                    )
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def get_tags(self, group_id: int) -> List[Tag]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TagModel)
                .join(TimesheetTagModel, TimesheetTagModel.tag_id == TagModel.id)
                .where(TimesheetTagModel.timesheet_group == group_id)
                .order_by(TagModel.id)
            )
            return [Tag.model_validate(m) for m in result.scalars().all()]

    async def get_groups(self, tag_id: int) -> List[TimesheetGroup]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimesheetGroupModel)
                .join(TimesheetTagModel,
                      TimesheetTagModel.timesheet_group == TimesheetGroupModel.id)
                .where(TimesheetTagModel.tag_id == tag_id)
                .order_by(TimesheetGroupModel.id)
            )
            return [TimesheetGroup.model_validate(m) for m in result.scalars().all()]

    async def count(self, group_id: Optional[int] = None) -> int:
        """Number of association rows, optionally for one group"""
        session = await self._get_session()
        async with session:
            stmt = select(func.count()).select_from(TimesheetTagModel)
            if group_id is not None:
                stmt = stmt.where(TimesheetTagModel.timesheet_group == group_id)
            return (await session.execute(stmt)).scalar_one()
