"""
Catalog Service - TimeSplit and Tag definitions.

The catalog is a small mutable table: definitions are created
administratively and only ever soft-deleted, so historical timesheets keep
pointing at valid rows. Split lookups are served from a read-through cache.
"""

import asyncio
import logging
import weakref
from typing import Dict, List, Optional

from timesplit.domain.errors import Conflict, InvalidSplit, NotFound
from timesplit.domain.models import PAUSED_SPLIT_ID, TimeSplit, TimerPhase, Tag
from timesplit.infra.db import DatabaseEngine, get_engine
from timesplit.infra.repository import TimeSplitRepository, TagRepository

logger = logging.getLogger(__name__)


class _SplitCache:
    def __init__(self):
        self.splits: Dict[int, TimeSplit] = {}
        self.lock = asyncio.Lock()


# One cache per database, shared by every CatalogService using it
_split_caches: "weakref.WeakKeyDictionary[DatabaseEngine, _SplitCache]" = weakref.WeakKeyDictionary()


class CatalogService:
    """
    Read-mostly store of split and tag definitions.
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None):
        self.engine = engine
        self.split_repo = TimeSplitRepository(engine)
        self.tag_repo = TagRepository(engine)

    @property
    def _cache(self) -> _SplitCache:
        engine = self.engine or get_engine()
        cache = _split_caches.get(engine)
        if cache is None:
            cache = _split_caches[engine] = _SplitCache()
        return cache

    async def _load_split(self, split_id: int) -> Optional[TimeSplit]:
        cache = self._cache
        async with cache.lock:
            split = cache.splits.get(split_id)
            if split is None:
                split = await self.split_repo.get_by_id(split_id)
                if split is not None:
                    cache.splits[split_id] = split
            return split

    async def _invalidate(self, split_id: int) -> None:
        cache = self._cache
        async with cache.lock:
            cache.splits.pop(split_id, None)

    async def get_time_split(self, split_id: int, include_deleted: bool = False) -> TimeSplit:
        """
        Get a split with its ordered phases.

        Raises:
            NotFound: unknown id, or deleted and include_deleted is False
        """
        split = await self._load_split(split_id)
        if split is None or (split.deleted and not include_deleted):
            raise NotFound(f"Time split {split_id} not found")
        return split

    async def list_time_splits(self, include_deleted: bool = False) -> List[TimeSplit]:
        """All splits ordered by id, including the reserved paused split"""
        return await self.split_repo.get_all(include_deleted=include_deleted)

    async def list_selectable_splits(self) -> List[TimeSplit]:
        """Splits an end user may pick: not deleted and not the paused sentinel"""
        splits = await self.split_repo.get_all(include_deleted=False)
        return [s for s in splits if s.id != PAUSED_SPLIT_ID]

    async def create_time_split(self, name: str, phases: List[TimerPhase],
                                description: Optional[str] = None) -> TimeSplit:
        """Create a split. A split needs at least one phase."""
        if not phases:
            raise InvalidSplit(f"Time split {name!r} has no phases")
        split = await self.split_repo.create(
            TimeSplit(name=name, description=description, phases=phases)
        )
        logger.info(f"Created time split {split.id} ({name}) with {len(phases)} phases")
        return split

    async def add_phase(self, split_id: int, phase: TimerPhase) -> TimeSplit:
        """
        Append a phase to a split that no session has used yet.

        Raises:
            NotFound: unknown split
            Conflict: a timesheet group already references the split
        """
        await self.get_time_split(split_id, include_deleted=True)
        if await self.split_repo.is_referenced(split_id):
            raise Conflict(f"Time split {split_id} is in use; its phases are frozen")
        await self.split_repo.add_phase(split_id, phase)
        await self._invalidate(split_id)
        return await self.get_time_split(split_id, include_deleted=True)

    async def soft_delete_time_split(self, split_id: int) -> None:
        """Hide a split from selection. Idempotent."""
        if not await self.split_repo.soft_delete(split_id):
            raise NotFound(f"Time split {split_id} not found")
        await self._invalidate(split_id)
        logger.info(f"Soft-deleted time split {split_id}")

    async def create_tag(self, label: str) -> Tag:
        """
        Create a tag. Labels are unique and case-sensitive.

        Raises:
            Conflict: a tag with this exact label exists (deleted or not)
        """
        if await self.tag_repo.get_by_label(label) is not None:
            raise Conflict(f"Tag {label!r} already exists")
        tag = await self.tag_repo.create(Tag(tag=label))
        logger.info(f"Created tag {tag.id} ({label})")
        return tag

    async def get_tag(self, tag_id: int, include_deleted: bool = True) -> Tag:
        tag = await self.tag_repo.get_by_id(tag_id)
        if tag is None or (tag.deleted and not include_deleted):
            raise NotFound(f"Tag {tag_id} not found")
        return tag

    async def list_tags(self, include_deleted: bool = False) -> List[Tag]:
        return await self.tag_repo.get_all(include_deleted=include_deleted)

    async def soft_delete_tag(self, tag_id: int) -> None:
        """Hide a tag. Idempotent; existing associations are kept."""
        if not await self.tag_repo.soft_delete(tag_id):
            raise NotFound(f"Tag {tag_id} not found")
        logger.info(f"Soft-deleted tag {tag_id}")
