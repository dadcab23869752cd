"""
Tag Index - many-to-many association between sessions and tags.
"""

import logging
from typing import List, Optional, Set

from timesplit.domain.errors import NotFound
from timesplit.domain.models import Tag, TimesheetGroup
from timesplit.infra.db import DatabaseEngine
from timesplit.infra.repository import (
    TagRepository, TimesheetGroupRepository, TimesheetTagRepository,
)

logger = logging.getLogger(__name__)


class TagIndex:
    """
    Attach and detach tags on timesheet groups.

    Soft-deleted tags stay attachable and detachable so history can be edited.
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None):
        self.link_repo = TimesheetTagRepository(engine)
        self.tag_repo = TagRepository(engine)
        self.group_repo = TimesheetGroupRepository(engine)

    async def _require_group(self, group_id: int) -> TimesheetGroup:
        group = await self.group_repo.get_by_id(group_id)
        if group is None:
            raise NotFound(f"Timesheet group {group_id} not found")
        return group

    async def _require_tag(self, tag_id: int) -> Tag:
        tag = await self.tag_repo.get_by_id(tag_id)
        if tag is None:
            raise NotFound(f"Tag {tag_id} not found")
        return tag

    async def attach(self, group_id: int, tag_id: int) -> None:
        """Associate a tag with a group. Attaching twice is a no-op."""
        await self._require_group(group_id)
        await self._require_tag(tag_id)
        if await self.link_repo.attach(group_id, tag_id):
            logger.info(f"Tagged group {group_id} with tag {tag_id}")

    async def detach(self, group_id: int, tag_id: int) -> None:
        """Remove an association. Detaching a missing pair is a no-op."""
        await self._require_group(group_id)
        await self._require_tag(tag_id)
        if await self.link_repo.detach(group_id, tag_id):
            logger.info(f"Removed tag {tag_id} from group {group_id}")

    async def tags_for(self, group_id: int) -> Set[Tag]:
        await self._require_group(group_id)
        return set(await self.link_repo.get_tags(group_id))

    async def groups_with_tag(self, tag_id: int) -> List[TimesheetGroup]:
        await self._require_tag(tag_id)
        return await self.link_repo.get_groups(tag_id)
