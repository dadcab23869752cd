"""
Versioned data migrations.

The `migrations` table holds the index of the last applied migration
(-1 on a fresh database). Each migration runs at most once, in order,
inside its own transaction together with the version bump.
"""

from datetime import timedelta
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from timesplit.domain.models import PAUSED_SPLIT_ID, PAUSED_SPLIT_NAME
from .db import DatabaseEngine, MigrationModel, TimeSplitModel, TimeSplitTimerModel

logger = logging.getLogger(__name__)


DEFAULT_SPLITS = [
    ("Pomodoro", "Classic, tried, and true", [
        (25, "Work", True),
        (5, "Break", False),
        (25, "Work", True),
        (15, "Long Break", False),
    ]),
    ("Time Magazine", "Based on studies", [
        (52, "Work", True),
        (17, "Break", False),
    ]),
    ("Tyson Split", "For those with extra dog in 'em", [
        (90, "Work", True),
        (10, "Break", False),
    ]),
    ("Build Night", "We burnin' out tonight baby!", [
        (120, "Work", True),
        (10, "Break", False),
    ]),
]


async def _seed_default_splits(conn: AsyncConnection) -> None:
    """Reserved paused split (id 0) plus the stock splits"""
    await conn.execute(insert(TimeSplitModel).values(id=PAUSED_SPLIT_ID, name=PAUSED_SPLIT_NAME))
    await conn.execute(insert(TimeSplitTimerModel.__table__).values(
        time_split_id=PAUSED_SPLIT_ID, len=timedelta(0), name=PAUSED_SPLIT_NAME, work=False
    ))

    for name, description, phases in DEFAULT_SPLITS:
        result = await conn.execute(
            insert(TimeSplitModel).values(name=name, description=description)
        )
        split_id = result.inserted_primary_key[0]
        # One statement per phase keeps the rowid order equal to the list order
        for minutes, phase_name, work in phases:
            await conn.execute(insert(TimeSplitTimerModel.__table__).values(
                time_split_id=split_id,
                len=timedelta(minutes=minutes),
                name=phase_name,
                work=work,
            ))


MIGRATIONS = [
    _seed_default_splits,
]


async def get_version(conn: AsyncConnection) -> int:
    version = (await conn.execute(select(MigrationModel.version))).scalar_one_or_none()
    if version is None:
        await conn.execute(insert(MigrationModel).values(version=-1))
        return -1
    return version


async def apply_migrations(engine: DatabaseEngine) -> int:
    """
    Apply every pending migration.

    Returns:
        The version after applying, i.e. the index of the last migration.
    """
    async with engine.engine.begin() as conn:
        version = await get_version(conn)

    for index in range(version + 1, len(MIGRATIONS)):
        async with engine.engine.begin() as conn:
            await MIGRATIONS[index](conn)
            await conn.execute(update(MigrationModel).values(version=index))
        logger.info(f"Applied migration {index}: {MIGRATIONS[index].__name__}")
        version = index

    return version
