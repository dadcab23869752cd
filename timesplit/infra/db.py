"""
SQLAlchemy database models and configuration.

Architecture Decision: Why SQLAlchemy?
- Provides ORM for cleaner code and prevents SQL injection
- Supports async operations for non-blocking database access
- Easy to migrate to PostgreSQL or DuckDB if needed

The tables reproduce the persisted timesheet schema column for column.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import os

from sqlalchemy import (
    BigInteger, Boolean, DateTime, ForeignKey, Integer, Interval, String, event,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# BIGINT does not alias the rowid on SQLite, so it would never autoincrement
GroupId = BigInteger().with_variant(Integer, "sqlite")


# Base class for all models
class Base(DeclarativeBase):
    pass


class TimeSplitModel(Base):
    """SQLAlchemy model for TimeSplit entity"""
    __tablename__ = "time_split"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)


class TimeSplitTimerModel(Base):
    """
    SQLAlchemy model for TimerPhase entity.

    `id` only records insertion order; it never leaves the infra layer.
    """
    __tablename__ = "time_split_timer"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    time_split_id: Mapped[int] = mapped_column(Integer, ForeignKey("time_split.id"), nullable=False)
    length: Mapped[timedelta] = mapped_column("len", Interval, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    work: Mapped[bool] = mapped_column(Boolean, nullable=False)


class TimesheetGroupModel(Base):
    """SQLAlchemy model for TimesheetGroup entity"""
    __tablename__ = "timesheet_group"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column("timesheet_group", GroupId, primary_key=True, autoincrement=True)
    time_split_id: Mapped[int] = mapped_column(Integer, ForeignKey("time_split.id"), nullable=False)


class TimesheetModel(Base):
    """SQLAlchemy model for TimesheetEntry entity"""
    __tablename__ = "timesheet"

    timesheet_group: Mapped[int] = mapped_column(
        GroupId, ForeignKey("timesheet_group.timesheet_group"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(DateTime, primary_key=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, unique=True, nullable=False)
    work: Mapped[bool] = mapped_column(Boolean, nullable=False)


class TagModel(Base):
    """SQLAlchemy model for Tag entity"""
    __tablename__ = "tag"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tag: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)


class TimesheetTagModel(Base):
    """Join table between TimesheetGroup and Tag"""
    __tablename__ = "timesheet_tag"

    timesheet_group: Mapped[int] = mapped_column(
        GroupId, ForeignKey("timesheet_group.timesheet_group"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tag.id"), primary_key=True)


class MigrationModel(Base):
    """Single-row table holding the index of the last applied migration"""
    __tablename__ = "migrations"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseEngine:
    """
    Manages database connection and session lifecycle.

    Singleton pattern ensures only one engine exists per application.
    Tests build their own instances and inject them into repositories.
    """
    _instance: Optional['DatabaseEngine'] = None

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def get_instance(cls, db_url: Optional[str] = None) -> 'DatabaseEngine':
        """Get or create the database engine instance"""
        if cls._instance is None:
            if db_url is None:
                # Default: Store in user's AppData on Windows, ~/.local/share on Linux
                if os.name == 'nt':  # Windows
                    data_dir = Path(os.getenv('APPDATA')) / 'TimeSplit'
                else:  # Linux/Mac
                    data_dir = Path.home() / '.local' / 'share' / 'timesplit'

                data_dir.mkdir(parents=True, exist_ok=True)
                db_path = data_dir / 'timesplit.db'
                db_url = f"sqlite+aiosqlite:///{db_path}"

            cls._instance = cls(db_url)
        return cls._instance

    async def create_tables(self):
        """Create all tables in the database"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def get_session(self) -> AsyncSession:
        """Get a new database session"""
        return self.session_factory()

    async def dispose(self):
        await self.engine.dispose()


# Convenience functions
def get_engine(db_url: Optional[str] = None) -> DatabaseEngine:
    """Get the database engine instance"""
    return DatabaseEngine.get_instance(db_url)


async def init_db(db_url: Optional[str] = None) -> DatabaseEngine:
    """Initialize the database (create tables and apply migrations)"""
    from .migrations import apply_migrations

    engine = get_engine(db_url)
    await engine.create_tables()
    await apply_migrations(engine)
    return engine
