"""
Pytest configuration and fixtures.
"""

import sys
import datetime
from pathlib import Path
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from timesplit.infra.db import DatabaseEngine
from timesplit.infra.migrations import apply_migrations
from timesplit.services import CatalogService, SessionEngine, TagIndex, TimesheetLedger

T0 = datetime.datetime(2026, 1, 5, 9, 0, 0)


def minutes(n: float) -> datetime.timedelta:
    return datetime.timedelta(minutes=n)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at the test directory instead of the user's home"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TIMESPLIT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("TIMESPLIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr("timesplit.infra.config._settings", None)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh SQLite database with the default splits seeded"""
    engine = DatabaseEngine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await engine.create_tables()
    await apply_migrations(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def catalog(db_engine):
    return CatalogService(db_engine)


@pytest.fixture
def ledger(db_engine):
    return TimesheetLedger(db_engine)


@pytest.fixture
def tag_index(db_engine):
    return TagIndex(db_engine)


@pytest.fixture
def session_engine(db_engine, catalog, ledger):
    return SessionEngine(catalog=catalog, ledger=ledger)


@pytest.fixture
def t0():
    return T0
