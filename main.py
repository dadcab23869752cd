#!/usr/bin/env python

"""
Time Split Engine - Main Entry Point

Bootstraps the timesheet database (schema and default splits) and lists the
time splits a user can start, or prints the report of a recorded session.

Usage:
    python main.py
    python main.py report <group_id>

Requirements:
    - Python 3.10+
    - See pyproject.toml for dependencies
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add app directory to path
sys.path.insert(0, str(Path(__file__).parent))

from timesplit.infra.config import get_settings
from timesplit.infra.db import init_db
from timesplit.services import CatalogService, ReportService

logger = logging.getLogger("timesplit")


async def run(argv) -> int:
    settings = get_settings()
    engine = await init_db(settings.get_db_url())

    try:
        if len(argv) == 2 and argv[0] == "report":
            print(await ReportService(engine).generate_report(int(argv[1])))
            return 0

        catalog = CatalogService(engine)
        for split in await catalog.list_selectable_splits():
            phases = ", ".join(
                f"{p.name} {int(p.length.total_seconds() // 60)}m" for p in split.phases
            )
            print(f"{split.id:>3}  {split.name:<16} {phases}")
        return 0
    finally:
        await engine.dispose()


def main():
    """Main entry point"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug(f"Database: {settings.get_db_url()}")
    return asyncio.run(run(sys.argv[1:]))


if __name__ == "__main__":
    sys.exit(main())
