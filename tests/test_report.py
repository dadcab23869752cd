"""
Tests for the session report.
"""

import pytest

from timesplit.services import ReportService
from conftest import T0, minutes


@pytest.mark.asyncio
async def test_session_report(db_engine, catalog, session_engine, tag_index, tmp_path):
    group = await session_engine.start(1, now=T0)
    await session_engine.tick(group.id, now=T0 + minutes(30))
    await session_engine.stop(group.id, now=T0 + minutes(40))
    tag = await catalog.create_tag("thesis")
    await tag_index.attach(group.id, tag.id)

    output_file = tmp_path / "reports" / "session.txt"
    report = await ReportService(db_engine).generate_report(group.id, output_file=output_file)

    assert f"Session {group.id}: Pomodoro" in report
    assert "Tags: thesis" in report
    assert "2026-01-05 09:00:00 - 2026-01-05 09:25:00" in report
    assert "Total work:  00:35:00" in report
    assert "Total break: 00:05:00" in report
    assert output_file.read_text(encoding="utf-8") == report


@pytest.mark.asyncio
async def test_report_of_empty_session(db_engine, session_engine):
    group = await session_engine.start(2, now=T0)
    report = await ReportService(db_engine).generate_report(group.id)

    assert "Time Magazine" in report
    assert "No entries recorded." in report
    assert "Tags: -" in report
