"""
Tests for the append-only timesheet ledger.
"""

import asyncio
import datetime
import pytest

from timesplit.domain.errors import (
    Conflict, DuplicateEnd, DuplicateStart, InvalidInterval, NotFound, Overlap, TimeSplitError,
)
from timesplit.domain.models import TimesheetEntry
from conftest import T0, minutes


def entry(group_id, start, length, work=True):
    return TimesheetEntry(timesheet_group=group_id, start_time=start,
                          end_time=start + length, work=work)


@pytest.fixture
def groups(ledger):
    async def _make(n=2):
        return [await ledger.create_group(1) for _ in range(n)]
    return _make


@pytest.mark.asyncio
async def test_groups_get_increasing_ids(ledger):
    first = await ledger.create_group(1)
    second = await ledger.create_group(2)
    assert second.id > first.id
    assert await ledger.get_group(second.id) == second
    assert await ledger.list_groups(time_split_id=2) == [second]


@pytest.mark.asyncio
async def test_append_and_list_in_start_order(ledger, groups):
    g, _ = await groups()
    await ledger.append(g.id, entry(g.id, T0 + minutes(30), minutes(5), work=False))
    await ledger.append(g.id, entry(g.id, T0, minutes(25)))

    entries = await ledger.list_entries(g.id)
    assert [e.start_time for e in entries] == [T0, T0 + minutes(30)]
    assert [e.work for e in entries] == [True, False]


@pytest.mark.asyncio
async def test_duplicate_start_in_other_group_conflicts(ledger, groups):
    g1, g2 = await groups()
    await ledger.append(g1.id, entry(g1.id, T0, minutes(25)))

    with pytest.raises(DuplicateStart) as exc_info:
        await ledger.append(g2.id, entry(g2.id, T0, minutes(10)))
    assert isinstance(exc_info.value, Conflict)

    assert await ledger.list_entries(g2.id) == []
    assert len(await ledger.list_entries(g1.id)) == 1


@pytest.mark.asyncio
async def test_duplicate_end_conflicts(ledger, groups):
    g1, g2 = await groups()
    await ledger.append(g1.id, entry(g1.id, T0, minutes(25)))

    with pytest.raises(DuplicateEnd):
        await ledger.append(g2.id, entry(g2.id, T0 + minutes(5), minutes(20)))
    assert await ledger.list_entries(g2.id) == []


@pytest.mark.asyncio
async def test_overlap_within_group_is_rejected(ledger, groups):
    g, _ = await groups()
    await ledger.append(g.id, entry(g.id, T0, minutes(25)))

    with pytest.raises(Overlap):
        await ledger.append(g.id, entry(g.id, T0 + minutes(20), minutes(10)))
    assert len(await ledger.list_entries(g.id)) == 1


@pytest.mark.asyncio
async def test_overlap_across_groups_is_allowed(ledger, groups):
    g1, g2 = await groups()
    await ledger.append(g1.id, entry(g1.id, T0, minutes(25)))
    await ledger.append(g2.id, entry(g2.id, T0 + minutes(1), minutes(25)))
    assert len(await ledger.entries_between(T0, T0 + minutes(60))) == 2


@pytest.mark.asyncio
async def test_adjacent_entries_do_not_overlap(ledger, groups):
    g, _ = await groups()
    await ledger.append(g.id, entry(g.id, T0, minutes(25)))
    await ledger.append(g.id, entry(g.id, T0 + minutes(25), minutes(5), work=False))
    assert len(await ledger.list_entries(g.id)) == 2


@pytest.mark.asyncio
async def test_append_to_unknown_group(ledger):
    with pytest.raises(NotFound):
        await ledger.append(999, entry(999, T0, minutes(25)))


def test_entry_must_end_after_start():
    with pytest.raises(ValueError):
        TimesheetEntry(timesheet_group=1, start_time=T0, end_time=T0, work=True)


@pytest.mark.asyncio
async def test_timestamps_are_stored_with_millisecond_resolution(ledger, groups):
    g, _ = await groups()
    start = T0.replace(microsecond=123456)
    stored = await ledger.append(g.id, entry(g.id, start, minutes(1)))

    assert stored.start_time == T0.replace(microsecond=123000)
    assert (await ledger.list_entries(g.id))[0].start_time == T0.replace(microsecond=123000)


@pytest.mark.asyncio
async def test_interval_within_one_millisecond_is_rejected(ledger, groups):
    g, _ = await groups()
    within = TimesheetEntry(timesheet_group=g.id, start_time=T0.replace(microsecond=100),
                            end_time=T0.replace(microsecond=900), work=True)

    with pytest.raises(InvalidInterval) as exc_info:
        await ledger.append(g.id, within)
    assert isinstance(exc_info.value, TimeSplitError)
    assert await ledger.list_entries(g.id) == []

@pytest.mark.asyncio
async def test_aware_timestamps_are_normalized_to_utc(ledger, groups):
    g, _ = await groups()
    cet = datetime.timezone(datetime.timedelta(hours=1))
    start = T0.replace(tzinfo=cet)
    stored = await ledger.append(g.id, entry(g.id, start, minutes(1)))
    assert stored.start_time == T0 - datetime.timedelta(hours=1)


@pytest.mark.asyncio
async def test_totals(ledger, groups):
    g, _ = await groups()
    await ledger.append(g.id, entry(g.id, T0, minutes(25)))
    await ledger.append(g.id, entry(g.id, T0 + minutes(25), minutes(5), work=False))
    await ledger.append(g.id, entry(g.id, T0 + minutes(30), minutes(25)))

    assert await ledger.total_work_time(g.id) == minutes(50)
    assert await ledger.total_break_time(g.id) == minutes(5)


@pytest.mark.asyncio
async def test_totals_of_unknown_group(ledger):
    with pytest.raises(NotFound):
        await ledger.total_work_time(999)


@pytest.mark.asyncio
async def test_list_entries_within_range(ledger, groups):
    g, _ = await groups()
    for i in range(4):
        await ledger.append(g.id, entry(g.id, T0 + minutes(10 * i), minutes(10)))

    inside = await ledger.list_entries(g.id, start=T0 + minutes(10), end=T0 + minutes(30))
    assert [e.start_time for e in inside] == [T0 + minutes(10), T0 + minutes(20)]


@pytest.mark.asyncio
async def test_entries_between_excludes_entry_ending_at_upper_bound(ledger, groups):
    g, _ = await groups()
    await ledger.append(g.id, entry(g.id, T0, minutes(10)))
    await ledger.append(g.id, entry(g.id, T0 + minutes(10), minutes(10)))

    found = await ledger.entries_between(T0, T0 + minutes(20))
    assert [e.start_time for e in found] == [T0]


@pytest.mark.asyncio
async def test_concurrent_appends_with_same_start(ledger, groups):
    g1, g2 = await groups()
    results = await asyncio.gather(
        ledger.append(g1.id, entry(g1.id, T0, minutes(25))),
        ledger.append(g2.id, entry(g2.id, T0, minutes(30))),
        return_exceptions=True,
    )

    assert sum(isinstance(r, TimesheetEntry) for r in results) == 1
    assert sum(isinstance(r, DuplicateStart) for r in results) == 1
    assert len(await ledger.entries_between(T0, T0 + minutes(60))) == 1
