from __future__ import annotations

import asyncio
import logging

import pytest

from keeperboard.services.errors import ReapFailure
from keeperboard.services.periods import Cadence
from keeperboard.services.retention import DEFAULT_RETENTION, RetentionReaper


def test_default_windows_keep_more_periods_for_finer_cadences():
    assert DEFAULT_RETENTION == {Cadence.DAILY: 30, Cadence.WEEKLY: 12, Cadence.MONTHLY: 12}


@pytest.mark.parametrize(
    ("new_version", "expected"),
    [(2, None), (31, None), (32, 2), (100, 70)],
)
def test_cutoff_skips_until_something_is_reclaimable(memory_store, new_version, expected):
    reaper = RetentionReaper(memory_store)
    assert reaper.cutoff(new_version, Cadence.DAILY) == expected


def test_cutoff_without_window_never_deletes(memory_store):
    reaper = RetentionReaper(memory_store, retention={Cadence.DAILY: 5})
    assert reaper.cutoff(500, Cadence.MONTHLY) is None


@pytest.mark.asyncio
async def test_reap_deletes_versions_below_cutoff(memory_store):
    reaper = RetentionReaper(memory_store, retention={Cadence.WEEKLY: 4}, background=False)

    deleted = await reaper.reap("lb", 10, Cadence.WEEKLY)

    assert memory_store.purges == [("lb", 6)]
    assert deleted == 5


@pytest.mark.asyncio
async def test_reap_swallows_store_failures(memory_store):
    memory_store.purge_error = ReapFailure("partial delete")
    reaper = RetentionReaper(memory_store, retention={Cadence.DAILY: 2})

    assert await reaper.reap("lb", 10, Cadence.DAILY) == 0
    assert memory_store.purges == []


@pytest.mark.asyncio
async def test_background_trigger_is_detached_until_drained(memory_store):
    reaper = RetentionReaper(memory_store, retention={Cadence.DAILY: 2}, background=True)

    await reaper.trigger("lb", 10, Cadence.DAILY)
    assert memory_store.purges == []

    await reaper.drain()
    assert memory_store.purges == [("lb", 8)]


@pytest.mark.asyncio
async def test_background_crash_is_logged(memory_store, caplog):
    memory_store.purge_error = RuntimeError("unexpected")
    reaper = RetentionReaper(memory_store, retention={Cadence.DAILY: 2}, background=True)

    with caplog.at_level(logging.ERROR, logger="keeperboard.services.retention"):
        await reaper.trigger("lb", 10, Cadence.DAILY)
        await reaper.drain()
        await asyncio.sleep(0)

    assert "Background retention cleanup crashed" in caplog.text
    assert reaper._tasks == set()
