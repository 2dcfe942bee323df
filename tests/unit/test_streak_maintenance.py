"""Unit tests for the streak maintenance sweep"""
import asyncio

import pytest
from datetime import datetime, timezone

from src.scheduler.streak_maintenance import StreakMaintenanceJob

LAST_ACTIVE = datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_run_once_resets_only_lapsed_streaks(service, make_profile):
    await make_profile("lapsed", streak_count=5, last_active_at=LAST_ACTIVE, streak_freeze_tokens=0)
    await make_profile("frozen", streak_count=8, last_active_at=LAST_ACTIVE, streak_freeze_tokens=2)
    await make_profile("current", streak_count=3, last_active_at=datetime(2024, 1, 12, 9, 0, tzinfo=timezone.utc))
    await make_profile("new")

    summary = await StreakMaintenanceJob(service).run_once(datetime(2024, 1, 12, 10, 0, tzinfo=timezone.utc))

    assert summary == {"checked": 4, "reset": 1, "failed": 0}
    assert (await service.get_profile("lapsed")).streak_count == 0
    assert (await service.get_profile("frozen")).streak_count == 8
    assert (await service.get_profile("current")).streak_count == 3


@pytest.mark.asyncio
async def test_run_once_resets_when_freeze_no_longer_covers(service, make_profile):
    await make_profile(
        "frozen", streak_count=8, longest_streak=8, last_active_at=LAST_ACTIVE, streak_freeze_tokens=2
    )

    summary = await StreakMaintenanceJob(service).run_once(datetime(2024, 1, 14, 10, 0, tzinfo=timezone.utc))

    assert summary["reset"] == 1
    profile = await service.get_profile("frozen")
    assert profile.streak_count == 0
    assert profile.longest_streak == 8
    assert profile.streak_freeze_tokens == 2


@pytest.mark.asyncio
async def test_run_once_is_idempotent(service, make_profile):
    await make_profile("lapsed", streak_count=5, last_active_at=LAST_ACTIVE, streak_freeze_tokens=0)
    job = StreakMaintenanceJob(service)
    now = datetime(2024, 1, 13, 10, 0, tzinfo=timezone.utc)

    assert (await job.run_once(now))["reset"] == 1
    assert (await job.run_once(now))["reset"] == 0


@pytest.mark.asyncio
async def test_run_forever_until_cancelled(service, make_profile):
    await make_profile("lapsed", streak_count=5, last_active_at=LAST_ACTIVE, streak_freeze_tokens=0)

    task = asyncio.create_task(StreakMaintenanceJob(service).run_forever(interval=3600))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (await service.get_profile("lapsed")).streak_count == 0


@pytest.mark.asyncio
async def test_run_once_skips_corrupt_profile(service, store, make_profile):
    await store.set("users", "bad", {"user_id": "bad", "xp": -5})
    await make_profile("lapsed", streak_count=5, last_active_at=LAST_ACTIVE, streak_freeze_tokens=0)

    summary = await StreakMaintenanceJob(service).run_once(datetime(2024, 1, 12, 10, 0, tzinfo=timezone.utc))

    assert summary == {"checked": 2, "reset": 1, "failed": 1}
    assert (await service.get_profile("lapsed")).streak_count == 0
