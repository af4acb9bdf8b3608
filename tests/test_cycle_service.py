import os
import sys
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from clock import SystemClock
from cycle_service import CycleService
from db import WorkoutRepository, WorkoutLogRepository, StoreError
from events import EventBus, WORKOUT_UPDATED
from stats_service import StatisticsService

NOW = datetime.datetime(2026, 6, 15, 12, 0, tzinfo=datetime.timezone.utc).timestamp()


class BrokenStatisticsService(StatisticsService):
    async def weekly_stats(self, user_id):
        raise StoreError("no such table: workout_logs")


async def _setup(tmp_path, stats_cls=StatisticsService):
    db_file = str(tmp_path / "pulse.db")
    clock = SystemClock("UTC", time_func=lambda: NOW)
    workouts = WorkoutRepository(db_file)
    logs = WorkoutLogRepository(db_file)
    events = EventBus()
    service = CycleService(workouts, stats_cls(logs, clock=clock), events)
    ids = [await workouts.create("u1", title) for title in ("A", "B", "C")]
    return service, workouts, logs, events, ids


def test_is_complete_counts_the_finished_workout():
    assert CycleService.is_complete([(1, "completed"), (2, "completed"), (3, "pending")], 3)
    assert not CycleService.is_complete([(1, "completed"), (2, "pending"), (3, "pending")], 3)
    assert CycleService.is_complete([(1, "completed")], 1)
    assert CycleService.is_complete([(1, "pending")], 1)
    assert not CycleService.is_complete([], 1)


@pytest.mark.asyncio
async def test_last_workout_of_rotation_resets_cycle(tmp_path):
    service, workouts, logs, events, (a, b, c) = await _setup(tmp_path)
    seen = []
    events.subscribe(WORKOUT_UPDATED, seen.append)
    await workouts.set_status(a, "completed")
    await workouts.set_status(b, "completed")
    await logs.add("u1", a, 40, 240, "Ana", "2026-06-14T10:00:00+00:00")
    await logs.add("u1", b, 50, 300, "Ana", "2026-06-15T09:00:00+00:00")

    completed, stats = await service.check_and_reset("u1", c)

    assert completed is True
    assert stats["total_workouts"] == 2
    assert stats["total_minutes"] == 90
    assert stats["streak"] == 2
    assert sorted(await workouts.fetch_statuses("u1")) == [
        (a, "pending"),
        (b, "pending"),
        (c, "pending"),
    ]
    assert seen == [{"user_id": "u1", "cycle_completed": True}]


@pytest.mark.asyncio
async def test_incomplete_rotation_is_left_alone(tmp_path):
    service, workouts, _, _, (a, b, c) = await _setup(tmp_path)
    await workouts.set_status(a, "completed")
    completed, stats = await service.check_and_reset("u1", b)
    assert completed is False
    assert stats is None
    assert sorted(await workouts.fetch_statuses("u1")) == [
        (a, "completed"),
        (b, "pending"),
        (c, "pending"),
    ]


@pytest.mark.asyncio
async def test_stats_failure_still_resets(tmp_path):
    service, workouts, _, _, (a, b, c) = await _setup(tmp_path, BrokenStatisticsService)
    await workouts.set_status(a, "completed")
    await workouts.set_status(b, "completed")
    completed, stats = await service.check_and_reset("u1", c)
    assert completed is True
    assert stats == CycleService.EMPTY_STATS
    assert {s for _, s in await workouts.fetch_statuses("u1")} == {"pending"}


@pytest.mark.asyncio
async def test_other_users_rotation_is_untouched(tmp_path):
    service, workouts, _, _, (a, b, c) = await _setup(tmp_path)
    other = await workouts.create("u2", "X")
    await workouts.set_status(other, "completed")
    for wid in (a, b):
        await workouts.set_status(wid, "completed")
    await service.check_and_reset("u1", c)
    assert await workouts.fetch_statuses("u2") == [(other, "completed")]
