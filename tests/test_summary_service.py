import os
import sys
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from clock import SystemClock
from db import PersonalRecordRepository, ExerciseHistoryRepository, StoreError
from history_service import ExerciseHistoryService
from record_service import PersonalRecordService
from summary_service import SessionSummaryBuilder

NOW = datetime.datetime(2026, 6, 15, 12, 0, tzinfo=datetime.timezone.utc).timestamp()
EARLIER = "2026-06-08T12:00:00+00:00"


class FailingRecordRepository(PersonalRecordRepository):
    async def fetch_for_user(self, user_id):
        raise StoreError("database is locked")


def _builder(tmp_path, record_cls=PersonalRecordRepository):
    db_file = str(tmp_path / "pulse.db")
    clock = SystemClock("UTC", time_func=lambda: NOW)
    record_repo = record_cls(db_file)
    history_repo = ExerciseHistoryRepository(db_file)
    builder = SessionSummaryBuilder(
        PersonalRecordService(record_repo, clock),
        ExerciseHistoryService(history_repo, clock),
    )
    return builder, record_repo, history_repo


def _exercise(name, *weights):
    return {"name": name, "sets": [{"reps": 8, "weight": w, "completed": True} for w in weights]}


def test_max_weights_picks_heaviest_set():
    performed = SessionSummaryBuilder.max_weights(
        [
            {"name": "Supino", "sets": [{"reps": 10, "weight": 60}, {"reps": 6, "weight": 70}, {"reps": 8, "weight": None}]},
            {"name": "Flexão", "sets": [{"reps": 15, "weight": None}]},
            {"name": "Corrida", "weight": "12.5", "reps": 1},
        ]
    )
    assert [(p["name"], p["weight"], p["reps"]) for p in performed] == [
        ("Supino", 70.0, 6),
        ("Flexão", 0.0, 0),
        ("Corrida", 12.5, 1),
    ]


@pytest.mark.asyncio
async def test_improvement_reported_when_not_a_record(tmp_path):
    builder, record_repo, history_repo = _builder(tmp_path)
    await record_repo.upsert("u1", "Remada", 100, 5, "2026-05-01")
    await history_repo.bulk_add("u1", [{"exercise_name": "Remada", "weight": 60, "date": EARLIER}])
    summary = await builder.build("u1", 3, 30, 180, [_exercise("Remada", 65, 70)])
    assert summary["prs"] == []
    assert summary["improvements"] == [
        {"name": "Remada", "old_weight": 60.0, "new_weight": 70.0, "diff": 10.0}
    ]
    assert summary["duration"] == 30
    assert summary["calories"] == 180
    assert summary["cycle_completed"] is False
    assert summary["weekly_stats"] is None


@pytest.mark.asyncio
async def test_record_is_not_also_an_improvement(tmp_path):
    builder, record_repo, history_repo = _builder(tmp_path)
    await record_repo.upsert("u1", "Supino", 80, 8, "2026-06-08")
    await history_repo.bulk_add("u1", [{"exercise_name": "Supino", "weight": 80, "date": EARLIER}])
    summary = await builder.build("u1", 1, 14, 84, [_exercise("Supino", 85)])
    assert summary["prs"] == [{"name": "Supino", "old_weight": 80.0, "new_weight": 85.0}]
    assert summary["improvements"] == []


@pytest.mark.asyncio
async def test_tie_with_previous_session_is_not_an_improvement(tmp_path):
    builder, record_repo, history_repo = _builder(tmp_path)
    await record_repo.upsert("u1", "Remada", 100, 5, "2026-05-01")
    await history_repo.bulk_add("u1", [{"exercise_name": "Remada", "weight": 70, "date": EARLIER}])
    summary = await builder.build("u1", 3, 30, 180, [_exercise("Remada", 70)])
    assert summary["improvements"] == []


@pytest.mark.asyncio
async def test_first_session_has_no_improvement(tmp_path):
    builder, record_repo, _ = _builder(tmp_path)
    await record_repo.upsert("u1", "Remada", 100, 5, "2026-05-01")
    summary = await builder.build("u1", 3, 30, 180, [_exercise("Remada", 70)])
    assert summary["improvements"] == []


@pytest.mark.asyncio
async def test_bodyweight_work_is_kept_out_of_history(tmp_path):
    builder, _, history_repo = _builder(tmp_path)
    summary = await builder.build(
        "u1", 2, 20, 120, [_exercise("Flexão", None, None), _exercise("Supino", 40)]
    )
    assert [p["name"] for p in summary["prs"]] == ["Supino"]
    assert await history_repo.fetch_for_exercise("u1", "Flexão") == []
    entries = await history_repo.fetch_for_exercise("u1", "Supino")
    assert entries[0]["date"] == "2026-06-15T12:00:00+00:00"
    assert entries[0]["sets"] == 1


@pytest.mark.asyncio
async def test_store_failure_degrades_to_empty_lists(tmp_path):
    builder, _, history_repo = _builder(tmp_path, FailingRecordRepository)
    summary = await builder.build("u1", 1, 14, 84, [_exercise("Supino", 85)])
    assert summary["prs"] == []
    assert summary["improvements"] == []
    assert summary["duration"] == 14
    assert summary["calories"] == 84
    assert await history_repo.fetch_for_exercise("u1", "Supino") == []


@pytest.mark.asyncio
async def test_empty_session(tmp_path):
    builder, _, _ = _builder(tmp_path)
    summary = await builder.build("u1", 1, 1, 6, [])
    assert summary["prs"] == []
    assert summary["improvements"] == []
