import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from clock import SystemClock
from db import SessionSnapshotRepository
from events import EventBus, SESSION_CHANGED
from session_service import WorkoutSession

WORKOUT = {
    "id": 7,
    "title": "Treino A",
    "exercises": [
        {"name": "Supino", "muscle_group": "Peito", "sets": [{"reps": 10}, {"reps": 8}]},
        {"name": "Flexão", "muscle_group": "Peito", "sets": [{"reps": 15}]},
    ],
}


class WorkoutSessionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_session.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.now = 1_700_000_000.0
        self.clock = SystemClock("UTC", time_func=lambda: self.now)
        self.snapshots = SessionSnapshotRepository(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _session(self, events=None) -> WorkoutSession:
        return WorkoutSession("u1", WORKOUT, self.snapshots, self.clock, 6.0, events)

    def test_start_builds_working_set(self) -> None:
        session = self._session()
        self.assertTrue(session.start())
        self.assertEqual(session.state, WorkoutSession.ACTIVE)
        self.assertEqual(
            session.exercises[0]["sets"],
            [
                {"reps": 10, "weight": None, "completed": False},
                {"reps": 8, "weight": None, "completed": False},
            ],
        )
        self.assertEqual(session.exercises[0]["muscle_group"], "Peito")
        # the plan itself is untouched
        self.assertEqual(WORKOUT["exercises"][0]["sets"], [{"reps": 10}, {"reps": 8}])

    def test_every_mutation_is_persisted(self) -> None:
        session = self._session()
        session.start()
        session.set_weight(0, 0, 80)
        data = self.snapshots.get("u1", 7)
        self.assertTrue(data["active"])
        self.assertFalse(data["paused"])
        self.assertEqual(data["exercises"][0]["sets"][0]["weight"], 80)
        self.now += 120
        session.pause()
        data = self.snapshots.get("u1", 7)
        self.assertTrue(data["paused"])
        self.assertEqual(data["accumulated_seconds"], 120)
        self.assertIsNone(data["segment_start"])

    def test_edits_rejected_when_idle(self) -> None:
        session = self._session()
        self.assertFalse(session.set_weight(0, 0, 100))
        self.assertFalse(session.toggle_completed(0, 0))
        self.assertIsNone(session.exercises[0]["sets"][0]["weight"])
        self.assertIsNone(self.snapshots.get("u1", 7))

    def test_edits_allowed_while_paused(self) -> None:
        session = self._session()
        session.start()
        session.pause()
        self.assertTrue(session.set_reps(0, 1, 6))
        self.assertTrue(session.toggle_completed(0, 1))
        self.assertEqual(
            session.exercises[0]["sets"][1], {"reps": 6, "weight": None, "completed": True}
        )

    def test_bad_edit_targets_are_ignored(self) -> None:
        session = self._session()
        session.start()
        self.assertFalse(session.edit_set(5, 0, "weight", 10))
        self.assertFalse(session.edit_set(0, 9, "weight", 10))
        self.assertFalse(session.edit_set(0, 0, "tempo", "3-1-1"))

    def test_invalid_transitions_return_false(self) -> None:
        session = self._session()
        self.assertFalse(session.pause())
        self.assertFalse(session.resume())
        self.assertFalse(session.cancel())
        self.assertIsNone(session.finish())
        session.start()
        self.assertFalse(session.start())
        self.assertFalse(session.resume())

    def test_cancel_discards_snapshot(self) -> None:
        session = self._session()
        session.start()
        session.set_weight(0, 0, 60)
        self.assertTrue(session.cancel())
        self.assertEqual(session.state, WorkoutSession.CANCELLED)
        self.assertIsNone(self.snapshots.get("u1", 7))
        self.assertIsNone(session.exercises[0]["sets"][0]["weight"])

    def test_finish_rounds_minutes_up_and_clears_snapshot(self) -> None:
        session = self._session()
        session.start()
        self.now += 1
        performance = session.finish()
        self.assertEqual(performance["duration"], 1)
        self.assertEqual(performance["calories"], 6)
        self.assertEqual(session.state, WorkoutSession.FINISHED)
        self.assertIsNone(self.snapshots.get("u1", 7))

    def test_duration_minutes(self) -> None:
        for seconds in (0, 1, 30, 60):
            self.assertEqual(WorkoutSession.duration_minutes(seconds), 1)
        self.assertEqual(WorkoutSession.duration_minutes(61), 2)
        self.assertEqual(WorkoutSession.duration_minutes(840), 14)

    def test_finish_reports_max_weight_per_exercise(self) -> None:
        session = self._session()
        session.start()
        session.set_weight(0, 0, "80")
        session.set_weight(0, 1, 85)
        session.set_reps(0, 1, 6)
        performance = session.finish()
        supino, flexao = performance["exercises"]
        self.assertEqual(supino["name"], "Supino")
        self.assertEqual(supino["weight"], 85)
        self.assertEqual(supino["reps"], 6)
        self.assertEqual(len(supino["sets"]), 2)
        self.assertEqual(flexao["weight"], 0)

    def test_restore_running_session_after_restart(self) -> None:
        session = self._session()
        session.start()
        session.set_weight(0, 0, 70)
        self.now += 200
        reopened = self._session()
        self.assertTrue(reopened.restore())
        self.assertEqual(reopened.state, WorkoutSession.ACTIVE)
        self.assertEqual(reopened.elapsed_seconds(), 200)
        self.assertEqual(reopened.exercises[0]["sets"][0]["weight"], 70)
        self.now += 10
        self.assertEqual(reopened.elapsed_seconds(), 210)

    def test_restore_paused_session_keeps_time_frozen(self) -> None:
        session = self._session()
        session.start()
        self.now += 90
        session.pause()
        self.now += 3600
        reopened = self._session()
        self.assertTrue(reopened.restore())
        self.assertEqual(reopened.state, WorkoutSession.PAUSED)
        self.assertEqual(reopened.elapsed_seconds(), 90)
        reopened.resume()
        self.now += 30
        self.assertEqual(reopened.elapsed_seconds(), 120)

    def test_restore_without_snapshot(self) -> None:
        session = self._session()
        self.assertFalse(session.restore())
        self.assertEqual(session.state, WorkoutSession.IDLE)

    def test_corrupt_snapshot_is_discarded(self) -> None:
        self.snapshots.execute(
            "INSERT INTO session_snapshots (user_id, workout_id, data, updated_at) VALUES (?, ?, ?, ?);",
            ("u1", 7, "{not json", "2024-01-01T00:00:00+00:00"),
        )
        session = self._session()
        self.assertFalse(session.restore())
        self.assertIsNone(self.snapshots.get("u1", 7))

    def test_snapshots_are_scoped_per_user(self) -> None:
        session = self._session()
        session.start()
        other = WorkoutSession("u2", WORKOUT, self.snapshots, self.clock)
        self.assertFalse(other.restore())

    def test_changes_are_announced(self) -> None:
        events = EventBus()
        seen = []
        events.subscribe(SESSION_CHANGED, lambda payload: seen.append(payload["state"]))
        session = self._session(events)
        session.start()
        session.pause()
        session.resume()
        self.assertEqual(seen, ["active", "paused", "active"])

    def test_session_end_is_announced(self) -> None:
        events = EventBus()
        seen = []
        events.subscribe(SESSION_CHANGED, lambda payload: seen.append(payload["state"]))
        session = self._session(events)
        session.start()
        session.cancel()
        session.start()
        self.now += 60
        session.finish()
        self.assertEqual(seen, ["active", "cancelled", "active", "finished"])
        # rejected transitions stay silent
        session.cancel()
        self.assertEqual(len(seen), 4)


if __name__ == "__main__":
    unittest.main()
