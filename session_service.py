import copy
import logging
import math

from clock import SystemClock
from db import SessionSnapshotRepository, StoreError
from events import EventBus, SESSION_CHANGED
from session_timer import SessionTimer

logger = logging.getLogger(__name__)


class WorkoutSession:
    """State machine for one timed attempt at a workout.

    States move ``idle -> active <-> paused -> finished | cancelled``. Every
    change to the timer or the working set is written to the snapshot store
    so the session can be rebuilt with :meth:`restore` after a restart.
    """

    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    EDITABLE_FIELDS = ("weight", "reps", "completed")

    def __init__(
        self,
        user_id: str,
        workout: dict,
        snapshots: SessionSnapshotRepository,
        clock: SystemClock | None = None,
        calories_per_minute: float = 6.0,
        events: EventBus | None = None,
    ) -> None:
        self.user_id = user_id
        self.workout = workout
        self.workout_id = workout["id"]
        self.snapshots = snapshots
        self.clock = clock or SystemClock()
        self.calories_per_minute = calories_per_minute
        self.events = events
        self.state = self.IDLE
        self.timer = SessionTimer(self.clock)
        self.exercises: list[dict] = self._working_copy(workout.get("exercises") or [])

    @staticmethod
    def _working_copy(plan: list[dict]) -> list[dict]:
        exercises = []
        for ex in plan:
            working = copy.deepcopy(ex)
            working["sets"] = [
                {"reps": s.get("reps"), "weight": None, "completed": False}
                for s in ex.get("sets") or []
            ]
            exercises.append(working)
        return exercises

    @property
    def in_progress(self) -> bool:
        return self.state in (self.ACTIVE, self.PAUSED)

    # -- persistence -------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "workout_id": self.workout_id,
            "active": self.in_progress,
            "paused": self.state == self.PAUSED,
            **self.timer.to_dict(),
            "exercises": self.exercises,
        }

    def _persist(self) -> None:
        try:
            self.snapshots.set(self.user_id, self.workout_id, self.snapshot())
        except StoreError as e:
            logger.warning("could not save snapshot for workout %s: %s", self.workout_id, e)
        self._announce()

    def _announce(self) -> None:
        if self.events is not None:
            self.events.emit(
                SESSION_CHANGED, {"workout_id": self.workout_id, "state": self.state}
            )

    def _clear(self) -> None:
        try:
            self.snapshots.delete(self.user_id, self.workout_id)
        except StoreError as e:
            logger.warning("could not clear snapshot for workout %s: %s", self.workout_id, e)

    def restore(self) -> bool:
        """Rebuild an in-progress session from its snapshot, if one exists."""
        try:
            data = self.snapshots.get(self.user_id, self.workout_id)
        except StoreError as e:
            logger.warning("could not read snapshot for workout %s: %s", self.workout_id, e)
            return False
        except ValueError:
            logger.warning("discarding unreadable snapshot for workout %s", self.workout_id)
            self._clear()
            return False
        if not data or not data.get("active"):
            return False
        try:
            timer = SessionTimer.from_dict(self.clock, data)
        except (TypeError, ValueError):
            logger.warning("discarding corrupt snapshot for workout %s", self.workout_id)
            self._clear()
            return False
        if data.get("paused"):
            # paused time is exactly the stored accumulated seconds
            timer.segment_start = None
            self.state = self.PAUSED
        else:
            if timer.segment_start is None:
                timer.resume()
            self.state = self.ACTIVE
        self.timer = timer
        self.exercises = data.get("exercises") or self.exercises
        logger.info("restored %s session for workout %s", self.state, self.workout_id)
        return True

    # -- transitions -------------------------------------------------------

    def _ignored(self, action: str) -> bool:
        logger.debug("ignoring %s while %s", action, self.state)
        return False

    def start(self) -> bool:
        if self.in_progress:
            return self._ignored("start")
        self.exercises = self._working_copy(self.workout.get("exercises") or [])
        self.timer.reset()
        self.timer.start()
        self.state = self.ACTIVE
        self._persist()
        logger.info("session started for workout %s", self.workout_id)
        return True

    def pause(self) -> bool:
        if self.state != self.ACTIVE:
            return self._ignored("pause")
        self.timer.pause()
        self.state = self.PAUSED
        self._persist()
        return True

    def resume(self) -> bool:
        if self.state != self.PAUSED:
            return self._ignored("resume")
        self.timer.resume()
        self.state = self.ACTIVE
        self._persist()
        return True

    def cancel(self) -> bool:
        if not self.in_progress:
            return self._ignored("cancel")
        self._clear()
        self.timer.reset()
        self.exercises = self._working_copy(self.workout.get("exercises") or [])
        self.state = self.CANCELLED
        self._announce()
        logger.info("session cancelled for workout %s", self.workout_id)
        return True

    def elapsed_seconds(self) -> int:
        return self.timer.elapsed()

    @staticmethod
    def duration_minutes(seconds: int) -> int:
        """Convert elapsed seconds to whole minutes, rounding up, never below 1."""
        return max(1, math.ceil(seconds / 60))

    def finish(self) -> dict | None:
        """End the session and return its raw performance data.

        The snapshot is removed before anything else so a failure further
        down the pipeline cannot leave the session stuck in progress.
        """
        if not self.in_progress:
            self._ignored("finish")
            return None
        seconds = self.timer.elapsed()
        self._clear()
        self.timer.pause()
        self.state = self.FINISHED
        self._announce()
        duration = self.duration_minutes(seconds)
        calories = duration * self.calories_per_minute
        if calories == int(calories):
            calories = int(calories)
        logger.info(
            "session finished for workout %s after %s seconds", self.workout_id, seconds
        )
        return {
            "workout_id": self.workout_id,
            "elapsed_seconds": seconds,
            "duration": duration,
            "calories": calories,
            "exercises": self.performed_exercises(),
        }

    # -- working set edits -------------------------------------------------

    def edit_set(self, exercise_index: int, set_index: int, field: str, value) -> bool:
        if not self.in_progress:
            return self._ignored(f"edit of {field}")
        if field not in self.EDITABLE_FIELDS:
            logger.debug("ignoring edit of unknown field %s", field)
            return False
        if not 0 <= exercise_index < len(self.exercises):
            return False
        sets = self.exercises[exercise_index].get("sets") or []
        if not 0 <= set_index < len(sets):
            return False
        if field == "completed":
            value = bool(value)
        sets[set_index] = {**sets[set_index], field: value}
        self.exercises[exercise_index]["sets"] = sets
        self._persist()
        return True

    def set_weight(self, exercise_index: int, set_index: int, weight) -> bool:
        return self.edit_set(exercise_index, set_index, "weight", weight)

    def set_reps(self, exercise_index: int, set_index: int, reps) -> bool:
        return self.edit_set(exercise_index, set_index, "reps", reps)

    def toggle_completed(self, exercise_index: int, set_index: int) -> bool:
        try:
            current = self.exercises[exercise_index]["sets"][set_index].get("completed")
        except (IndexError, KeyError, TypeError):
            return False
        return self.edit_set(exercise_index, set_index, "completed", not current)

    def performed_exercises(self) -> list[dict]:
        performed = []
        for ex in self.exercises:
            sets = ex.get("sets") or []
            best_weight = 0.0
            best_reps = 0
            for s in sets:
                weight = as_number(s.get("weight"))
                if weight > best_weight:
                    best_weight = weight
                    best_reps = int(as_number(s.get("reps")))
            performed.append(
                {
                    "name": ex.get("name"),
                    "weight": best_weight,
                    "reps": best_reps,
                    "sets": copy.deepcopy(sets),
                }
            )
        return performed


def as_number(value) -> float:
    """Return ``value`` as a float, treating blanks and junk as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number
