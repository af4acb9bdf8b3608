from __future__ import annotations
import asyncio
import logging
from typing import Callable

from clock import SystemClock
from cycle_service import CycleService
from db import (
    WorkoutRepository,
    ProfileRepository,
    WorkoutLogRepository,
    PersonalRecordRepository,
    ExerciseHistoryRepository,
    SessionSnapshotRepository,
    StoreError,
)
from events import EventBus, STATS_UPDATED, WORKOUT_UPDATED
from history_service import ExerciseHistoryService
from localization import Translator
from record_service import PersonalRecordService
from session_service import WorkoutSession
from settings_schema import SettingsSchema, load_settings
from stats_service import StatisticsService
from summary_service import SessionSummaryBuilder

logger = logging.getLogger(__name__)


class WorkoutService:
    """Entry point for one user's sessions, rotation and statistics."""

    def __init__(
        self,
        user_id: str,
        db_path: str = "pulsefit.db",
        yaml_path: str | None = None,
        *,
        settings: SettingsSchema | None = None,
        clock: SystemClock | None = None,
    ) -> None:
        self.user_id = user_id
        self.settings = settings or load_settings(yaml_path)
        self.clock = clock or SystemClock(self.settings.timezone)
        self.events = EventBus()
        self.translator = Translator()
        self.translator.set_language(self.settings.language)

        self.workouts = WorkoutRepository(db_path)
        self.profiles = ProfileRepository(db_path)
        self.logs = WorkoutLogRepository(db_path)
        self.record_repo = PersonalRecordRepository(db_path)
        self.history_repo = ExerciseHistoryRepository(db_path)
        self.snapshots = SessionSnapshotRepository(db_path)

        self.records = PersonalRecordService(self.record_repo, self.clock)
        self.history = ExerciseHistoryService(
            self.history_repo, self.clock, self.settings.history_limit
        )
        self.statistics = StatisticsService(
            self.logs,
            self.history_repo,
            self.profiles,
            self.clock,
            self.translator,
            self.settings.default_display_name,
        )
        self.summaries = SessionSummaryBuilder(self.records, self.history)
        self.cycles = CycleService(self.workouts, self.statistics, self.events)
        self.session: WorkoutSession | None = None

    def subscribe(self, event: str, callback: Callable[[dict], None]) -> None:
        self.events.subscribe(event, callback)

    # -- session lifecycle -------------------------------------------------

    def open_session(self, workout: dict) -> WorkoutSession:
        """Attach to ``workout``, recovering an in-progress session if one was saved."""
        session = WorkoutSession(
            self.user_id,
            workout,
            self.snapshots,
            self.clock,
            self.settings.calories_per_minute,
            self.events,
        )
        session.restore()
        self.session = session
        return session

    def start_session(self, workout: dict) -> WorkoutSession:
        if self.session is None or self.session.workout_id != workout["id"]:
            self.open_session(workout)
        self.session.start()
        return self.session

    def pause_session(self) -> bool:
        return self.session is not None and self.session.pause()

    def resume_session(self) -> bool:
        return self.session is not None and self.session.resume()

    def cancel_session(self) -> bool:
        return self.session is not None and self.session.cancel()

    def edit_set(self, exercise_index: int, set_index: int, field: str, value) -> bool:
        if self.session is None:
            return False
        return self.session.edit_set(exercise_index, set_index, field, value)

    def get_active_workouts(self) -> list[int]:
        """Return ids of workouts with a saved in-progress session, newest first."""
        try:
            return self.snapshots.active_workouts(self.user_id)
        except StoreError as e:
            logger.warning("could not list active sessions: %s", e)
            return []

    def get_elapsed_seconds(self) -> int:
        if self.session is None or not self.session.in_progress:
            return 0
        return self.session.elapsed_seconds()

    async def _display_name(self) -> str:
        try:
            profile = await self.profiles.fetch(self.user_id)
        except StoreError as e:
            logger.warning("could not fetch profile: %s", e)
            return self.settings.default_display_name
        return profile.get("name") or self.settings.default_display_name

    async def _log_session(self, workout_id: int, duration: int, calories: float) -> None:
        name = await self._display_name()
        await self.logs.add(
            self.user_id,
            workout_id,
            duration,
            calories,
            name,
            self.clock.timestamp(),
        )
        self.events.emit(STATS_UPDATED, {"user_id": self.user_id, "workout_id": workout_id})

    async def finish_session(self) -> dict | None:
        """Finish the current session and return its summary.

        Returns None when no session is in progress.
        """
        if self.session is None:
            return None
        performance = self.session.finish()
        if performance is None:
            return None
        return await self.complete_workout(
            performance["workout_id"],
            performance["duration"],
            performance["calories"],
            performance["exercises"],
        )

    async def complete_workout(
        self,
        workout_id: int,
        duration: int,
        calories: float,
        exercises: list[dict],
    ) -> dict:
        """Record a finished workout, update records and check the rotation."""
        results = await asyncio.gather(
            self._log_session(workout_id, duration, calories),
            self.workouts.set_status(workout_id, "completed"),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, StoreError):
                logger.warning("could not record workout %s: %s", workout_id, result)
            elif isinstance(result, BaseException):
                raise result

        cycle_completed, weekly_stats = await self.cycles.check_and_reset(
            self.user_id, workout_id
        )
        summary = await self.summaries.build(
            self.user_id, workout_id, duration, calories, exercises
        )
        summary["cycle_completed"] = cycle_completed
        summary["weekly_stats"] = weekly_stats
        return summary

    # -- rotation ----------------------------------------------------------

    async def list_workouts(self) -> list[dict]:
        try:
            return await self.workouts.fetch_for_user(self.user_id)
        except StoreError as e:
            logger.warning("could not fetch workouts: %s", e)
            return []

    async def get_workout(self, workout_id: int) -> dict:
        workout = await self.workouts.fetch_detail(workout_id)
        if workout["user_id"] != self.user_id:
            raise ValueError("workout not found")
        return workout

    async def create_workout(
        self,
        title: str | None = None,
        description: str | None = None,
        icon: str | None = None,
        exercises: list[dict] | None = None,
    ) -> dict:
        wid = await self.workouts.create(self.user_id, title, description, icon, exercises)
        return await self.workouts.fetch_detail(wid)

    async def update_workout(self, workout_id: int, **fields) -> dict:
        await self.get_workout(workout_id)
        workout = await self.workouts.update(workout_id, **fields)
        self.events.emit(WORKOUT_UPDATED, {"workout_id": workout_id})
        return workout

    async def add_exercise(self, workout_id: int, exercise: dict) -> dict:
        await self.get_workout(workout_id)
        return await self.workouts.add_exercise(workout_id, exercise)

    async def delete_workout(self, workout_id: int) -> None:
        await self.get_workout(workout_id)
        if self.session is not None and self.session.workout_id == workout_id:
            self.session = None
        await self.workouts.delete(workout_id)

    # -- statistics --------------------------------------------------------

    async def get_streak(self, user_id: str | None = None) -> int:
        return await self.statistics.streak(user_id or self.user_id)

    async def get_monthly_performance(self, user_id: str | None = None) -> int:
        return await self.statistics.monthly_performance(user_id or self.user_id)

    async def get_frequency(self, period: str = "week", user_id: str | None = None) -> list[dict]:
        return await self.statistics.frequency(user_id or self.user_id, period)

    async def get_weekly_stats(self, user_id: str | None = None) -> dict:
        try:
            return await self.statistics.weekly_stats(user_id or self.user_id)
        except StoreError as e:
            logger.warning("could not compute weekly stats: %s", e)
            return dict(CycleService.EMPTY_STATS, days_completed=[])

    async def get_leaderboard(self) -> list[dict]:
        return await self.statistics.leaderboard(
            self.settings.leaderboard_days, self.settings.leaderboard_size
        )

    async def get_last_weights(
        self, exercise_names: list[str], user_id: str | None = None
    ) -> dict[str, dict]:
        return await self.history.last_weights(user_id or self.user_id, exercise_names)

    async def get_personal_records(self, user_id: str | None = None) -> list[dict]:
        return await self.records.records(user_id or self.user_id)

    async def get_exercise_history(self, exercise_name: str, user_id: str | None = None) -> list[dict]:
        return await self.history.exercise_history(user_id or self.user_id, exercise_name)
