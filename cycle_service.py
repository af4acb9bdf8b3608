import logging

from db import WorkoutRepository, StoreError
from events import EventBus, WORKOUT_UPDATED
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class CycleService:
    """Detect when every workout in the rotation is done and start a new cycle."""

    EMPTY_STATS = {
        "total_workouts": 0,
        "total_minutes": 0,
        "total_hours": 0.0,
        "total_calories": 0,
        "total_volume": 0.0,
        "streak": 0,
        "days_completed": [],
    }

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        statistics: StatisticsService,
        events: EventBus | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.statistics = statistics
        self.events = events

    @staticmethod
    def is_complete(statuses: list[tuple[int, str]], finished_id: int) -> bool:
        """Return True if all workouts are completed once ``finished_id`` counts as done."""
        if not statuses:
            return False
        return all(
            status == "completed" or wid == finished_id for wid, status in statuses
        )

    async def check_and_reset(
        self, user_id: str, finished_workout_id: int
    ) -> tuple[bool, dict | None]:
        try:
            statuses = await self.workouts.fetch_statuses(user_id)
        except StoreError as e:
            logger.warning("could not read workout statuses: %s", e)
            return False, None
        # the store may not reflect the status update of this session yet
        if not self.is_complete(statuses, finished_workout_id):
            return False, None

        try:
            stats = await self.statistics.weekly_stats(user_id)
            stats["streak"] = await self.statistics.streak(user_id)
        except StoreError as e:
            logger.warning("weekly stats unavailable, using placeholders: %s", e)
            stats = dict(self.EMPTY_STATS, days_completed=[])

        try:
            await self.workouts.reset_statuses(user_id)
        except StoreError as e:
            logger.warning("could not reset workout statuses: %s", e)
        else:
            logger.info("cycle completed for user %s, rotation reset", user_id)
            if self.events is not None:
                self.events.emit(WORKOUT_UPDATED, {"user_id": user_id, "cycle_completed": True})
        return True, stats
