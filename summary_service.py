import asyncio
import logging

from db import StoreError
from history_service import ExerciseHistoryService
from record_service import PersonalRecordService
from session_service import as_number

logger = logging.getLogger(__name__)


class SessionSummaryBuilder:
    """Turn a finished session's raw performance into the summary shown to the user."""

    def __init__(
        self,
        record_service: PersonalRecordService,
        history_service: ExerciseHistoryService,
    ) -> None:
        self.records = record_service
        self.history = history_service

    @staticmethod
    def max_weights(exercises: list[dict]) -> list[dict]:
        """Return one entry per exercise with the heaviest set weight.

        Sets without a usable weight count as 0. An explicit ``weight`` on
        the exercise is used when it carries no set data.
        """
        performed = []
        for ex in exercises:
            if not isinstance(ex, dict):
                continue
            sets = ex.get("sets") if isinstance(ex.get("sets"), list) else []
            best = 0.0
            reps = 0
            for s in sets:
                if not isinstance(s, dict):
                    continue
                weight = as_number(s.get("weight"))
                if weight > best:
                    best = weight
                    reps = int(as_number(s.get("reps")))
            if not sets:
                best = as_number(ex.get("weight"))
                reps = int(as_number(ex.get("reps")))
            performed.append(
                {"name": ex.get("name"), "weight": best, "reps": reps, "sets": sets}
            )
        return performed

    async def build(
        self,
        user_id: str,
        workout_id: int,
        duration: int,
        calories: float,
        exercises: list[dict],
    ) -> dict:
        summary = {
            "workout_id": workout_id,
            "duration": duration,
            "calories": calories,
            "prs": [],
            "improvements": [],
            "cycle_completed": False,
            "weekly_stats": None,
        }
        if not exercises:
            return summary
        performed = self.max_weights(exercises)
        try:
            prs = await self.records.update_records(user_id, performed)
            written = await self.history.record(user_id, performed)
            pr_names = {pr["name"] for pr in prs}
            candidates = [name for name in dict.fromkeys(written) if name not in pr_names]
            results = await asyncio.gather(
                *(self.history.improvement(user_id, name) for name in candidates)
            )
        except StoreError as e:
            logger.warning("summary for workout %s degraded: %s", workout_id, e)
            return summary
        summary["prs"] = prs
        summary["improvements"] = [r for r in results if r is not None]
        return summary
