import logging

from clock import SystemClock
from db import ExerciseHistoryRepository, StoreError
from session_service import as_number

logger = logging.getLogger(__name__)


class ExerciseHistoryService:
    """Append-only per-exercise performance log and the queries built on it."""

    def __init__(
        self,
        history_repo: ExerciseHistoryRepository,
        clock: SystemClock | None = None,
        history_limit: int = 20,
    ) -> None:
        self.history = history_repo
        self.clock = clock or SystemClock()
        self.history_limit = history_limit

    async def record(self, user_id: str, performed: list[dict]) -> list[str]:
        """Append one entry per performed exercise with a positive weight.

        Returns the names that were written. Bodyweight work logged without
        a weight is left out so it does not flatten trend charts.
        """
        timestamp = self.clock.timestamp()
        entries = []
        for ex in performed:
            name = ex.get("name")
            weight = as_number(ex.get("weight"))
            if not name or weight <= 0:
                continue
            sets = ex.get("sets")
            entries.append(
                {
                    "exercise_name": name,
                    "weight": weight,
                    "reps": int(as_number(ex.get("reps"))),
                    "sets": len(sets) if isinstance(sets, list) else int(as_number(sets)),
                    "sets_data": sets if isinstance(sets, list) else [],
                    "date": timestamp,
                }
            )
        if entries:
            await self.history.bulk_add(user_id, entries)
        return [e["exercise_name"] for e in entries]

    async def exercise_history(
        self, user_id: str, exercise_name: str, limit: int | None = None
    ) -> list[dict]:
        """Return up to ``limit`` sessions for ``exercise_name``, newest first."""
        try:
            return await self.history.fetch_for_exercise(
                user_id, exercise_name, limit or self.history_limit
            )
        except StoreError as e:
            logger.warning("could not fetch history for %s: %s", exercise_name, e)
            return []

    async def improvement(self, user_id: str, exercise_name: str) -> dict | None:
        """Compare the two newest entries; return the gain if strictly heavier.

        Raises :class:`StoreError` when the history cannot be read.
        """
        rows = await self.history.fetch_for_exercise(user_id, exercise_name, 2)
        if len(rows) < 2:
            return None
        current, previous = rows[0], rows[1]
        if current["weight"] > previous["weight"]:
            return {
                "name": exercise_name,
                "old_weight": previous["weight"],
                "new_weight": current["weight"],
                "diff": round(current["weight"] - previous["weight"], 2),
            }
        return None

    async def last_weights(self, user_id: str, exercise_names: list[str]) -> dict[str, dict]:
        """Return ``{name: {"weight", "sets"}}`` from the latest session of each exercise."""
        names = [n for n in exercise_names or [] if n]
        if not names:
            return {}
        try:
            latest = await self.history.fetch_latest_by_names(user_id, names)
        except StoreError as e:
            logger.warning("could not fetch last weights: %s", e)
            return {}
        return {
            name: {"weight": entry["weight"], "sets": entry["sets_data"]}
            for name, entry in latest.items()
        }
