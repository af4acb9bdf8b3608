import logging

from clock import SystemClock
from db import PersonalRecordRepository, StoreError
from session_service import as_number

logger = logging.getLogger(__name__)


class PersonalRecordService:
    """Maintain the heaviest weight per user and exercise name."""

    def __init__(
        self, record_repo: PersonalRecordRepository, clock: SystemClock | None = None
    ) -> None:
        self.records_repo = record_repo
        self.clock = clock or SystemClock()

    async def records(self, user_id: str) -> list[dict]:
        """Return stored records, heaviest first."""
        try:
            return await self.records_repo.fetch_for_user(user_id)
        except StoreError as e:
            logger.warning("could not fetch personal records: %s", e)
            return []

    async def update_records(self, user_id: str, performed: list[dict]) -> list[dict]:
        """Store new records from ``performed`` and return the ones that beat the old value.

        Each entry needs ``name`` and ``weight`` (``reps`` is optional).
        Entries without a name or with a weight that is not a positive
        number are skipped. Raises :class:`StoreError` if the current
        records cannot be read.
        """
        current = {
            r["exercise_name"]: r for r in await self.records_repo.fetch_for_user(user_id)
        }
        today = self.clock.today().isoformat()
        new_records: list[dict] = []
        for ex in performed:
            name = ex.get("name")
            weight = as_number(ex.get("weight"))
            if not name or weight <= 0:
                continue
            existing = current.get(name)
            if existing is not None and weight <= existing["weight"]:
                continue
            reps = int(as_number(ex.get("reps")))
            try:
                await self.records_repo.upsert(user_id, name, weight, reps, today)
            except StoreError as e:
                logger.warning("could not store record for %s: %s", name, e)
                continue
            old_weight = existing["weight"] if existing is not None else 0
            current[name] = {"exercise_name": name, "weight": weight, "reps": reps, "date": today}
            logger.info("new personal record for %s: %s -> %s", name, old_weight, weight)
            new_records.append({"name": name, "old_weight": old_weight, "new_weight": weight})
        return new_records
