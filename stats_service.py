from __future__ import annotations
import calendar
import datetime
import logging
import math
from typing import List, Dict

from clock import SystemClock
from db import (
    WorkoutLogRepository,
    ExerciseHistoryRepository,
    ProfileRepository,
    StoreError,
)
from localization import Translator
from session_service import as_number

logger = logging.getLogger(__name__)


class StatisticsService:
    """Compute streaks and periodic aggregates from finished sessions."""

    PERIODS = ("week", "month", "year")

    def __init__(
        self,
        log_repo: WorkoutLogRepository,
        history_repo: ExerciseHistoryRepository | None = None,
        profile_repo: ProfileRepository | None = None,
        clock: SystemClock | None = None,
        translator: Translator | None = None,
        default_display_name: str = "Atleta PulseFit",
    ) -> None:
        self.logs = log_repo
        self.history = history_repo
        self.profiles = profile_repo
        self.clock = clock or SystemClock()
        self.translator = translator or Translator()
        self.default_display_name = default_display_name

    async def _log_dates(self, user_id: str, since: datetime.date | None = None) -> List[datetime.date]:
        """Return the local completion date of every log since ``since``."""
        since_ts = (
            self.clock.to_iso(self.clock.start_of_day(since)) if since is not None else None
        )
        rows = await self.logs.fetch_since(user_id, since_ts)
        return [self.clock.local_date(completed_at) for *_rest, completed_at in rows]

    async def streak(self, user_id: str) -> int:
        """Return consecutive active days ending today or yesterday."""
        try:
            dates = await self._log_dates(user_id)
        except StoreError as e:
            logger.warning("could not compute streak: %s", e)
            return 0
        return self.streak_from_dates(dates, self.clock.today())

    @staticmethod
    def streak_from_dates(dates: List[datetime.date], today: datetime.date) -> int:
        active = set(dates)
        if not active:
            return 0
        latest = max(active)
        yesterday = today - datetime.timedelta(days=1)
        if latest != today and latest != yesterday:
            return 0
        day = today if today in active else yesterday
        streak = 0
        while day in active:
            streak += 1
            day -= datetime.timedelta(days=1)
        return streak

    async def monthly_performance(self, user_id: str) -> int:
        """Return the share of this month's days with a session, 0-100."""
        today = self.clock.today()
        first = today.replace(day=1)
        try:
            dates = await self._log_dates(user_id, first)
        except StoreError as e:
            logger.warning("could not compute monthly performance: %s", e)
            return 0
        active_days = {d for d in dates if first <= d <= today}
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        return min(100, round(len(active_days) / days_in_month * 100))

    async def frequency(self, user_id: str, period: str = "week") -> List[Dict[str, object]]:
        """Return session counts bucketed by day, week of month or month."""
        if period not in self.PERIODS:
            raise ValueError(f"period must be one of {', '.join(self.PERIODS)}")
        today = self.clock.today()
        if period == "week":
            start = today - datetime.timedelta(days=6)
        elif period == "month":
            start = today.replace(day=1)
        else:
            start = datetime.date(today.year, 1, 1)
        try:
            dates = await self._log_dates(user_id, start)
        except StoreError as e:
            logger.warning("could not compute %s frequency: %s", period, e)
            dates = []
        dates = [d for d in dates if start <= d <= today]

        if period == "week":
            result = []
            for offset in range(7):
                day = start + datetime.timedelta(days=offset)
                result.append(
                    {
                        "label": self.translator.weekday_abbr(day),
                        "count": sum(1 for d in dates if d == day),
                        "date": day.isoformat(),
                    }
                )
            return result

        if period == "month":
            weeks: Dict[int, int] = {}
            for d in dates:
                num = self.week_of_month(d)
                weeks[num] = weeks.get(num, 0) + 1
            return [{"label": f"W{n}", "count": weeks[n]} for n in sorted(weeks)]

        counts = [0] * 12
        for d in dates:
            counts[d.month - 1] += 1
        return [
            {"label": self.translator.month_abbr(i + 1), "count": c}
            for i, c in enumerate(counts)
        ]

    @staticmethod
    def week_of_month(day: datetime.date) -> int:
        """Return ``ceil((day - 1 + offset) / 7)`` where ``offset`` is the
        weekday of the 1st counted from Sunday (0).

        A month starting on Sunday puts its 1st in week 0.
        """
        offset = (day.replace(day=1).weekday() + 1) % 7
        return math.ceil((day.day - 1 + offset) / 7)

    def start_of_week(self) -> datetime.date:
        today = self.clock.today()
        return today - datetime.timedelta(days=(today.weekday() + 1) % 7)

    async def weekly_stats(self, user_id: str) -> Dict[str, object]:
        """Aggregate sessions since Sunday of the current week.

        Raises :class:`StoreError` so callers can choose their own fallback.
        """
        start = self.start_of_week()
        since = self.clock.to_iso(self.clock.start_of_day(start))
        rows = await self.logs.fetch_since(user_id, since)
        minutes = sum(int(r[2] or 0) for r in rows)
        calories = sum(float(r[3] or 0) for r in rows)
        days = sorted(
            {(self.clock.local_date(r[4]).weekday() + 1) % 7 for r in rows}
        )
        volume = 0.0
        if self.history is not None:
            for entry in await self.history.fetch_since(user_id, since):
                volume += self.session_volume(entry)
        return {
            "total_workouts": len(rows),
            "total_minutes": minutes,
            "total_hours": round(minutes / 60, 1),
            "total_calories": int(calories) if calories == int(calories) else round(calories, 1),
            "total_volume": round(volume, 1),
            "days_completed": days,
        }

    @staticmethod
    def session_volume(entry: dict) -> float:
        """Sum of reps times weight over the sets of one history entry."""
        sets = entry.get("sets_data") or []
        vol = 0.0
        for s in sets:
            if isinstance(s, dict):
                vol += as_number(s.get("reps")) * as_number(s.get("weight"))
        if not sets:
            vol = as_number(entry.get("reps")) * as_number(entry.get("weight"))
        return vol

    async def leaderboard(self, days: int = 7, limit: int = 5) -> List[Dict[str, object]]:
        """Rank users by sessions finished in the trailing ``days`` days."""
        since = self.clock.to_iso(
            self.clock.now_datetime() - datetime.timedelta(days=days)
        )
        try:
            rows = await self.logs.fetch_all_since(since)
        except StoreError as e:
            logger.warning("could not compute leaderboard: %s", e)
            return []
        stats: Dict[str, Dict[str, object]] = {}
        for user_id, user_name, _completed in rows:
            entry = stats.setdefault(
                user_id,
                {
                    "user_id": user_id,
                    "name": user_name or self.default_display_name,
                    "avatar": ProfileRepository.DEFAULT_AVATAR,
                    "count": 0,
                },
            )
            entry["count"] += 1
        if self.profiles is not None and stats:
            try:
                profiles = await self.profiles.fetch_many(list(stats))
            except StoreError as e:
                logger.warning("could not fetch leaderboard profiles: %s", e)
                profiles = []
            for p in profiles:
                entry = stats[p["id"]]
                if entry["name"] == self.default_display_name and p["name"]:
                    entry["name"] = p["name"]
                entry["avatar"] = p["avatar"] or entry["avatar"]
        ranked = sorted(stats.values(), key=lambda e: e["count"], reverse=True)
        return ranked[:limit]
