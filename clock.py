import datetime
import math
import time
from typing import Callable
from zoneinfo import ZoneInfo


class SystemClock:
    """Wall-clock access in a fixed timezone.

    ``time_func`` returns epoch seconds and defaults to :func:`time.time`.
    """

    def __init__(
        self, timezone: str = "UTC", time_func: Callable[[], float] | None = None
    ) -> None:
        self.tz = ZoneInfo(timezone)
        self._time = time_func or time.time

    def now(self) -> float:
        return self._time()

    def now_datetime(self) -> datetime.datetime:
        return datetime.datetime.fromtimestamp(self.now(), tz=self.tz)

    def today(self) -> datetime.date:
        return self.now_datetime().date()

    def timestamp(self) -> str:
        """Return the current time as a UTC ISO-8601 string."""
        return self.to_iso(self.now_datetime())

    @staticmethod
    def to_iso(dt: datetime.datetime) -> str:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt.astimezone(datetime.timezone.utc).isoformat(timespec="seconds")

    def local_date(self, ts: str) -> datetime.date:
        """Return the calendar date of a stored timestamp in this clock's zone."""
        dt = datetime.datetime.fromisoformat(ts)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt.astimezone(self.tz).date()

    def start_of_day(self, day: datetime.date) -> datetime.datetime:
        return datetime.datetime.combine(day, datetime.time.min, tzinfo=self.tz)

    def elapsed_seconds(self, start: float, end: float | None = None) -> int:
        """Return whole seconds between ``start`` and ``end`` (default now)."""
        if end is None:
            end = self.now()
        return max(0, math.floor(end - start))
