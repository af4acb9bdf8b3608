from clock import SystemClock


class SessionTimer:
    """Track active seconds of one session across pause/resume cycles.

    Only ``accumulated_seconds`` and ``segment_start`` are stored, so a timer
    rebuilt from those two fields after a restart reports the same value a
    live one would.
    """

    def __init__(
        self,
        clock: SystemClock,
        accumulated_seconds: int = 0,
        segment_start: float | None = None,
    ) -> None:
        self.clock = clock
        self.accumulated_seconds = int(accumulated_seconds)
        self.segment_start = segment_start

    @property
    def running(self) -> bool:
        return self.segment_start is not None

    def start(self) -> bool:
        if self.running:
            return False
        self.accumulated_seconds = 0
        self.segment_start = self.clock.now()
        return True

    def elapsed(self) -> int:
        if self.segment_start is None:
            return self.accumulated_seconds
        return self.accumulated_seconds + self.clock.elapsed_seconds(self.segment_start)

    def pause(self) -> bool:
        if self.segment_start is None:
            return False
        self.accumulated_seconds += self.clock.elapsed_seconds(self.segment_start)
        self.segment_start = None
        return True

    def resume(self) -> bool:
        if self.running:
            return False
        self.segment_start = self.clock.now()
        return True

    def reset(self) -> None:
        self.accumulated_seconds = 0
        self.segment_start = None

    def to_dict(self) -> dict:
        return {
            "accumulated_seconds": self.accumulated_seconds,
            "segment_start": self.segment_start,
        }

    @classmethod
    def from_dict(cls, clock: SystemClock, data: dict) -> "SessionTimer":
        start = data.get("segment_start")
        return cls(
            clock,
            accumulated_seconds=max(0, int(data.get("accumulated_seconds") or 0)),
            segment_start=float(start) if start is not None else None,
        )
