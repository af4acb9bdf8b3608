import logging
from typing import Callable

logger = logging.getLogger(__name__)

STATS_UPDATED = "stats-updated"
WORKOUT_UPDATED = "workout-updated"
SESSION_CHANGED = "session-changed"


class EventBus:
    """Explicit publish/subscribe channel for update notifications."""

    def __init__(self) -> None:
        self.watchers: dict[str, list[Callable[[dict], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[dict], None]) -> None:
        self.watchers.setdefault(event, []).append(callback)

    def unsubscribe(self, event: str, callback: Callable[[dict], None]) -> None:
        callbacks = self.watchers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: str, payload: dict | None = None) -> None:
        for callback in list(self.watchers.get(event, [])):
            try:
                callback(payload or {})
            except Exception:
                # a failing subscriber must not break the emitting operation
                logger.exception("subscriber for %s failed", event)
