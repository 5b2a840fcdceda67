"""
Event Observer - glob-style subscriptions over a LogMonitor's events.
"""

from fnmatch import fnmatchcase
from typing import Any, Callable

from logwatch.monitoring.config import StreamConfig
from logwatch.monitoring.events import EventBus, MonitorEvent
from logwatch.monitoring.monitor import LogMonitor
from logwatch.monitoring.schemas import ParsedEvent
from logwatch.shared.logger import get_logger

logger = get_logger()

EventCallback = Callable[[ParsedEvent], Any]


def matches_event_type(event_type: str, pattern: str) -> bool:
    """Check an event type against a glob pattern (``entity.death.*``, ``*``)."""
    return fnmatchcase(event_type, pattern)


class EventObserver:
    """Subscribe to parsed events by type pattern.

    Publishes ``start``, ``stop`` and ``error(exc, event)`` on ``events``. A
    failing callback is reported on ``error`` and never reaches the monitor.
    """

    def __init__(self, monitor: LogMonitor):
        if monitor is None:
            raise ValueError("A log monitor is required")

        self.monitor = monitor
        self.events = EventBus("observer")
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._observing = False
        self._detach = monitor.events.on(MonitorEvent.EVENT, self._handle_event)

    @property
    def is_observing(self) -> bool:
        return self._observing

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on_event(self, pattern: str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to events whose type matches ``pattern``.

        Returns:
            Callable that removes this subscription
        """
        self._subscriptions.setdefault(pattern, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscriptions.get(pattern)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscriptions[pattern]

        return unsubscribe

    def on_player_join(self, callback: EventCallback) -> Callable[[], None]:
        return self.on_event("entity.join", callback)

    def on_player_leave(self, callback: EventCallback) -> Callable[[], None]:
        return self.on_event("entity.leave", callback)

    def on_player_death(self, callback: EventCallback) -> Callable[[], None]:
        return self.on_event("entity.death.*", callback)

    def on_command(self, callback: EventCallback) -> Callable[[], None]:
        return self.on_event("command.*", callback)

    def on_world_event(self, callback: EventCallback) -> Callable[[], None]:
        """Time, weather, difficulty, game mode and save events."""
        return self.on_event("world.*", callback)

    def get_subscriptions(self) -> list[dict[str, Any]]:
        return [
            {"pattern": pattern, "callback_count": len(callbacks)}
            for pattern, callbacks in self._subscriptions.items()
        ]

    def clear_subscriptions(self) -> None:
        self._subscriptions.clear()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, stream_config: StreamConfig | None = None) -> None:
        if self._observing:
            raise RuntimeError("EventObserver is already observing")
        await self.monitor.start(stream_config)
        self._observing = True
        self.events.emit("start")

    async def stop(self) -> None:
        if not self._observing:
            return
        self._observing = False
        await self.monitor.stop()
        self.events.emit("stop")

    def close(self) -> None:
        """Detach from the monitor and drop every subscription."""
        self._detach()
        self.clear_subscriptions()

    def _handle_event(self, event: ParsedEvent) -> None:
        for pattern, callbacks in list(self._subscriptions.items()):
            if not matches_event_type(event.type, pattern):
                continue
            for callback in list(callbacks):
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observer callback for '{pattern}' failed: {e}")
                    self.events.emit(MonitorEvent.ERROR, e, event)
