"""
Typed event bus used for every component notification.

Handlers are plain callables invoked synchronously, in subscription order,
inside ``emit()``. That keeps line-arrival order intact end to end: by the
time ``emit()`` returns, every subscriber has seen the notification.
"""

from enum import Enum
from typing import Any, Callable

from logwatch.shared.logger import get_logger

logger = get_logger()

Handler = Callable[..., Any]


class CollectorEvent(str, Enum):
    """Notifications published by log collectors."""

    DATA = "data"
    ERROR = "error"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    END = "end"
    DISCONNECTED = "disconnected"
    PAUSED = "paused"
    RESUMED = "resumed"


class MonitorEvent(str, Enum):
    """Notifications published by the log monitor."""

    EVENT = "event"
    CORRELATION = "correlation"
    ERROR = "error"
    START = "start"
    STOP = "stop"
    CLEAR = "clear"


class CorrelationEvent(str, Enum):
    """Notifications published by correlation strategies."""

    SESSION = "session"
    SESSION_END = "session_end"
    CLEANUP = "cleanup"
    RESET = "reset"


class ParserEvent(str, Enum):
    """Notifications published by pattern parsers."""

    PARSE_ERROR = "parse_error"


class EventBus:
    """Minimal synchronous publish/subscribe channel."""

    def __init__(self, owner: str = "bus"):
        self.owner = owner
        self._handlers: dict[str, list[Handler]] = {}

    @staticmethod
    def _key(event: str | Enum) -> str:
        return event.value if isinstance(event, Enum) else event

    def on(self, event: str | Enum, handler: Handler) -> Callable[[], None]:
        """Subscribe a handler.

        Returns:
            Callable that removes this subscription
        """
        self._handlers.setdefault(self._key(event), []).append(handler)
        return lambda: self.off(event, handler)

    def once(self, event: str | Enum, handler: Handler) -> Callable[[], None]:
        """Subscribe a handler that fires at most once."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return handler(*args)

        return self.on(event, wrapper)

    def off(self, event: str | Enum, handler: Handler) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        handlers = self._handlers.get(self._key(event))
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[self._key(event)]
        return True

    def clear(self, event: str | Enum | None = None) -> None:
        """Drop all subscriptions, or those of one event."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(self._key(event), None)

    def listener_count(self, event: str | Enum) -> int:
        return len(self._handlers.get(self._key(event), ()))

    def emit(self, event: str | Enum, *args: Any) -> bool:
        """Publish a notification to every current subscriber.

        A failing subscriber is logged and skipped; it never prevents the
        remaining subscribers (or the publisher) from running.

        Returns:
            True if at least one subscriber was notified
        """
        handlers = list(self._handlers.get(self._key(event), ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"{self.owner}: subscriber for '{self._key(event)}' failed: {e}")
        return bool(handlers)
