"""
Correlation Strategies - group parsed events into sessions by key.

Two variants share the same contract:

- ``TagCorrelationStrategy``: key is an opaque tag/transaction id carried in
  the event data; idle sessions expire through a periodic sweep.
- ``IdentityCorrelationStrategy``: key is an actor identity (a player name);
  sessions close on a configured closing event type.

A session's event list is append-only in arrival order. Events without an
extractable key never touch any session.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, runtime_checkable

from logwatch.monitoring.config import CorrelationConfig
from logwatch.monitoring.events import CorrelationEvent, EventBus
from logwatch.monitoring.scheduler import PeriodicTask
from logwatch.monitoring.schemas import ParsedEvent, Session
from logwatch.shared.config import settings
from logwatch.shared.logger import get_logger

logger = get_logger()

KeyExtractor = Callable[[ParsedEvent], Any]


@runtime_checkable
class CorrelationStrategy(Protocol):
    """Groups events into sessions by an extracted key."""

    events: EventBus

    def correlate(self, event: ParsedEvent | None) -> Session | None:
        ...

    def get_active_correlations(self) -> list[Session]:
        ...

    def get_correlation(self, key: str) -> Session | None:
        ...

    def reset(self) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Keyed session table with idle-timeout expiry."""

    def __init__(
        self,
        config: CorrelationConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.clock = clock
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def values(self) -> list[Session]:
        return list(self._sessions.values())

    def open(self, key: str) -> Session:
        """Create and store a fresh session for ``key``."""
        session = Session(
            key=key,
            started_at=_utcnow() if self.config.include_metadata else None,
            last_touched=self.clock(),
        )
        self._sessions[key] = session
        return session

    def append(self, session: Session, event: ParsedEvent) -> None:
        session.append(event, self.clock())

    def close(self, session: Session) -> None:
        session.close(_utcnow() if self.config.include_metadata else None)
        if self.config.auto_cleanup:
            self._sessions.pop(session.key, None)

    def clear(self) -> None:
        self._sessions.clear()

    def expire(self) -> int:
        """Remove sessions untouched for longer than the timeout."""
        if not self.config.timeout:
            return 0

        threshold = self.clock() - self.config.timeout
        expired = [key for key, s in self._sessions.items() if s.last_touched < threshold]
        for key in expired:
            del self._sessions[key]
        return len(expired)


class _SweepMixin:
    """Periodic expiry sweep shared by both strategies."""

    _store: SessionStore
    _sweep: PeriodicTask | None
    events: EventBus

    def start(self) -> None:
        """Start the expiry sweep (requires a running event loop)."""
        if self._sweep is not None or not self._store.config.timeout:
            return
        self._sweep = PeriodicTask(
            self._store.config.cleanup_interval,
            self.cleanup,
            name=f"{type(self).__name__}-sweep",
        )

    def stop(self) -> None:
        """Stop the expiry sweep. Sessions are kept."""
        sweep, self._sweep = self._sweep, None
        if sweep is not None:
            sweep.cancel()

    destroy = stop

    def cleanup(self) -> int:
        """Remove expired sessions now.

        Returns:
            Number of sessions removed (also published as ``cleanup``)
        """
        removed = self._store.expire()
        if removed:
            logger.debug(f"{type(self).__name__}: expired {removed} session(s)")
            self.events.emit(CorrelationEvent.CLEANUP, removed)
        return removed

    @property
    def size(self) -> int:
        return len(self._store)

    def get_active_correlations(self) -> list[Session]:
        return self._store.values()

    def get_correlation(self, key: str) -> Session | None:
        return self._store.get(key)

    def reset(self) -> None:
        """Drop every session."""
        self._store.clear()
        self.events.emit(CorrelationEvent.RESET)


# =============================================================================
# Tag / transaction correlation
# =============================================================================


def default_tag_extractor(event: ParsedEvent) -> Any:
    return event.data.get("tag")


class TagCorrelationStrategy(_SweepMixin):
    """Correlates events sharing an opaque tag; idle tags expire."""

    def __init__(
        self,
        tag_extractor: KeyExtractor | None = None,
        config: CorrelationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the strategy.

        Args:
            tag_extractor: Returns the tag of an event, or None (default: ``data["tag"]``)
            config: Correlation options (a missing timeout falls back to settings)
            clock: Monotonic clock used for expiry
        """
        self.tag_extractor = tag_extractor or default_tag_extractor
        config = config or CorrelationConfig()
        if not config.timeout:
            config = config.model_copy(update={"timeout": settings.tag_correlation_timeout})
        self.config = config
        self.events = EventBus("tag-correlation")
        self._store = SessionStore(self.config, clock)
        self._sweep: PeriodicTask | None = None

    def correlate(self, event: ParsedEvent | None) -> Session | None:
        if event is None:
            return None

        tag = self.tag_extractor(event)
        if not tag:
            return None

        session = self._store.get(tag) or self._store.open(tag)
        self._store.append(session, event)
        return session


# =============================================================================
# Identity / session correlation
# =============================================================================


def default_identity_extractor(event: ParsedEvent) -> Any:
    return event.data.get("player")


class IdentityCorrelationStrategy(_SweepMixin):
    """Tracks one session per actor, closed by a configured event type.

    Under ``auto_cleanup`` a closed session is deleted immediately; consumers
    that need its final state should read it from the ``session``
    notification published on every ``correlate()`` call.
    """

    def __init__(
        self,
        identity_extractor: KeyExtractor | None = None,
        closing_event_type: str = "entity.leave",
        config: CorrelationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.identity_extractor = identity_extractor or default_identity_extractor
        self.closing_event_type = closing_event_type
        self.config = config or CorrelationConfig()
        self.events = EventBus("identity-correlation")
        self._store = SessionStore(self.config, clock)
        self._sweep: PeriodicTask | None = None

    def correlate(self, event: ParsedEvent | None) -> Session | None:
        if event is None:
            return None

        key = self.identity_extractor(event)
        if not key:
            return None

        session = self._store.get(key)
        if session is None or not session.active:
            # A closed session kept around (auto_cleanup off) is replaced, not reopened
            session = self._store.open(key)

        self._store.append(session, event)
        if event.type == self.closing_event_type:
            self._store.close(session)

        self.events.emit(CorrelationEvent.SESSION, session)
        return session

    def has_active_session(self, key: str) -> bool:
        session = self._store.get(key)
        return bool(session and session.active)

    def list_active_keys(self) -> list[str]:
        """Keys of all active sessions, in session creation order."""
        return [s.key for s in self._store.values() if s.active]

    def end_session(self, key: str) -> bool:
        """Close a session manually.

        Returns:
            False if there is no active session for ``key``
        """
        session = self._store.get(key)
        if session is None or not session.active:
            return False

        self._store.close(session)
        self.events.emit(CorrelationEvent.SESSION_END, session)
        return True

    def get_statistics(self) -> dict[str, int]:
        sessions = self._store.values()
        active = sum(1 for s in sessions if s.active)
        return {"total": len(sessions), "active": active, "inactive": len(sessions) - active}
