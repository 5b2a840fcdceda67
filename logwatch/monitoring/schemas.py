"""
Event, Session and routing schemas for the monitoring pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ConnectionState(str, Enum):
    """Lifecycle states of a log collector."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    DISCONNECTING = "DISCONNECTING"
    ERROR = "ERROR"


def is_terminal(state: ConnectionState) -> bool:
    """Check if no further transitions happen without a new connect()."""
    return state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR)


def can_operate(state: ConnectionState) -> bool:
    """Check if the collector is currently delivering lines."""
    return state is ConnectionState.CONNECTED


def is_transitioning(state: ConnectionState) -> bool:
    """Check if the collector is between two stable states."""
    return state in (
        ConnectionState.CONNECTING,
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTING,
    )


class Channel(str, Enum):
    """Delivery channels for outbound commands."""

    BOT = "bot"  # actor-simulated
    RCON = "rcon"  # privileged/administrative
    LOG = "log"  # send and await a correlated confirmation


class OverflowPolicy(str, Enum):
    """What a full buffer does on push."""

    DISCARD_OLDEST = "discard_oldest"
    RAISE = "raise"


@dataclass(frozen=True)
class ParsedEvent:
    """Structured event extracted from one raw log line.

    Immutable once produced. The same instance is shared by the buffer and
    any correlation session.
    """

    type: str
    data: Mapping[str, Any]
    raw: str

    # Optional line metadata ([HH:MM:SS] [Thread/LEVEL]: ...)
    timestamp: str | None = None
    thread: str | None = None
    level: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data or {})))

    def get(self, key: str, default: Any = None) -> Any:
        """Shortcut for ``event.data.get(key)``."""
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display/serialization."""
        return {
            "type": self.type,
            "data": dict(self.data),
            "raw": self.raw,
            "timestamp": self.timestamp,
            "thread": self.thread,
            "level": self.level,
        }


@dataclass
class Session:
    """Append-ordered aggregate of events sharing one correlation key."""

    key: str
    events: list[ParsedEvent] = field(default_factory=list)
    active: bool = True

    # Wall-clock metadata (None when metadata is disabled)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Monotonic time of the last correlate() touching this session
    last_touched: float = 0.0

    def append(self, event: ParsedEvent, now: float) -> None:
        """Append an event in arrival order."""
        self.events.append(event)
        self.last_touched = now

    def close(self, ended_at: datetime | None) -> None:
        """Mark the session inactive."""
        self.active = False
        self.ended_at = ended_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display/serialization."""
        return {
            "key": self.key,
            "events": [e.to_dict() for e in self.events],
            "active": self.active,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass(frozen=True)
class RoutingDecision:
    """Channel chosen for a command, plus the options it was routed with."""

    channel: Channel
    options: dict[str, Any] = field(default_factory=dict)
