"""
Log monitoring pipeline for logwatch.

Raw lines flow from a collector through a pattern parser into a bounded
event history, an optional correlation strategy, and subscribers.
"""

from logwatch.monitoring.buffer import CircularBuffer
from logwatch.monitoring.collector import LogCollector, StreamSource, StreamTailer
from logwatch.monitoring.config import CorrelationConfig, MonitorConfig, ReconnectPolicy, StreamConfig
from logwatch.monitoring.correlation import (
    CorrelationStrategy,
    IdentityCorrelationStrategy,
    TagCorrelationStrategy,
)
from logwatch.monitoring.docker_source import DockerStreamSource
from logwatch.monitoring.errors import (
    BufferOverflow,
    ConnectionError,
    CorrelationError,
    DockerConnectionError,
    LogwatchError,
    ParseError,
    PatternError,
    ResourceError,
    ResponseTimeout,
    RoutingError,
    StreamError,
)
from logwatch.monitoring.events import CollectorEvent, CorrelationEvent, EventBus, MonitorEvent, ParserEvent
from logwatch.monitoring.monitor import LogMonitor
from logwatch.monitoring.observer import EventObserver
from logwatch.monitoring.parser import LogParser, PatternLogParser, create_minecraft_parser
from logwatch.monitoring.patterns import PatternRegistry
from logwatch.monitoring.router import CommandRouter, DefaultCommandRouter, RoutingContext, await_confirmation
from logwatch.monitoring.schemas import (
    Channel,
    ConnectionState,
    OverflowPolicy,
    ParsedEvent,
    RoutingDecision,
    Session,
    can_operate,
    is_terminal,
    is_transitioning,
)

__all__ = [
    # Pipeline
    "LogCollector",
    "StreamSource",
    "StreamTailer",
    "DockerStreamSource",
    "LogParser",
    "PatternLogParser",
    "PatternRegistry",
    "create_minecraft_parser",
    "CircularBuffer",
    "CorrelationStrategy",
    "TagCorrelationStrategy",
    "IdentityCorrelationStrategy",
    "LogMonitor",
    "EventObserver",
    "CommandRouter",
    "DefaultCommandRouter",
    "RoutingContext",
    "await_confirmation",
    # Config
    "CorrelationConfig",
    "MonitorConfig",
    "ReconnectPolicy",
    "StreamConfig",
    # Schemas
    "Channel",
    "ConnectionState",
    "OverflowPolicy",
    "ParsedEvent",
    "RoutingDecision",
    "Session",
    "can_operate",
    "is_terminal",
    "is_transitioning",
    # Events
    "CollectorEvent",
    "CorrelationEvent",
    "EventBus",
    "MonitorEvent",
    "ParserEvent",
    # Errors
    "BufferOverflow",
    "ConnectionError",
    "CorrelationError",
    "DockerConnectionError",
    "LogwatchError",
    "ParseError",
    "PatternError",
    "ResourceError",
    "ResponseTimeout",
    "RoutingError",
    "StreamError",
]
