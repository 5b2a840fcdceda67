"""
Log Monitor - wires collector -> parser -> buffer -> correlation -> subscribers.
"""

import asyncio
from typing import Any, Callable

from logwatch.monitoring.buffer import CircularBuffer
from logwatch.monitoring.collector import LogCollector
from logwatch.monitoring.config import MonitorConfig, StreamConfig
from logwatch.monitoring.correlation import CorrelationStrategy
from logwatch.monitoring.errors import BufferOverflow, ResponseTimeout
from logwatch.monitoring.events import CollectorEvent, EventBus, MonitorEvent, ParserEvent
from logwatch.monitoring.parser import LogParser
from logwatch.monitoring.schemas import ParsedEvent, Session
from logwatch.shared.logger import get_logger

logger = get_logger()

EventPredicate = Callable[[ParsedEvent], bool]


class LogMonitor:
    """Orchestrates one collector, one parser and an optional correlation strategy.

    Every line delivered by the collector is parsed, buffered, published and
    correlated synchronously before the next line is handled, so subscribers
    observe notifications in exact line-arrival order.

    Notifications: ``event(ParsedEvent)``, ``correlation(Session)``,
    ``error(LogwatchError)``, ``start``, ``stop``, ``clear``.
    """

    def __init__(
        self,
        collector: LogCollector,
        parser: LogParser,
        correlation: CorrelationStrategy | None = None,
        config: MonitorConfig | None = None,
        stream_config: StreamConfig | None = None,
    ):
        """Initialize the monitor.

        Args:
            collector: Line source
            parser: Line -> event parser
            correlation: Optional session grouping
            config: Buffer size and overflow policy
            stream_config: Default configuration for ``start()``
        """
        if collector is None:
            raise ValueError("A log collector is required")
        if parser is None:
            raise ValueError("A log parser is required")

        self.collector = collector
        self.parser = parser
        self.correlation = correlation
        self.config = config or MonitorConfig()
        self.stream_config = stream_config
        self.events = EventBus("monitor")

        self._buffer: CircularBuffer[ParsedEvent] = CircularBuffer(
            self.config.buffer_size, self.config.overflow_policy
        )
        self._running = False
        self._unsubscribe: list[Callable[[], Any]] = []
        self._waiters: list[tuple[EventPredicate, asyncio.Future]] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self.collector.paused

    async def start(self, stream_config: StreamConfig | None = None) -> None:
        """Connect the collector and begin processing lines.

        Raises:
            RuntimeError: The monitor is already running
            ConnectionError: The collector could not connect
        """
        if self._running:
            raise RuntimeError("LogMonitor is already running")

        config = stream_config or self.stream_config
        if config is None:
            raise ValueError("A stream configuration is required to start the monitor")

        self._subscribe()
        try:
            await self.collector.connect(config)
        except Exception:
            self._unsubscribe_all()
            raise

        self.stream_config = config
        self._running = True
        if self.correlation is not None and hasattr(self.correlation, "start"):
            self.correlation.start()

        logger.info(f"Log monitor started for {config.source_id}")
        self.events.emit(MonitorEvent.START)

    async def stop(self) -> None:
        """Disconnect the collector. Buffered history is kept."""
        if not self._running:
            return

        self._running = False
        self._unsubscribe_all()
        await self.collector.disconnect()
        if self.correlation is not None and hasattr(self.correlation, "stop"):
            self.correlation.stop()

        logger.info("Log monitor stopped")
        self.events.emit(MonitorEvent.STOP)

    def pause(self) -> None:
        self.collector.pause()

    def resume(self) -> None:
        self.collector.resume()

    def _subscribe(self) -> None:
        self._unsubscribe = [
            self.collector.events.on(CollectorEvent.DATA, self.handle_line),
            self.collector.events.on(CollectorEvent.ERROR, self._forward_error),
            self.collector.events.on(CollectorEvent.END, self._on_collector_end),
        ]
        parser_events = getattr(self.parser, "events", None)
        if isinstance(parser_events, EventBus):
            self._unsubscribe.append(parser_events.on(ParserEvent.PARSE_ERROR, self._forward_error))

    def _unsubscribe_all(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _forward_error(self, error: Exception) -> None:
        self.events.emit(MonitorEvent.ERROR, error)

    def _on_collector_end(self) -> None:
        """The stream ended for good: release subscriptions and the sweep."""
        if not self._running:
            return

        self._running = False
        self._unsubscribe_all()
        if self.correlation is not None and hasattr(self.correlation, "stop"):
            self.correlation.stop()

        logger.info("Log monitor stopped: stream ended")
        self.events.emit(MonitorEvent.STOP)

    # =========================================================================
    # Line processing
    # =========================================================================

    def handle_line(self, line: str) -> ParsedEvent | None:
        """Process one raw line through the pipeline.

        Returns:
            The parsed event, or None when the line produced no event
        """
        event = self.parser.parse(line)
        if event is None:
            return None

        try:
            self._buffer.push(event)
        except BufferOverflow as e:
            logger.warning(f"Event dropped from history: {e.message}")
            self.events.emit(MonitorEvent.ERROR, e)

        self.events.emit(MonitorEvent.EVENT, event)

        if self.correlation is not None:
            session = self.correlation.correlate(event)
            if session is not None:
                self.events.emit(MonitorEvent.CORRELATION, session)

        if self._waiters:
            self._resolve_waiters(event)

        return event

    def _resolve_waiters(self, event: ParsedEvent) -> None:
        for predicate, future in list(self._waiters):
            if future.done():
                continue
            try:
                matched = predicate(event)
            except Exception as e:
                logger.warning(f"Event predicate failed: {e}")
                continue
            if matched:
                future.set_result(event)

    async def wait_for_event(
        self,
        predicate: EventPredicate | str,
        timeout: float,
        command: str | None = None,
    ) -> ParsedEvent:
        """Wait for the next event satisfying ``predicate``.

        Args:
            predicate: Callable on the event, or an event type name
            timeout: Seconds to wait
            command: Command being confirmed (reported on timeout)

        Raises:
            ResponseTimeout: No matching event within ``timeout``
        """
        if isinstance(predicate, str):
            event_type = predicate
            predicate = lambda e: e.type == event_type  # noqa: E731

        future = asyncio.get_running_loop().create_future()
        waiter = (predicate, future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as e:
            raise ResponseTimeout(command, timeout) from e
        finally:
            self._waiters.remove(waiter)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_events(self) -> list[ParsedEvent]:
        """Buffered events, oldest first."""
        return self._buffer.get_all()

    def get_recent_events(self, count: int = 10) -> list[ParsedEvent]:
        return self._buffer.slice(max(0, self._buffer.size - count))

    def get_correlations(self) -> list[Session]:
        if self.correlation is None:
            return []
        return self.correlation.get_active_correlations()

    get_active_correlations = get_correlations

    def clear(self) -> None:
        """Drop buffered history."""
        self._buffer.clear()
        self.events.emit(MonitorEvent.CLEAR)

    @property
    def buffer_size(self) -> int:
        return self._buffer.size

    @property
    def buffer_capacity(self) -> int:
        return self._buffer.max_size
