"""
Log Collector - source-agnostic line streams with automatic reconnection.

A collector only delivers raw lines. Parsing belongs to the parser and
grouping to the correlation strategy.
"""

import asyncio
import codecs
import re
from typing import Any, AsyncIterator, Protocol, runtime_checkable

from logwatch.monitoring.config import ReconnectPolicy, StreamConfig
from logwatch.monitoring.errors import ConnectionError, LogwatchError, StreamError
from logwatch.monitoring.events import CollectorEvent, EventBus
from logwatch.monitoring.scheduler import ScheduledTask
from logwatch.monitoring.schemas import ConnectionState, can_operate
from logwatch.shared.logger import get_logger

logger = get_logger()

# CSI sequences in their 7-bit (ESC [) and 8-bit (0x9B) forms. A raw 0x9B byte
# is not valid UTF-8 on its own and arrives as the escaped surrogate U+DC9B.
ANSI_RE = re.compile(r"[\u001b\u009b\udc9b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]")


def strip_ansi(line: str) -> str:
    """Remove ANSI colour/control sequences from a line."""
    return ANSI_RE.sub("", line)


def _new_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="surrogateescape")


# Bytes that were not valid UTF-8, as escaped by the decoder
UNDECODED_RE = re.compile(r"[\udc80-\udcff]")


def _scrub(line: str) -> str:
    return UNDECODED_RE.sub("\ufffd", line)


# =============================================================================
# Contracts
# =============================================================================


@runtime_checkable
class StreamHandle(Protocol):
    """Open log stream: async-iterable byte chunks that can be closed."""

    def __aiter__(self) -> AsyncIterator[bytes]:
        ...

    async def aclose(self) -> None:
        ...


@runtime_checkable
class StreamSource(Protocol):
    """Remote process exposing its output as a line stream."""

    async def inspect(self, source_id: str) -> dict[str, Any]:
        """Existence/health check. Raises if the source is missing or unreachable."""
        ...

    async def open_stream(self, source_id: str, options: dict[str, Any]) -> StreamHandle:
        ...


@runtime_checkable
class LogCollector(Protocol):
    """Source-agnostic line stream.

    Publishes ``data(line)``, ``error(exc)``, ``connected``, ``reconnecting``,
    ``end`` and ``disconnected`` on ``events``.
    """

    events: EventBus

    @property
    def connected(self) -> bool:
        ...

    @property
    def paused(self) -> bool:
        ...

    async def connect(self, config: StreamConfig) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...


# =============================================================================
# Stream Tailer
# =============================================================================


class StreamTailer:
    """Tails a remote line stream and recovers from unexpected termination.

    Reconnect delays grow as ``min(delay * 2**attempt_index, max_delay)``.
    The attempt counter resets only on a caller-initiated ``connect()``; a
    successful reconnect keeps counting, so a flapping source keeps backing
    off instead of returning to the base delay.
    """

    def __init__(self, source: StreamSource, policy: ReconnectPolicy | None = None):
        """Initialize the tailer.

        Args:
            source: Stream source providing ``inspect`` and ``open_stream``
            policy: Reconnection backoff parameters (defaults to settings)
        """
        self.source = source
        self.policy = policy or ReconnectPolicy()
        self.events = EventBus("tailer")

        self._state = ConnectionState.DISCONNECTED
        self._paused = False
        self._config: StreamConfig | None = None
        self._handle: StreamHandle | None = None
        self._reader: asyncio.Task | None = None
        self._reconnect_task: ScheduledTask | None = None
        self._reconnect_count = 0
        self._retrying = False
        self._pending = ""
        self._decoder = _new_decoder()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return can_operate(self._state)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def config(self) -> StreamConfig | None:
        return self._config

    def get_reconnect_status(self) -> dict[str, Any]:
        """Current reconnection attempt, budget and whether a retry is pending."""
        return {
            "attempt": self._reconnect_count,
            "max_attempts": self.policy.attempts,
            "reconnecting": self._reconnect_task is not None and self._reconnect_task.pending,
        }

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, config: StreamConfig) -> None:
        """Verify the source and start streaming its lines.

        Raises:
            ConnectionError: The source is missing or unreachable (not retried)
        """
        if self.connected:
            await self.disconnect()

        if not self._retrying:
            self._cancel_reconnect()
            self._reconnect_count = 0

        self._config = config
        self._state = ConnectionState.CONNECTING
        source_id = config.source_id

        try:
            await self.source.inspect(source_id)
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            raise self._connection_error(f"Source not found or unreachable: {source_id}", e) from e

        try:
            handle = await self.source.open_stream(source_id, config.stream_options())
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            raise self._connection_error(f"Could not open log stream: {source_id}", e) from e

        self._handle = handle
        self._pending = ""
        self._decoder = _new_decoder()
        self._state = ConnectionState.CONNECTED
        self._reader = asyncio.create_task(self._pump(handle), name=f"tail:{source_id}")

        logger.stream(source_id, "connected")
        self.events.emit(CollectorEvent.CONNECTED)

    def _connection_error(self, message: str, cause: BaseException) -> ConnectionError:
        if isinstance(cause, ConnectionError):
            return cause
        config = self._config.model_dump() if self._config else {}
        return ConnectionError(message, source_id=config.get("source_id"), details={"config": config}, cause=cause)

    async def disconnect(self) -> None:
        """Stop streaming, cancel any pending reconnect and release the stream."""
        self._cancel_reconnect()
        self._state = ConnectionState.DISCONNECTING

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.wait([reader])

        await self._close_handle()
        self._state = ConnectionState.DISCONNECTED
        self._pending = ""

        if self._config:
            logger.stream(self._config.source_id, "disconnected")
        self.events.emit(CollectorEvent.DISCONNECTED)

    async def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.aclose()
        except Exception as e:
            logger.debug(f"Error closing log stream: {e}")

    def pause(self) -> None:
        """Stop emitting ``data`` without disconnecting. Idempotent."""
        if self._paused:
            return
        self._paused = True
        self.events.emit(CollectorEvent.PAUSED)

    def resume(self) -> None:
        """Resume emitting ``data``. Lines received while paused are not replayed."""
        if not self._paused:
            return
        self._paused = False
        self.events.emit(CollectorEvent.RESUMED)

    # =========================================================================
    # Streaming
    # =========================================================================

    def _emit_line(self, text: str) -> None:
        line = _scrub(strip_ansi(text.strip()))
        if not line or not self.connected or self._paused:
            return
        self.events.emit(CollectorEvent.DATA, line)

    def _feed(self, chunk: bytes | str) -> None:
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        *complete, self._pending = (self._pending + text).split("\n")
        for line in complete:
            self._emit_line(line)

    async def _pump(self, handle: StreamHandle) -> None:
        """Read chunks until the stream ends, then apply the reconnect policy."""
        try:
            async for chunk in handle:
                if handle is not self._handle:
                    return
                self._feed(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            source_id = self._config.source_id if self._config else None
            logger.warning(f"Log stream error ({source_id}): {e}")
            self.events.emit(
                CollectorEvent.ERROR,
                StreamError("Log stream error", {"source_id": source_id}, e),
            )

        if handle is not self._handle:
            return
        self._pending += self._decoder.decode(b"", final=True)
        if self._pending:
            tail, self._pending = self._pending, ""
            self._emit_line(tail)
        await self._close_handle()
        self._reader = None
        self._handle_stream_end()

    def _handle_stream_end(self) -> None:
        config = self._config
        should_reconnect = (
            config is not None
            and not config.disable_auto_reconnect
            and self._reconnect_count < self.policy.attempts
        )
        if should_reconnect:
            self._schedule_reconnect()
        else:
            self._emit_end()

    def _emit_end(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        config = self._config.model_dump() if self._config else {}
        if self._reconnect_count >= self.policy.attempts and self.policy.attempts > 0:
            error = ConnectionError(
                f"Reconnection attempts exhausted ({self._reconnect_count}/{self.policy.attempts})",
                source_id=config.get("source_id"),
                details={"config": config, "policy": self.policy.model_dump()},
            )
            logger.error(str(error))
            self.events.emit(CollectorEvent.ERROR, error)
        else:
            logger.stream(str(config.get("source_id")), "stream ended")
        self.events.emit(CollectorEvent.END)

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()

        delay = self.policy.delay_for(self._reconnect_count)
        self._reconnect_count += 1
        self._state = ConnectionState.RECONNECTING

        status = {
            "attempt": self._reconnect_count,
            "max_attempts": self.policy.attempts,
            "delay": delay,
        }
        logger.stream(
            self._config.source_id,
            f"reconnecting in {delay:g}s (attempt {self._reconnect_count}/{self.policy.attempts})",
        )
        self.events.emit(CollectorEvent.RECONNECTING, status)
        self._reconnect_task = ScheduledTask(delay, self._reconnect, name="tailer-reconnect")

    async def _reconnect(self) -> None:
        self._retrying = True
        try:
            await self.connect(self._config)
        except LogwatchError as e:
            logger.warning(f"Reconnect attempt {self._reconnect_count} failed: {e.message}")
            self.events.emit(CollectorEvent.ERROR, e)
            self._handle_stream_end()
        finally:
            self._retrying = False

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None:
            task.cancel()
