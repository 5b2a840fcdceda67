"""
Shared pytest fixtures for the logwatch test suite.

Provides an in-memory stream source whose handles are fed by the test, a
collector double that emits lines synchronously, and small async helpers.
"""

import asyncio
from typing import Any, Callable

import pytest

from logwatch.monitoring.config import ReconnectPolicy, StreamConfig
from logwatch.monitoring.events import CollectorEvent, EventBus

_END = object()


class FakeStreamHandle:
    """Open stream whose chunks are pushed by the test."""

    def __init__(self, source_id: str, options: dict[str, Any]):
        self.source_id = source_id
        self.options = options
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def feed(self, *chunks: bytes | str) -> None:
        for chunk in chunks:
            self._queue.put_nowait(chunk)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def aclose(self) -> None:
        self.closed = True
        self._queue.put_nowait(_END)


class FakeStreamSource:
    """In-memory stream source.

    ``available = False`` makes every inspect fail, which is how tests
    simulate a source that disappeared between reconnect attempts.
    """

    def __init__(self, known: set[str] | None = None):
        self.known = known if known is not None else {"server"}
        self.available = True
        self.handles: list[FakeStreamHandle] = []
        self.inspect_calls: list[str] = []
        self.closed = False

    async def inspect(self, source_id: str) -> dict[str, Any]:
        self.inspect_calls.append(source_id)
        if not self.available:
            raise OSError("source unreachable")
        if source_id not in self.known:
            raise LookupError(f"no such source: {source_id}")
        return {"Id": source_id}

    async def open_stream(self, source_id: str, options: dict[str, Any]) -> FakeStreamHandle:
        handle = FakeStreamHandle(source_id, options)
        self.handles.append(handle)
        return handle

    async def aclose(self) -> None:
        self.closed = True

    @property
    def current(self) -> FakeStreamHandle:
        return self.handles[-1]


class FakeCollector:
    """Collector double: lines are emitted synchronously via ``push``."""

    def __init__(self, fail_with: Exception | None = None):
        self.events = EventBus("fake-collector")
        self.fail_with = fail_with
        self.config: StreamConfig | None = None
        self._connected = False
        self._paused = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def paused(self) -> bool:
        return self._paused

    async def connect(self, config: StreamConfig) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.config = config
        self._connected = True
        self.events.emit(CollectorEvent.CONNECTED)

    async def disconnect(self) -> None:
        self._connected = False
        self.events.emit(CollectorEvent.DISCONNECTED)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def end(self) -> None:
        """Stream ended for good (reconnects exhausted or disabled)."""
        self._connected = False
        self.events.emit(CollectorEvent.END)

    def push(self, *lines: str) -> None:
        for line in lines:
            if self._connected and not self._paused:
                self.events.emit(CollectorEvent.DATA, line)


async def wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``condition`` until it holds, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class Recorder:
    """Collects every notification published for one event name."""

    def __init__(self, bus: EventBus, event: Any):
        self.calls: list[tuple] = []
        bus.on(event, self)

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def values(self) -> list[Any]:
        """First argument of every call."""
        return [args[0] if args else None for args in self.calls]

    def __len__(self) -> int:
        return len(self.calls)


@pytest.fixture
def source() -> FakeStreamSource:
    return FakeStreamSource()


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    """Millisecond-scale backoff so reconnect tests run quickly."""
    return ReconnectPolicy(delay=0.01, max_delay=0.04, attempts=4)


@pytest.fixture
def stream_config() -> StreamConfig:
    return StreamConfig(source_id="server")


@pytest.fixture
def fake_collector() -> FakeCollector:
    return FakeCollector()
