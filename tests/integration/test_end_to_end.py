"""
End-to-end tests: stream source -> tailer -> parser -> buffer -> correlation.

These run the real StreamTailer against the in-memory stream source (and
against the Docker source over an httpx mock transport), so line framing,
ordering and reconnection are exercised together.
"""

import httpx
import pytest

from logwatch.monitoring.collector import StreamTailer
from logwatch.monitoring.config import MonitorConfig, ReconnectPolicy, StreamConfig
from logwatch.monitoring.correlation import IdentityCorrelationStrategy, TagCorrelationStrategy
from logwatch.monitoring.docker_source import DockerStreamSource
from logwatch.monitoring.events import CollectorEvent, MonitorEvent
from logwatch.monitoring.monitor import LogMonitor
from logwatch.monitoring.parser import PatternLogParser, create_minecraft_parser
from logwatch.monitoring.router import DefaultCommandRouter, await_confirmation
from logwatch.monitoring.schemas import Channel

from conftest import Recorder, wait_until


def _letter_parser() -> PatternLogParser:
    parser = PatternLogParser()
    parser.add_pattern(
        "letter",
        r"^(\w)(?: tag=(\w+))?$",
        lambda m: {"letter": m.group(1), "tag": m.group(2)},
    )
    return parser


@pytest.fixture
async def pipeline(source, fast_policy, stream_config):
    tailer = StreamTailer(source, fast_policy)
    correlation = TagCorrelationStrategy()
    monitor = LogMonitor(tailer, _letter_parser(), correlation)
    await monitor.start(stream_config)
    yield monitor, tailer, correlation
    await monitor.stop()


def _letters(events) -> list[str]:
    return [e.data["letter"] for e in events]


async def test_tagged_lines_form_one_session(pipeline, source):
    monitor, _, correlation = pipeline
    events = Recorder(monitor.events, MonitorEvent.EVENT)

    source.current.feed(b"A\nB tag=t1\nC\n", b"D tag=t1\nE\n")
    await wait_until(lambda: len(events) == 5)

    assert _letters(monitor.get_events()) == ["A", "B", "C", "D", "E"]
    assert _letters(correlation.get_correlation("t1").events) == ["B", "D"]
    assert correlation.size == 1


async def test_session_survives_buffer_eviction(source, stream_config):
    tailer = StreamTailer(source, ReconnectPolicy(attempts=0))
    correlation = TagCorrelationStrategy()
    monitor = LogMonitor(tailer, _letter_parser(), correlation, MonitorConfig(buffer_size=2))
    events = Recorder(monitor.events, MonitorEvent.EVENT)
    await monitor.start(stream_config)

    source.current.feed(b"A tag=t1\nB\nC\nD tag=t1\n")
    await wait_until(lambda: len(events) == 4)

    assert _letters(monitor.get_events()) == ["C", "D"]
    assert _letters(correlation.get_correlation("t1").events) == ["A", "D"]
    await monitor.stop()


async def test_lines_keep_order_across_reconnect(pipeline, source):
    monitor, tailer, _ = pipeline
    connected = Recorder(tailer.events, CollectorEvent.CONNECTED)
    events = Recorder(monitor.events, MonitorEvent.EVENT)

    source.current.feed(b"A\nB tag=t1\n")
    await wait_until(lambda: len(events) == 2)
    source.current.end()
    await wait_until(lambda: len(connected) == 1)

    source.current.feed(b"C tag=t1\n")
    await wait_until(lambda: len(events) == 3)

    assert _letters(monitor.get_events()) == ["A", "B", "C"]
    assert _letters(monitor.get_correlations()[0].events) == ["B", "C"]


async def test_router_and_confirmation(pipeline, source):
    monitor, _, _ = pipeline
    router = DefaultCommandRouter({"/data get": Channel.RCON})

    assert router.route("/data get entity X").channel is Channel.RCON
    decision = router.route("/data get entity X", {"options": {"expect_log_response": True}})
    assert decision.channel is Channel.LOG

    event = await await_confirmation(
        monitor,
        lambda command: source.current.feed(b"Z tag=reply\n"),
        "/say hi",
        lambda e: e.get("tag") == "reply",
        timeout=1,
    )
    assert event.data["letter"] == "Z"


async def test_docker_container_player_sessions(stream_config):
    def frame(text: str) -> bytes:
        payload = text.encode()
        return bytes([1, 0, 0, 0]) + len(payload).to_bytes(4, "big") + payload

    body = b"".join(
        frame(f"[12:00:0{i}] [Server thread/INFO]: {line}\n")
        for i, line in enumerate([
            "Steve joined the game",
            "Alex joined the game",
            "Steve issued server command: /weather rain",
            "Changing the weather to rain",
            "Steve left the game",
        ])
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/json"):
            return httpx.Response(200, json={"Config": {"Tty": False}})
        return httpx.Response(200, content=body)

    source = DockerStreamSource(transport=httpx.MockTransport(handler))
    tailer = StreamTailer(source, ReconnectPolicy(attempts=0))
    correlation = IdentityCorrelationStrategy()
    monitor = LogMonitor(tailer, create_minecraft_parser(), correlation)
    ended = Recorder(tailer.events, CollectorEvent.END)
    closed = []
    monitor.events.on(MonitorEvent.CORRELATION, lambda s: None if s.active else closed.append(s))

    await monitor.start(stream_config)
    await wait_until(lambda: len(ended) == 1)

    assert [e.type for e in monitor.get_events()] == [
        "entity.join",
        "entity.join",
        "command.issued",
        "world.weather",
        "entity.leave",
    ]
    assert [e.type for e in closed[0].events] == ["entity.join", "command.issued", "entity.leave"]
    assert correlation.list_active_keys() == ["Alex"]

    await monitor.stop()
    await source.aclose()
