"""
Tests for the stream tailer.

Tests cover connection failures, line framing, ANSI stripping,
pause/resume, exponential backoff, retry exhaustion and cancellation of
pending reconnects.
"""

import asyncio

import pytest

from logwatch.monitoring.collector import LogCollector, StreamTailer, strip_ansi
from logwatch.monitoring.config import ReconnectPolicy, StreamConfig
from logwatch.monitoring.errors import ConnectionError, StreamError
from logwatch.monitoring.events import CollectorEvent
from logwatch.monitoring.schemas import ConnectionState

from conftest import FakeStreamSource, Recorder, wait_until


@pytest.fixture
def tailer(source, fast_policy) -> StreamTailer:
    return StreamTailer(source, fast_policy)


class TestStripAnsi:
    def test_removes_colour_codes(self):
        assert strip_ansi("\x1b[32mDone\x1b[0m") == "Done"

    def test_plain_text_unchanged(self):
        assert strip_ansi("[12:00:00] plain") == "[12:00:00] plain"


class TestConnect:
    async def test_connects_and_streams(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        connected = Recorder(tailer.events, CollectorEvent.CONNECTED)

        await tailer.connect(stream_config)
        source.current.feed(b"first line\nsecond line\n")
        await wait_until(lambda: len(lines) == 2)

        assert lines.values == ["first line", "second line"]
        assert len(connected) == 1
        assert tailer.connected
        assert tailer.state is ConnectionState.CONNECTED
        assert source.current.options == stream_config.stream_options()
        await tailer.disconnect()

    async def test_satisfies_protocol(self, tailer):
        assert isinstance(tailer, LogCollector)

    async def test_missing_source_raises_without_retry(self, tailer, source):
        reconnecting = Recorder(tailer.events, CollectorEvent.RECONNECTING)

        with pytest.raises(ConnectionError) as exc_info:
            await tailer.connect(StreamConfig(source_id="ghost"))

        assert exc_info.value.source_id == "ghost"
        assert exc_info.value.details["config"]["source_id"] == "ghost"
        assert isinstance(exc_info.value.cause, LookupError)
        assert not tailer.connected
        await asyncio.sleep(0.05)
        assert len(reconnecting) == 0
        assert source.handles == []

    async def test_reconnect_while_connected_disconnects_first(self, tailer, source, stream_config):
        disconnected = Recorder(tailer.events, CollectorEvent.DISCONNECTED)

        await tailer.connect(stream_config)
        first = source.current
        await tailer.connect(stream_config)

        assert first.closed
        assert len(source.handles) == 2
        assert len(disconnected) == 1
        await tailer.disconnect()


class TestLineFraming:
    async def test_partial_lines_are_joined(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)

        source.current.feed(b"hel", b"lo\nwor", b"ld\n")
        await wait_until(lambda: len(lines) == 2)

        assert lines.values == ["hello", "world"]
        await tailer.disconnect()

    async def test_blank_lines_and_ansi(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)

        source.current.feed(b"\n   \r\n\x1b[33mwarn\x1b[0m\r\n")
        await wait_until(lambda: len(lines) == 1)

        assert lines.values == ["warn"]
        await tailer.disconnect()

    async def test_eight_bit_csi_bytes_are_stripped(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)

        source.current.feed(b"\x9b31mhello\x9b0m\n")
        await wait_until(lambda: len(lines) == 1)

        assert lines.values == ["hello"]
        await tailer.disconnect()

    async def test_multibyte_character_split_across_chunks(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)

        encoded = "\u00dbber joined\n".encode("utf-8")
        source.current.feed(encoded[:1], encoded[1:])
        await wait_until(lambda: len(lines) == 1)

        assert lines.values == ["\u00dbber joined"]
        await tailer.disconnect()

    async def test_invalid_bytes_become_replacement_characters(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)

        source.current.feed(b"bad \xff byte\n")
        await wait_until(lambda: len(lines) == 1)

        assert lines.values == ["bad \ufffd byte"]
        await tailer.disconnect()

    async def test_trailing_partial_line_flushed_at_end(self, source, stream_config):
        tailer = StreamTailer(source, ReconnectPolicy(attempts=0))
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        ended = Recorder(tailer.events, CollectorEvent.END)

        await tailer.connect(stream_config)
        source.current.feed(b"complete\nno newline")
        source.current.end()
        await wait_until(lambda: len(ended) == 1)

        assert lines.values == ["complete", "no newline"]


class TestPauseResume:
    async def test_lines_while_paused_are_dropped(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        paused = Recorder(tailer.events, CollectorEvent.PAUSED)
        await tailer.connect(stream_config)

        source.current.feed(b"a\n")
        await wait_until(lambda: len(lines) == 1)

        tailer.pause()
        tailer.pause()
        source.current.feed(b"b\n")
        await asyncio.sleep(0.02)

        tailer.resume()
        source.current.feed(b"c\n")
        await wait_until(lambda: len(lines) == 2)

        assert lines.values == ["a", "c"]
        assert len(paused) == 1
        assert tailer.connected
        await tailer.disconnect()


class TestReconnection:
    async def test_successful_reconnect(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        reconnecting = Recorder(tailer.events, CollectorEvent.RECONNECTING)
        connected = Recorder(tailer.events, CollectorEvent.CONNECTED)

        await tailer.connect(stream_config)
        source.current.end()
        await wait_until(lambda: len(connected) == 2)

        source.current.feed(b"after reconnect\n")
        await wait_until(lambda: len(lines) == 1)

        assert reconnecting.values == [{"attempt": 1, "max_attempts": 4, "delay": 0.01}]
        assert tailer.get_reconnect_status() == {"attempt": 1, "max_attempts": 4, "reconnecting": False}
        await tailer.disconnect()

    async def test_stream_error_triggers_reconnect(self, tailer, source, stream_config):
        errors = Recorder(tailer.events, CollectorEvent.ERROR)
        connected = Recorder(tailer.events, CollectorEvent.CONNECTED)

        await tailer.connect(stream_config)
        source.current.fail(ConnectionResetError("peer reset"))
        await wait_until(lambda: len(connected) == 2)

        assert isinstance(errors.values[0], StreamError)
        assert isinstance(errors.values[0].cause, ConnectionResetError)
        await tailer.disconnect()

    async def test_backoff_until_exhausted(self, tailer, source, stream_config):
        reconnecting = Recorder(tailer.events, CollectorEvent.RECONNECTING)
        errors = Recorder(tailer.events, CollectorEvent.ERROR)
        ended = Recorder(tailer.events, CollectorEvent.END)

        await tailer.connect(stream_config)
        source.available = False
        source.current.end()
        await wait_until(lambda: len(ended) == 1)

        assert [s["delay"] for s in reconnecting.values] == [0.01, 0.02, 0.04, 0.04]
        assert [s["attempt"] for s in reconnecting.values] == [1, 2, 3, 4]

        final = errors.values[-1]
        assert isinstance(final, ConnectionError)
        assert "exhausted" in final.message
        assert final.details["config"]["source_id"] == "server"
        assert len(errors) == 5
        assert tailer.state is ConnectionState.DISCONNECTED

    async def test_disable_auto_reconnect(self, tailer, source):
        reconnecting = Recorder(tailer.events, CollectorEvent.RECONNECTING)
        ended = Recorder(tailer.events, CollectorEvent.END)
        errors = Recorder(tailer.events, CollectorEvent.ERROR)

        await tailer.connect(StreamConfig(source_id="server", disable_auto_reconnect=True))
        source.current.end()
        await wait_until(lambda: len(ended) == 1)

        assert len(reconnecting) == 0
        assert len(errors) == 0

    async def test_disconnect_cancels_pending_reconnect(self, source, stream_config):
        tailer = StreamTailer(source, ReconnectPolicy(delay=0.05, max_delay=1, attempts=3))
        reconnecting = Recorder(tailer.events, CollectorEvent.RECONNECTING)

        await tailer.connect(stream_config)
        source.current.end()
        await wait_until(lambda: len(reconnecting) == 1)
        assert tailer.get_reconnect_status()["reconnecting"] is True

        await tailer.disconnect()
        await asyncio.sleep(0.1)

        assert len(source.handles) == 1
        assert tailer.get_reconnect_status()["reconnecting"] is False
        assert tailer.state is ConnectionState.DISCONNECTED

    async def test_manual_connect_resets_attempts(self, tailer, source, stream_config):
        connected = Recorder(tailer.events, CollectorEvent.CONNECTED)

        await tailer.connect(stream_config)
        source.current.end()
        await wait_until(lambda: len(connected) == 2)
        assert tailer.get_reconnect_status()["attempt"] == 1

        await tailer.connect(stream_config)
        assert tailer.get_reconnect_status()["attempt"] == 0
        await tailer.disconnect()

    async def test_no_data_after_disconnect(self, tailer, source, stream_config):
        lines = Recorder(tailer.events, CollectorEvent.DATA)
        await tailer.connect(stream_config)
        handle = source.current

        await tailer.disconnect()
        handle.feed(b"late line\n")
        await asyncio.sleep(0.02)

        assert len(lines) == 0


def test_backoff_formula():
    policy = ReconnectPolicy(delay=1.0, max_delay=30.0, attempts=5)
    assert [policy.delay_for(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


def test_unreachable_source_wraps_cause():
    source = FakeStreamSource()
    source.available = False

    async def attempt():
        await StreamTailer(source).connect(StreamConfig(source_id="server"))

    with pytest.raises(ConnectionError) as exc_info:
        asyncio.run(attempt())
    assert isinstance(exc_info.value.cause, OSError)
