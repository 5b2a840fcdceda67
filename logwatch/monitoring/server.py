"""
Log Watch Server - main entry point.

Tails a Docker container, parses Minecraft server lines and prints events
and player sessions as they happen.
"""

import asyncio
import os

from logwatch.monitoring.collector import StreamSource, StreamTailer
from logwatch.monitoring.config import CorrelationConfig, MonitorConfig, ReconnectPolicy, StreamConfig
from logwatch.monitoring.correlation import IdentityCorrelationStrategy
from logwatch.monitoring.docker_source import DockerStreamSource
from logwatch.monitoring.errors import LogwatchError
from logwatch.monitoring.events import CollectorEvent, MonitorEvent
from logwatch.monitoring.monitor import LogMonitor
from logwatch.monitoring.parser import create_minecraft_parser
from logwatch.monitoring.schemas import ParsedEvent, Session
from logwatch.shared.config import settings
from logwatch.shared.logger import get_logger, log_config_status, log_event_table, log_startup_banner

logger = get_logger()


class LogWatchServer:
    """Container log watcher wiring every pipeline component together."""

    def __init__(
        self,
        stream_config: StreamConfig,
        socket_path: str | None = None,
        buffer_size: int | None = None,
        source: StreamSource | None = None,
    ):
        """Initialize the server.

        Args:
            stream_config: Container and stream options
            socket_path: Docker socket (defaults to settings)
            buffer_size: Event history size (defaults to settings)
            source: Stream source (defaults to the Docker Engine API)
        """
        self.stream_config = stream_config
        self.source = source or DockerStreamSource(socket_path=socket_path)
        self.collector = StreamTailer(self.source, ReconnectPolicy())
        self.parser = create_minecraft_parser()
        self.correlation = IdentityCorrelationStrategy(config=CorrelationConfig())
        self.monitor = LogMonitor(
            self.collector,
            self.parser,
            self.correlation,
            MonitorConfig(buffer_size=buffer_size or settings.buffer_size),
        )

        self._finished = asyncio.Event()
        self.monitor.events.on(MonitorEvent.EVENT, self._on_event)
        self.monitor.events.on(MonitorEvent.CORRELATION, self._on_session)
        self.monitor.events.on(MonitorEvent.ERROR, self._on_error)
        self.collector.events.on(CollectorEvent.END, self._finished.set)

    def _on_event(self, event: ParsedEvent) -> None:
        logger.event(event.type, dict(event.data))

    def _on_session(self, session: Session) -> None:
        if not session.active:
            logger.info(f"Session closed for {session.key} ({len(session.events)} events)")

    def _on_error(self, error: Exception) -> None:
        logger.warning(f"Pipeline error: {error}")

    async def run(self) -> None:
        """Run until the stream ends for good or the task is cancelled."""
        log_startup_banner(self.stream_config.source_id, self.stream_config.model_dump())
        try:
            await self.monitor.start(self.stream_config)
        except LogwatchError as e:
            logger.error(f"Could not start monitoring: {e}")
            await self._close_source()
            return

        logger.success(f"Watching {self.stream_config.source_id}")
        try:
            await self._finished.wait()
        finally:
            await self.shutdown()

    async def _close_source(self) -> None:
        aclose = getattr(self.source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def shutdown(self) -> None:
        await self.monitor.stop()
        await self._close_source()

        logger.divider("Summary")
        active = self.correlation.list_active_keys()
        logger.info(f"Monitoring stopped. Active sessions: {', '.join(active) or 'none'}")
        log_event_table("Recent events", self.monitor.get_recent_events(20))


async def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Tail and correlate container logs")
    parser.add_argument("container", type=str, help="Container name or ID")
    parser.add_argument(
        "--socket",
        type=str,
        help=f"Docker socket path (default: {settings.docker_socket_path})",
    )
    parser.add_argument("--tail", type=int, default=0, help="Lines of history to replay (default: all)")
    parser.add_argument("--no-follow", action="store_true", help="Read existing output and exit")
    parser.add_argument("--no-reconnect", action="store_true", help="Do not reconnect when the stream ends")
    parser.add_argument(
        "--buffer-size",
        type=int,
        help=f"Event history size (default: {settings.buffer_size})",
    )

    args = parser.parse_args()
    socket_path = args.socket or settings.docker_socket_path

    log_config_status({
        "LOGWATCH_DOCKER_SOCKET_PATH": (os.path.exists(socket_path), socket_path),
        "LOGWATCH_RECONNECT_ATTEMPTS": (True, str(settings.reconnect_attempts)),
        "LOGWATCH_LOG_LEVEL": (True, settings.log_level),
    })

    server = LogWatchServer(
        StreamConfig(
            source_id=args.container,
            tail=args.tail,
            follow=not args.no_follow,
            disable_auto_reconnect=args.no_reconnect or args.no_follow,
        ),
        socket_path=socket_path,
        buffer_size=args.buffer_size,
    )
    await server.run()


def run() -> None:
    """Console script wrapper."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")


if __name__ == "__main__":
    run()
