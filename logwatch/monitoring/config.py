"""
Configuration models for the monitoring pipeline.

Defaults come from the environment-driven settings; every duration is in
seconds.
"""

from pydantic import BaseModel, Field

from logwatch.monitoring.schemas import OverflowPolicy
from logwatch.shared.config import settings


class ReconnectPolicy(BaseModel):
    """Exponential backoff parameters for the stream tailer."""

    delay: float = Field(default=settings.reconnect_delay, ge=0, description="Base delay before the first retry")
    max_delay: float = Field(default=settings.max_reconnect_delay, ge=0, description="Upper bound for any delay")
    attempts: int = Field(default=settings.reconnect_attempts, ge=0, description="Maximum reconnection attempts")

    def delay_for(self, attempt_index: int) -> float:
        """Backoff delay for a zero-based attempt index."""
        return min(self.delay * (2 ** attempt_index), self.max_delay)


class StreamConfig(BaseModel):
    """Connection configuration passed to ``LogCollector.connect()``."""

    source_id: str = Field(description="Container name/ID or other source identifier")
    follow: bool = Field(default=True, description="Keep streaming new lines")
    tail: int = Field(default=0, ge=0, description="Lines of history to replay (0 = all)")
    stdout: bool = Field(default=True, description="Include stdout")
    stderr: bool = Field(default=True, description="Include stderr")
    disable_auto_reconnect: bool = Field(default=False, description="Treat any stream end as terminal")

    def stream_options(self) -> dict[str, bool | int]:
        """Options forwarded to the stream source."""
        return {
            "follow": self.follow,
            "tail": self.tail,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


class MonitorConfig(BaseModel):
    """Options for ``LogMonitor``."""

    buffer_size: int = Field(default=settings.buffer_size, gt=0, description="Event history capacity")
    overflow_policy: OverflowPolicy = Field(default=OverflowPolicy.DISCARD_OLDEST)


class CorrelationConfig(BaseModel):
    """Options shared by the correlation strategies.

    ``timeout`` of ``None`` (or 0) disables the expiry sweep for identity
    sessions; the tag strategy falls back to the settings default instead.
    """

    timeout: float | None = Field(default=None, ge=0, description="Idle time before a session expires")
    cleanup_interval: float = Field(
        default=settings.correlation_cleanup_interval, gt=0, description="Sweep period"
    )
    auto_cleanup: bool = Field(default=True, description="Delete sessions as soon as they close")
    include_metadata: bool = Field(default=True, description="Record session start/end times")
