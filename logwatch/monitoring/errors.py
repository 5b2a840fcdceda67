"""
Error taxonomy for the monitoring pipeline.

Every error carries a stable ``code``, a human readable message, a details
mapping (source identifiers, configuration used, offending line...) and an
optional underlying cause.
"""

from typing import Any


class LogwatchError(Exception):
    """Base class for all logwatch errors."""

    code = "LOGWATCH_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "cause": (
                {"name": type(self.cause).__name__, "message": str(self.cause)}
                if self.cause
                else None
            ),
        }

    def __str__(self) -> str:
        output = f"[{self.code}] {self.message}"
        if self.details:
            output += f" (details: {self.details})"
        if self.cause:
            output += f" (caused by: {self.cause})"
        return output


# =============================================================================
# Connection / Stream Errors
# =============================================================================


class ConnectionError(LogwatchError):
    """The log source does not exist or cannot be reached.

    Raised directly from ``connect()``; never retried at that call site.
    """

    code = "CONNECTION_ERROR"

    def __init__(
        self,
        message: str,
        source_id: str | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        details = {**(details or {}), "source_id": source_id}
        super().__init__(message, details, cause)
        self.source_id = source_id


class DockerConnectionError(ConnectionError):
    """Docker daemon or container could not be reached."""

    code = "DOCKER_CONNECTION_ERROR"


class StreamError(LogwatchError):
    """Mid-stream I/O fault. Drives the reconnection policy."""

    code = "STREAM_ERROR"


# =============================================================================
# Parsing Errors
# =============================================================================


class ParseError(LogwatchError):
    """A pattern handler raised while extracting data from a line."""

    code = "PARSE_ERROR"

    def __init__(
        self,
        pattern: str,
        line: str,
        cause: BaseException | None = None,
    ):
        super().__init__(
            f"Handler for pattern '{pattern}' failed",
            {"pattern": pattern, "line": line},
            cause,
        )
        self.pattern = pattern
        self.line = line


class PatternError(LogwatchError):
    """Invalid pattern registration."""

    code = "PATTERN_ERROR"


# =============================================================================
# Correlation / Routing Errors
# =============================================================================


class CorrelationError(LogwatchError):
    """Base class for correlation failures."""

    code = "CORRELATION_ERROR"


class ResponseTimeout(CorrelationError):
    """An awaited confirmation never arrived."""

    code = "CORRELATION_TIMEOUT"

    def __init__(self, command: str | None, timeout: float, details: dict[str, Any] | None = None):
        super().__init__(
            f"No response received within {timeout:g}s",
            {**(details or {}), "command": command, "timeout": timeout},
        )
        self.command = command
        self.timeout = timeout


class RoutingError(LogwatchError):
    """Invalid routing rule or channel."""

    code = "ROUTING_ERROR"


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(LogwatchError):
    """Base class for resource limit failures."""

    code = "RESOURCE_ERROR"


class BufferOverflow(ResourceError):
    """Push into a full buffer under the error-on-overflow policy."""

    code = "BUFFER_OVERFLOW"

    def __init__(self, capacity: int, details: dict[str, Any] | None = None):
        super().__init__(
            f"Buffer is full (capacity {capacity})",
            {**(details or {}), "capacity": capacity},
        )
        self.capacity = capacity
