"""
Docker Stream Source - container logs from the Docker Engine API.

Talks to the daemon over its unix socket (or a TCP base URL) with httpx.
Containers without a TTY produce a multiplexed stream where each frame is
prefixed by an 8-byte header: ``[stream, 0, 0, 0, size (uint32 big-endian)]``.
"""

from typing import Any, AsyncIterator

import httpx

from logwatch.monitoring.errors import DockerConnectionError
from logwatch.shared.config import settings
from logwatch.shared.logger import get_logger

logger = get_logger()

FRAME_HEADER_SIZE = 8
FRAME_STREAM_TYPES = {0, 1, 2}  # stdin, stdout, stderr


def demux_frames(buffer: bytearray) -> list[bytes]:
    """Pop every complete frame payload off the front of ``buffer``.

    Incomplete trailing frames stay in the buffer for the next chunk.
    """
    payloads = []
    while len(buffer) >= FRAME_HEADER_SIZE:
        if buffer[0] not in FRAME_STREAM_TYPES or buffer[1:4] != b"\x00\x00\x00":
            # Not a multiplexed frame; pass the bytes through unchanged
            payloads.append(bytes(buffer))
            buffer.clear()
            break
        size = int.from_bytes(buffer[4:8], "big")
        if len(buffer) < FRAME_HEADER_SIZE + size:
            break
        payloads.append(bytes(buffer[FRAME_HEADER_SIZE:FRAME_HEADER_SIZE + size]))
        del buffer[:FRAME_HEADER_SIZE + size]
    return payloads


class DockerLogStream:
    """Open ``/containers/{id}/logs`` response, iterated as payload chunks."""

    def __init__(self, response: httpx.Response, multiplexed: bool):
        self.response = response
        self.multiplexed = multiplexed

    async def __aiter__(self) -> AsyncIterator[bytes]:
        buffer = bytearray()
        try:
            async for chunk in self.response.aiter_bytes():
                if not self.multiplexed:
                    yield chunk
                    continue
                buffer.extend(chunk)
                for payload in demux_frames(buffer):
                    yield payload
        except httpx.HTTPError as e:
            raise ConnectionResetError(f"Docker log stream interrupted: {e}") from e
        if buffer:
            yield bytes(buffer)

    async def aclose(self) -> None:
        await self.response.aclose()


class DockerStreamSource:
    """Stream source backed by the Docker Engine HTTP API."""

    def __init__(
        self,
        socket_path: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Docker source.

        Args:
            socket_path: Unix socket of the daemon (defaults to settings)
            base_url: TCP endpoint (e.g. ``http://localhost:2375``), overrides the socket
            api_version: Optional API version prefix such as ``1.43``
            timeout: Request timeout for non-streaming calls, in seconds
            transport: Custom httpx transport (used for tests)
        """
        self.socket_path = socket_path or settings.docker_socket_path
        self.api_version = api_version or settings.docker_api_version
        self.timeout = timeout or settings.docker_request_timeout

        if transport is None and base_url is None:
            transport = httpx.AsyncHTTPTransport(uds=self.socket_path)
        self.endpoint = base_url or f"unix://{self.socket_path}"
        self._client = httpx.AsyncClient(
            base_url=base_url or "http://docker",
            transport=transport,
            timeout=self.timeout,
        )
        self._tty: dict[str, bool] = {}

    def _path(self, path: str) -> str:
        return f"/v{self.api_version}{path}" if self.api_version else path

    async def inspect(self, source_id: str) -> dict[str, Any]:
        """Check that the container exists and return its description.

        Raises:
            DockerConnectionError: Daemon unreachable or container missing
        """
        try:
            response = await self._client.get(self._path(f"/containers/{source_id}/json"))
        except httpx.HTTPError as e:
            raise DockerConnectionError(
                f"Docker daemon unreachable at {self.endpoint}",
                source_id=source_id,
                details={"endpoint": self.endpoint},
                cause=e,
            ) from e

        if response.status_code == 404:
            raise DockerConnectionError(f"Container not found: {source_id}", source_id=source_id)
        if response.status_code >= 400:
            raise DockerConnectionError(
                f"Container inspect failed with HTTP {response.status_code}",
                source_id=source_id,
                details={"body": response.text[:200]},
            )

        info = response.json()
        self._tty[source_id] = bool(info.get("Config", {}).get("Tty"))
        logger.debug(f"Inspected container {source_id}: {info.get('State', {}).get('Status')}")
        return info

    async def open_stream(self, source_id: str, options: dict[str, Any]) -> DockerLogStream:
        """Open the container log stream.

        Args:
            source_id: Container name or ID
            options: ``follow``, ``tail`` (0 = all), ``stdout``, ``stderr``
        """
        tail = options.get("tail") or 0
        params = {
            "follow": str(options.get("follow", True)).lower(),
            "stdout": str(options.get("stdout", True)).lower(),
            "stderr": str(options.get("stderr", True)).lower(),
            "tail": str(tail) if tail > 0 else "all",
        }
        request = self._client.build_request(
            "GET",
            self._path(f"/containers/{source_id}/logs"),
            params=params,
            timeout=httpx.Timeout(self.timeout, read=None),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise DockerConnectionError(
                f"Could not open log stream for {source_id}", source_id=source_id, cause=e
            ) from e

        if response.status_code >= 400:
            await response.aclose()
            raise DockerConnectionError(
                f"Log stream request failed with HTTP {response.status_code}", source_id=source_id
            )

        return DockerLogStream(response, multiplexed=not self._tty.get(source_id, False))

    async def aclose(self) -> None:
        await self._client.aclose()
