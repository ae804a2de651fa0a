"""Single Discord IPC connection: socket probing and raw stream I/O.

IpcConnection owns at most one open DuplexStream. It locates the socket
directory, probes the numbered listening sockets, and maps low-level I/O
failures onto RichPresenceError kinds. It does not retry; the reconnect policy
lives in DiscordIpcClient.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path

from am_presence.metrics import registry
from am_presence.protocol.exceptions import ErrorKind, RichPresenceError
from am_presence.transport.locator import candidate_paths, resolve_base_dir
from am_presence.transport.socket_abstraction import DuplexStream, open_unix_stream

__all__ = ["Connector", "IpcConnection"]

logger = logging.getLogger(__name__)

Connector = Callable[[Path], Awaitable[DuplexStream]]


class IpcConnection:
    """Owns the duplex stream to the Discord client."""

    def __init__(
        self,
        connector: Connector = open_unix_stream,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Initialize an unconnected IPC connection.

        Args:
            connector: Coroutine opening a stream to a socket path (raises OSError on failure)
            environ: Environment used to locate the socket directory (default: os.environ)
        """
        self.connector = connector
        self.environ = environ
        self.stream: DuplexStream | None = None
        self.socket_path: Path | None = None

    @property
    def is_connected(self) -> bool:
        """Check if a stream is active."""
        return self.stream is not None

    async def establish(self) -> Path:
        """Connect to the first listening Discord IPC socket.

        Probes discord-ipc-0 through discord-ipc-9 in order, without delay
        between attempts. Any previously open stream is discarded first.

        Returns:
            Path of the socket that accepted the connection

        Raises:
            RichPresenceError: COULD_NOT_CONNECT if no base dir is configured
                or none of the ten sockets accepts a connection

        """
        await self.shutdown()

        base = resolve_base_dir(self.environ)
        start_time = time.perf_counter()
        for path in candidate_paths(base):
            try:
                stream = await self.connector(path)
            except OSError as e:
                registry.record_connect_probe("failed")
                logger.debug(
                    "IPC socket %s not available: %s",
                    path,
                    e,
                    extra={"socket": str(path), "error": str(e)},
                )
                continue

            registry.record_connect_probe("connected")
            self.stream = stream
            self.socket_path = path
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Connected to %s in %.1fms",
                path,
                elapsed_ms,
                extra={"socket": str(path), "elapsed_ms": elapsed_ms},
            )
            return path

        logger.debug("No Discord IPC socket accepted a connection", extra={"base_dir": str(base)})
        raise RichPresenceError(ErrorKind.COULD_NOT_CONNECT)

    async def write_raw(self, data: bytes) -> None:
        """Write the whole buffer to the active stream.

        Raises:
            RichPresenceError: WRITE_SOCKET_FAILED if there is no stream or the write fails

        """
        if self.stream is None:
            logger.debug("Cannot write: not connected", extra={"bytes": len(data)})
            raise RichPresenceError(ErrorKind.WRITE_SOCKET_FAILED)

        try:
            await self.stream.write_all(data)
        except OSError as e:
            logger.warning(
                "Write to %s failed: %s",
                self.socket_path,
                e,
                extra={"socket": str(self.socket_path), "error": str(e), "error_type": type(e).__name__},
            )
            await self.shutdown()
            raise RichPresenceError(ErrorKind.WRITE_SOCKET_FAILED) from e

    async def read_raw(self, size: int) -> bytes:
        """Read exactly ``size`` bytes from the active stream.

        Raises:
            RichPresenceError: READ_SOCKET_FAILED if there is no stream, the peer
                closed before ``size`` bytes arrived, or the read fails

        """
        if self.stream is None:
            logger.debug("Cannot read: not connected", extra={"bytes": size})
            raise RichPresenceError(ErrorKind.READ_SOCKET_FAILED)

        try:
            return await self.stream.read_exact(size)
        except (asyncio.IncompleteReadError, OSError) as e:
            logger.warning(
                "Read from %s failed: %s",
                self.socket_path,
                e,
                extra={"socket": str(self.socket_path), "error": str(e), "error_type": type(e).__name__},
            )
            await self.shutdown()
            raise RichPresenceError(ErrorKind.READ_SOCKET_FAILED) from e

    async def flush(self) -> None:
        """Flush pending writes.

        Raises:
            RichPresenceError: FLUSH_SOCKET_FAILED if there is no stream or the flush fails

        """
        if self.stream is None:
            raise RichPresenceError(ErrorKind.FLUSH_SOCKET_FAILED)

        try:
            await self.stream.flush()
        except OSError as e:
            raise RichPresenceError(ErrorKind.FLUSH_SOCKET_FAILED) from e

    async def shutdown(self) -> None:
        """Shut the stream down. Best-effort: never raises."""
        stream = self.stream
        if stream is None:
            return

        self._drop_stream()
        try:
            await stream.shutdown()
        except OSError as e:
            logger.warning(
                "Error closing IPC socket: %s",
                e,
                extra={"error": str(e), "error_type": type(e).__name__},
            )
        except Exception as e:
            # Process exit must not hinge on socket teardown
            logger.warning(
                "Unexpected error during IPC socket close (non-fatal): %s",
                e,
                extra={"error": str(e), "error_type": type(e).__name__},
            )

    def _drop_stream(self) -> None:
        self.stream = None

    def __repr__(self) -> str:
        """String representation."""
        status = f"connected to {self.socket_path}" if self.stream is not None else "disconnected"
        return f"IpcConnection({status})"
