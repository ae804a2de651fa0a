"""Asyncio Unix domain socket abstraction for the Discord IPC channel."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

__all__ = ["DuplexStream", "UnixSocketStream", "open_unix_stream"]

logger = logging.getLogger(__name__)


@runtime_checkable
class DuplexStream(Protocol):
    """Byte stream capability the IPC client is written against.

    Implementations raise OSError (or asyncio.IncompleteReadError for short
    reads); classification into RichPresenceError happens in IpcConnection.
    """

    async def write_all(self, data: bytes) -> None:
        """Write the whole buffer."""
        ...

    async def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        ...

    async def flush(self) -> None:
        """Flush buffered writes to the peer."""
        ...

    async def shutdown(self) -> None:
        """Close both directions of the stream."""
        ...


class UnixSocketStream:
    """DuplexStream over an asyncio Unix socket connection."""

    def __init__(self, path: Path, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """
        Wrap an already connected reader/writer pair.

        Args:
            path: Socket path the stream is connected to
            reader: asyncio stream reader
            writer: asyncio stream writer
        """
        self.path = path
        self.reader = reader
        self.writer = writer

    async def write_all(self, data: bytes) -> None:
        start_time = time.perf_counter()
        self.writer.write(data)
        await self.writer.drain()
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "Sent %d bytes to %s in %.1fms",
            len(data),
            self.path,
            elapsed_ms,
            extra={"bytes": len(data), "socket": str(self.path), "elapsed_ms": elapsed_ms},
        )

    async def read_exact(self, size: int) -> bytes:
        start_time = time.perf_counter()
        data = await self.reader.readexactly(size)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "Received %d bytes from %s in %.1fms",
            len(data),
            self.path,
            elapsed_ms,
            extra={"bytes": len(data), "socket": str(self.path), "elapsed_ms": elapsed_ms},
        )
        return data

    async def flush(self) -> None:
        await self.writer.drain()

    async def shutdown(self) -> None:
        logger.info("Closing IPC socket %s", self.path, extra={"socket": str(self.path)})
        if self.writer.can_write_eof():
            self.writer.write_eof()
        self.writer.close()
        await self.writer.wait_closed()

    def __repr__(self) -> str:
        """String representation."""
        status = "closing" if self.writer.is_closing() else "open"
        return f"UnixSocketStream({self.path}, {status})"


async def open_unix_stream(path: Path) -> UnixSocketStream:
    """Connect to the Unix socket at ``path``.

    Raises:
        OSError: The path does not exist or nothing is listening on it

    """
    reader, writer = await asyncio.open_unix_connection(str(path))
    return UnixSocketStream(path, reader, writer)
