"""Fixtures for integration tests."""

import asyncio
import json
import logging
import struct
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import pytest

logger = logging.getLogger(__name__)

READY_EVENT: dict[str, Any] = {"cmd": "DISPATCH", "evt": "READY", "data": {"v": 1}}


class ServerMode(Enum):
    """How the mock Discord client treats a new connection."""

    READY = "ready"  # Answer the handshake with READY, then keep reading
    HANG_UP = "hang_up"  # Read the handshake, then close without answering


@dataclass
class ReceivedFrame:
    """Frame received by the mock Discord client."""

    opcode: int
    length: int
    payload: Any


class MockDiscordServer:
    """Mock Discord client listening on ``<base_dir>/discord-ipc-<index>``."""

    def __init__(self, base_dir: Path, index: int = 0, mode: ServerMode = ServerMode.READY):
        self.path = base_dir / f"discord-ipc-{index}"
        self.mode = mode
        self.server: asyncio.Server | None = None
        self.received_frames: list[ReceivedFrame] = []
        self.connection_count = 0

    async def start(self) -> None:
        self.server = await asyncio.start_unix_server(self._handle_client, path=str(self.path))
        logger.info("Mock Discord server listening on %s", self.path)

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            logger.info("Mock Discord server stopped")

    async def _read_frame(self, reader: asyncio.StreamReader) -> ReceivedFrame | None:
        try:
            header = await reader.readexactly(8)
            opcode, length = struct.unpack("<II", header)
            body = await reader.readexactly(length)
        except asyncio.IncompleteReadError:
            return None
        frame = ReceivedFrame(opcode=opcode, length=length, payload=json.loads(body.decode("utf-8")))
        self.received_frames.append(frame)
        return frame

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connection_count += 1
        logger.info("Connection #%d", self.connection_count)

        handshake = await self._read_frame(reader)
        if handshake is None or self.mode == ServerMode.HANG_UP:
            writer.close()
            await writer.wait_closed()
            return

        body = json.dumps(READY_EVENT).encode("utf-8")
        writer.write(struct.pack("<II", 1, len(body)) + body)
        await writer.drain()

        while await self._read_frame(reader) is not None:
            pass

        writer.close()
        await writer.wait_closed()


@pytest.fixture
async def discord_server(tmp_path: Path) -> AsyncGenerator[MockDiscordServer]:
    """Mock Discord client on discord-ipc-0 under a temporary runtime dir."""
    server = MockDiscordServer(tmp_path)
    await server.start()
    yield server
    await server.stop()
