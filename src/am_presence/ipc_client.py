"""Discord IPC client: handshake, activity commands and reconnect policy.

This module implements DiscordIpcClient, the state machine on top of
IpcConnection and the frame codec:

    UNCONNECTED -> CONNECTING -> HANDSHAKING -> READY -> CLOSED

**Reconnect policy**: when a write fails with COULD_NOT_CONNECT or
WRITE_SOCKET_FAILED (reads: COULD_NOT_CONNECT or READ_SOCKET_FAILED), the
client reconnects once (establish + handshake) and retries the failed I/O
once. A second failure propagates unchanged. I/O performed while a session is
being set up (connect() or the reconnect itself) is never retried, so a
failing handshake cannot trigger nested reconnects.

**Concurrency**: the client expects one caller issuing one operation at a
time. A frame is written as two separate writes (header, then body); two
concurrent senders could interleave them. There is no internal lock and no
internal timeout; callers cancel stalled operations themselves.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from enum import Enum
from typing import Any

from am_presence.const import PROTOCOL_VERSION, SET_ACTIVITY_CMD
from am_presence.metrics import registry
from am_presence.presence.activity import Activity
from am_presence.protocol.exceptions import ErrorKind, RichPresenceError
from am_presence.protocol.frame import HEADER_SIZE, Opcode, pack, unpack
from am_presence.transport.connection import IpcConnection

__all__ = ["ClientState", "DiscordIpcClient"]

logger = logging.getLogger(__name__)

_RETRYABLE_WRITE_KINDS = frozenset({ErrorKind.COULD_NOT_CONNECT, ErrorKind.WRITE_SOCKET_FAILED})
_RETRYABLE_READ_KINDS = frozenset({ErrorKind.COULD_NOT_CONNECT, ErrorKind.READ_SOCKET_FAILED})


class ClientState(Enum):
    """IPC client state enumeration."""

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    CLOSED = "closed"


class DiscordIpcClient:
    """Publishes rich presence activities to the local Discord client."""

    def __init__(self, client_id: str, connection: IpcConnection | None = None) -> None:
        """Initialize an unconnected client.

        Args:
            client_id: Discord application id sent in the handshake
            connection: IPC connection to use (defaults to a Unix socket IpcConnection)

        """
        self.client_id: str = client_id
        self.connection: IpcConnection = connection or IpcConnection()
        self.state: ClientState = ClientState.UNCONNECTED
        self._session_setup: bool = False

    def _set_state(self, state: ClientState) -> None:
        if state != self.state:
            logger.debug("IPC client state %s -> %s", self.state.value, state.value)
        self.state = state
        registry.record_connection_state(state.value)

    def _mark_closed_if_dropped(self) -> None:
        if not self.connection.is_connected and self.state == ClientState.READY:
            self._set_state(ClientState.CLOSED)

    async def connect(self) -> None:
        """Connect to the Discord IPC socket and send the handshake.

        Raises:
            RichPresenceError: COULD_NOT_CONNECT if no socket accepts a connection,
                or the I/O error raised while handshaking. The client is left
                CLOSED; call connect() again (or issue a command) to retry.

        """
        await self._open_session()

    async def _open_session(self) -> None:
        self._session_setup = True
        try:
            self._set_state(ClientState.CONNECTING)
            try:
                await self.connection.establish()
            except RichPresenceError as e:
                registry.record_ipc_error(e.kind.value)
                raise
            self._set_state(ClientState.HANDSHAKING)
            await self.send_handshake()
        except RichPresenceError:
            self._set_state(ClientState.CLOSED)
            raise
        finally:
            self._session_setup = False
        self._set_state(ClientState.READY)

    async def send_handshake(self) -> Any:
        """Send the handshake frame and wait for one response frame.

        The response is returned as-is; its contents are not checked.
        """
        try:
            await self.send({"v": PROTOCOL_VERSION, "client_id": self.client_id}, Opcode.HANDSHAKE)
            opcode, response = await self.recv()
        except RichPresenceError:
            registry.record_handshake("failed")
            raise

        registry.record_handshake("success")
        logger.debug(
            "Handshake response received",
            extra={
                "opcode": opcode,
                "evt": response.get("evt") if isinstance(response, dict) else None,
            },
        )
        return response

    async def _reconnect(self, reason: ErrorKind) -> None:
        registry.record_reconnection(reason.value)
        logger.info(
            "Reconnecting to Discord after %s",
            reason.value,
            extra={"reason": reason.value},
        )
        await self._open_session()

    async def _write(self, *chunks: bytes) -> None:
        """Write chunks in order, reconnecting and rewriting them once on failure."""
        try:
            for chunk in chunks:
                await self.connection.write_raw(chunk)
        except RichPresenceError as e:
            if self._session_setup or e.kind not in _RETRYABLE_WRITE_KINDS:
                raise
            await self._reconnect(e.kind)
            for chunk in chunks:
                await self.connection.write_raw(chunk)

    async def _read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, reconnecting and re-reading once on failure."""
        try:
            return await self.connection.read_raw(size)
        except RichPresenceError as e:
            if self._session_setup or e.kind not in _RETRYABLE_READ_KINDS:
                raise
            await self._reconnect(e.kind)
            return await self.connection.read_raw(size)

    async def send(self, data: Any, opcode: int) -> None:
        """Serialize ``data`` as JSON and send it as one frame.

        Args:
            data: JSON-serializable body
            opcode: Frame opcode

        Raises:
            RichPresenceError: The write failed after the reconnect attempt

        """
        body = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        header = pack(opcode, len(body))
        try:
            await self._write(header, body)
        except RichPresenceError as e:
            registry.record_frame_sent(opcode, "failed")
            registry.record_ipc_error(e.kind.value)
            self._mark_closed_if_dropped()
            raise

        registry.record_frame_sent(opcode, "sent")
        logger.debug(
            "Sent frame opcode=%d length=%d",
            opcode,
            len(body),
            extra={"opcode": int(opcode), "bytes": len(body)},
        )

    async def recv(self) -> tuple[int, Any]:
        """Receive one frame and return (opcode, decoded JSON body).

        Raises:
            RichPresenceError: READ_SOCKET_FAILED on I/O failure, RECV_INVALID_PACKET
                if the body is not valid UTF-8 JSON

        """
        try:
            header = await self._read(HEADER_SIZE)
            opcode, length = unpack(header)
            data = await self._read(length)
            try:
                payload = json.loads(data.decode("utf-8"))
            except ValueError as e:
                raise RichPresenceError(ErrorKind.RECV_INVALID_PACKET) from e
        except RichPresenceError as e:
            registry.record_ipc_error(e.kind.value)
            self._mark_closed_if_dropped()
            raise

        registry.record_frame_recv(opcode)
        return opcode, payload

    def _activity_command(self, activity: dict[str, Any] | None) -> dict[str, Any]:
        return {
            "cmd": SET_ACTIVITY_CMD,
            "args": {
                "pid": os.getpid(),
                "activity": activity,
            },
            "nonce": str(uuid.uuid4()),
        }

    async def set_activity(self, activity: Activity) -> None:
        """Publish ``activity``. No response is awaited."""
        await self.send(self._activity_command(activity.to_payload()), Opcode.FRAME)

    async def clear_activity(self) -> None:
        """Clear the published activity. No response is awaited."""
        await self.send(self._activity_command(None), Opcode.FRAME)

    async def close(self) -> None:
        """Send the close frame, flush and shut the socket down.

        A flush failure is raised (FLUSH_SOCKET_FAILED); shutdown failures are
        only logged. Does nothing but mark the client CLOSED if no socket is open.
        """
        if not self.connection.is_connected:
            logger.debug("Close requested without an open IPC socket")
            self._set_state(ClientState.CLOSED)
            return

        await self.send({}, Opcode.CLOSE)
        try:
            await self.connection.flush()
        except RichPresenceError as e:
            registry.record_ipc_error(e.kind.value)
            raise
        finally:
            await self.connection.shutdown()
            self._set_state(ClientState.CLOSED)

    def __repr__(self) -> str:
        """String representation."""
        return f"DiscordIpcClient(client_id={self.client_id}, state={self.state.value})"
