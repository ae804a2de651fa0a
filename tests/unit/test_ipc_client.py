"""Unit tests for DiscordIpcClient.

Tests cover:
- Handshake and SET_ACTIVITY frame layout
- Reconnect-and-retry-once on write and read failures
- No retry while a session is being set up
- Close sequence
"""

from __future__ import annotations

import json
import re
from unittest.mock import patch

import pytest

from am_presence.ipc_client import ClientState, DiscordIpcClient
from am_presence.presence.activity import Activity, Timestamps
from am_presence.protocol.exceptions import ErrorKind
from am_presence.protocol.frame import pack
from am_presence.transport.connection import IpcConnection
from tests.helpers.expectations import expect_presence_error
from tests.helpers.fakes import READY_EVENT, FakeConnector, FakeStream

# Test constants
CLIENT_ID = "123"
TEST_PID = 100
HANDSHAKE_BODY = b'{"v":1,"client_id":"123"}'
UUID4_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")


def _song() -> Activity:
    return Activity().with_details("Song").with_state("Artist").with_timestamps(Timestamps(start=1000, end=1300))


@pytest.fixture
def client(connection: IpcConnection) -> DiscordIpcClient:
    return DiscordIpcClient(CLIENT_ID, connection)


@pytest.fixture
def fixed_pid():
    with patch("am_presence.ipc_client.os.getpid", return_value=TEST_PID):
        yield TEST_PID


class TestConnect:
    """Tests for connect and the handshake."""

    @pytest.mark.asyncio
    async def test_connect_sends_handshake(self, client: DiscordIpcClient, ready_stream: FakeStream) -> None:
        assert client.state is ClientState.UNCONNECTED

        await client.connect()

        assert client.state is ClientState.READY
        assert bytes(ready_stream.written) == pack(0, len(HANDSHAKE_BODY)) + HANDSHAKE_BODY
        assert ready_stream.incoming == bytearray()

    @pytest.mark.asyncio
    async def test_handshake_returns_response(self, connection: IpcConnection) -> None:
        client = DiscordIpcClient(CLIENT_ID, connection)
        await connection.establish()

        response = await client.send_handshake()

        assert response == READY_EVENT

    @pytest.mark.asyncio
    async def test_handshake_response_is_not_validated(self, ipc_environ: dict[str, str]) -> None:
        stream = FakeStream()
        stream.queue_frame(2, {"code": 4000, "message": "Invalid Client ID"})
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(FakeConnector([stream]), ipc_environ))

        await client.connect()

        assert client.state is ClientState.READY

    @pytest.mark.asyncio
    async def test_connect_without_discord(self, ipc_environ: dict[str, str]) -> None:
        connector = FakeConnector(listening=[])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))

        await expect_presence_error(client.connect, ErrorKind.COULD_NOT_CONNECT)

        assert client.state is ClientState.CLOSED
        assert len(connector.attempts) == 10

    @pytest.mark.asyncio
    async def test_handshake_failure_is_not_retried(self, ipc_environ: dict[str, str]) -> None:
        """A peer that hangs up during the handshake does not trigger a reconnect."""
        connector = FakeConnector([FakeStream(), FakeStream.ready()])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))

        await expect_presence_error(client.connect, ErrorKind.READ_SOCKET_FAILED)

        assert len(connector.attempts) == 1
        assert client.state is ClientState.CLOSED


class TestSetActivity:
    """Tests for set_activity and clear_activity."""

    @pytest.mark.asyncio
    async def test_set_activity_frame(
        self,
        client: DiscordIpcClient,
        ready_stream: FakeStream,
        fixed_pid: int,
    ) -> None:
        await client.connect()

        await client.set_activity(_song())

        frames = ready_stream.frames()
        assert frames[0] == (0, {"v": 1, "client_id": CLIENT_ID})
        opcode, command = frames[1]
        assert opcode == 1
        assert command["cmd"] == "SET_ACTIVITY"
        assert command["args"] == {
            "pid": fixed_pid,
            "activity": {"state": "Artist", "details": "Song", "timestamps": {"start": 1000, "end": 1300}},
        }
        assert UUID4_PATTERN.match(command["nonce"])

    @pytest.mark.asyncio
    async def test_nonce_is_unique(self, client: DiscordIpcClient, ready_stream: FakeStream) -> None:
        await client.connect()

        await client.set_activity(_song())
        await client.set_activity(_song())

        nonces = [command["nonce"] for _, command in ready_stream.frames()[1:]]
        assert nonces[0] != nonces[1]

    @pytest.mark.asyncio
    async def test_header_length_counts_utf8_bytes(self, client: DiscordIpcClient, ready_stream: FakeStream) -> None:
        await client.connect()
        handshake_size = len(ready_stream.written)

        await client.set_activity(Activity().with_state("Björk · Homogenic"))

        written = bytes(ready_stream.written[handshake_size:])
        length = int.from_bytes(written[4:8], "little")
        assert length == len(written) - 8
        assert "Björk · Homogenic".encode() in written

    @pytest.mark.asyncio
    async def test_song_frame_bytes(self, client: DiscordIpcClient, ready_stream: FakeStream, fixed_pid: int) -> None:
        await client.connect()
        handshake_size = len(ready_stream.written)
        activity = (
            Activity()
            .with_details("Song")
            .with_state("Artist · Album")
            .with_timestamps(Timestamps(start=1000, end=1300))
        )

        await client.set_activity(activity)

        written = bytes(ready_stream.written[handshake_size:])
        header, body = written[:8], written[8:]
        assert header == pack(1, len(body))
        assert "Artist · Album".encode() in body
        command = json.loads(body)
        assert command["args"] == {
            "pid": fixed_pid,
            "activity": {
                "details": "Song",
                "state": "Artist · Album",
                "timestamps": {"start": 1000, "end": 1300},
            },
        }

    @pytest.mark.asyncio
    async def test_clear_activity_sends_null(
        self,
        client: DiscordIpcClient,
        ready_stream: FakeStream,
        fixed_pid: int,
    ) -> None:
        await client.connect()

        await client.clear_activity()

        opcode, command = ready_stream.frames()[-1]
        assert opcode == 1
        assert command["args"] == {"pid": fixed_pid, "activity": None}

    @pytest.mark.asyncio
    async def test_empty_activity_sends_empty_object(self, client: DiscordIpcClient, ready_stream: FakeStream) -> None:
        await client.connect()

        await client.set_activity(Activity())

        assert ready_stream.frames()[-1][1]["args"]["activity"] == {}


class TestReconnect:
    """Tests for the reconnect-and-retry-once policy."""

    @pytest.mark.asyncio
    async def test_write_failure_reconnects_once(self, ipc_environ: dict[str, str]) -> None:
        first, second = FakeStream.ready(), FakeStream.ready()
        connector = FakeConnector([first, second])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))
        await client.connect()
        first.write_error = BrokenPipeError("Broken pipe")

        await client.set_activity(_song())

        assert len(connector.attempts) == 2
        assert [opcode for opcode, _ in second.frames()] == [0, 1]
        assert second.frames()[1][1]["args"]["activity"]["details"] == "Song"
        assert client.state is ClientState.READY

    @pytest.mark.asyncio
    async def test_second_write_failure_propagates(self, ipc_environ: dict[str, str]) -> None:
        first, second = FakeStream.ready(), FakeStream.ready()
        second.write_error = BrokenPipeError("Broken pipe")
        second.healthy_writes = 2
        connector = FakeConnector([first, second, FakeStream.ready()])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))
        await client.connect()
        first.write_error = BrokenPipeError("Broken pipe")

        await expect_presence_error(client.set_activity, ErrorKind.WRITE_SOCKET_FAILED, _song())

        assert len(connector.attempts) == 2
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_reconnect_propagates(self, ipc_environ: dict[str, str]) -> None:
        first = FakeStream.ready()
        connector = FakeConnector([first])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))
        await client.connect()
        first.write_error = BrokenPipeError("Broken pipe")

        await expect_presence_error(client.set_activity, ErrorKind.COULD_NOT_CONNECT, _song())

        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_command_without_connect_connects(
        self,
        client: DiscordIpcClient,
        connector: FakeConnector,
        ready_stream: FakeStream,
    ) -> None:
        await client.set_activity(_song())

        assert len(connector.attempts) == 1
        assert [opcode for opcode, _ in ready_stream.frames()] == [0, 1]

    @pytest.mark.asyncio
    async def test_read_failure_reconnects_once(self, ipc_environ: dict[str, str]) -> None:
        first, second = FakeStream.ready(), FakeStream.ready()
        second.queue_frame(1, {"cmd": "DISPATCH", "evt": "ACTIVITY_JOIN"})
        connector = FakeConnector([first, second])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))
        await client.connect()
        first.read_error = ConnectionResetError("reset")

        opcode, payload = await client.recv()

        assert (opcode, payload["evt"]) == (1, "ACTIVITY_JOIN")
        assert len(connector.attempts) == 2

    @pytest.mark.asyncio
    async def test_invalid_packet_is_not_retried(self, client: DiscordIpcClient, connector: FakeConnector) -> None:
        await client.connect()
        stream = client.connection.stream
        assert isinstance(stream, FakeStream)
        stream.incoming += pack(1, 8) + b"not json"

        await expect_presence_error(client.recv, ErrorKind.RECV_INVALID_PACKET)

        assert len(connector.attempts) == 1


class TestClose:
    """Tests for close."""

    @pytest.mark.asyncio
    async def test_close_sends_close_frame(self, client: DiscordIpcClient, ready_stream: FakeStream) -> None:
        await client.connect()

        await client.close()

        assert ready_stream.frames()[-1] == (2, {})
        assert ready_stream.flush_calls == 1
        assert ready_stream.shutdown_calls == 1
        assert client.state is ClientState.CLOSED
        assert not client.connection.is_connected

    @pytest.mark.asyncio
    async def test_close_flush_failure_still_shuts_down(
        self,
        client: DiscordIpcClient,
        ready_stream: FakeStream,
    ) -> None:
        await client.connect()
        ready_stream.flush_error = BrokenPipeError("Broken pipe")

        await expect_presence_error(client.close, ErrorKind.FLUSH_SOCKET_FAILED)

        assert ready_stream.shutdown_calls == 1
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_close_without_connection(self, client: DiscordIpcClient, connector: FakeConnector) -> None:
        await client.close()

        assert connector.attempts == []
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_after_close(self, ipc_environ: dict[str, str]) -> None:
        connector = FakeConnector([FakeStream.ready(), FakeStream.ready()])
        client = DiscordIpcClient(CLIENT_ID, IpcConnection(connector, ipc_environ))
        await client.connect()
        await client.close()

        await client.connect()

        assert client.state is ClientState.READY


def test_repr(client: DiscordIpcClient) -> None:
    assert repr(client) == "DiscordIpcClient(client_id=123, state=unconnected)"
