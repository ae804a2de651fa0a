"""Discord IPC frame header encoding and decoding.

Every IPC message is an 8-byte header followed by a UTF-8 JSON body:
- Bytes 0-3: opcode (unsigned 32-bit, little-endian)
- Bytes 4-7: body length in bytes (unsigned 32-bit, little-endian)
"""

from __future__ import annotations

import struct
from enum import IntEnum

from am_presence.protocol.exceptions import ErrorKind, RichPresenceError

__all__ = ["HEADER_SIZE", "Opcode", "pack", "unpack"]

_HEADER = struct.Struct("<II")
HEADER_SIZE = _HEADER.size  # 8


class Opcode(IntEnum):
    """Frame opcodes used by this client."""

    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2


def pack(opcode: int, length: int) -> bytes:
    """Encode an 8-byte frame header.

    Args:
        opcode: Frame opcode (Opcode.HANDSHAKE, Opcode.FRAME, Opcode.CLOSE)
        length: Body length in bytes

    Returns:
        8-byte header

    Example:
        >>> pack(Opcode.FRAME, 16).hex(" ")
        '01 00 00 00 10 00 00 00'

    """
    return _HEADER.pack(opcode, length)


def unpack(header: bytes) -> tuple[int, int]:
    """Decode an 8-byte frame header into (opcode, length).

    Raises:
        RichPresenceError: RECV_INVALID_PACKET if the header is not exactly 8 bytes

    Example:
        >>> unpack(bytes.fromhex("01 00 00 00 10 00 00 00"))
        (1, 16)

    """
    if len(header) != HEADER_SIZE:
        raise RichPresenceError(ErrorKind.RECV_INVALID_PACKET)
    opcode, length = _HEADER.unpack(header)
    return opcode, length
