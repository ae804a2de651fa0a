"""Discord IPC protocol package - frame header codec and error type.

Public API:
- Frame header encoder/decoder (pack, unpack, HEADER_SIZE)
- Opcode constants (Opcode)
- Error type (RichPresenceError, ErrorKind)
"""

from am_presence.protocol.exceptions import TRANSIENT_KINDS, ErrorKind, RichPresenceError
from am_presence.protocol.frame import HEADER_SIZE, Opcode, pack, unpack

__all__ = [
    "HEADER_SIZE",
    "TRANSIENT_KINDS",
    "ErrorKind",
    "Opcode",
    "RichPresenceError",
    "pack",
    "unpack",
]
