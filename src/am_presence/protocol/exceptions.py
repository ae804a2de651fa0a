"""Error type for Discord IPC and activity payload failures.

All failures surface as a single ``RichPresenceError`` whose ``kind`` tells
callers what went wrong. Callers branch on the kind (retry, log once, give up)
instead of on exception subclasses.
"""

from __future__ import annotations

from enum import StrEnum

__all__ = ["TRANSIENT_KINDS", "ErrorKind", "RichPresenceError"]


class ErrorKind(StrEnum):
    """Failure kinds reported by the IPC client and the payload model."""

    COULD_NOT_CONNECT = "could_not_connect"
    WRITE_SOCKET_FAILED = "write_socket_failed"
    READ_SOCKET_FAILED = "read_socket_failed"
    FLUSH_SOCKET_FAILED = "flush_socket_failed"
    RECV_INVALID_PACKET = "recv_invalid_packet"
    BUTTON_CREATE_INVALID_VALUE = "button_create_invalid_value"
    TOO_MANY_BUTTONS = "too_many_buttons"


# Kinds that usually mean the Discord client went away or restarted
TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.COULD_NOT_CONNECT,
        ErrorKind.WRITE_SOCKET_FAILED,
        ErrorKind.READ_SOCKET_FAILED,
    },
)

_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.COULD_NOT_CONNECT: "Could not connect to IPC socket",
    ErrorKind.WRITE_SOCKET_FAILED: "Failed to write to socket",
    ErrorKind.READ_SOCKET_FAILED: "Failed to read from socket",
    ErrorKind.FLUSH_SOCKET_FAILED: "Failed to flush socket",
    ErrorKind.RECV_INVALID_PACKET: "Received invalid packet",
    ErrorKind.BUTTON_CREATE_INVALID_VALUE: "Invalid value when creating button",
    ErrorKind.TOO_MANY_BUTTONS: "Too many ({count}) buttons provided to activity",
}


class RichPresenceError(Exception):
    """Rich presence failure.

    Attributes:
        kind: Failure kind
        count: Offending button count (only set for TOO_MANY_BUTTONS)

    """

    def __init__(self, kind: ErrorKind, count: int | None = None) -> None:
        """Initialize error with its kind and optional button count."""
        self.kind: ErrorKind = kind
        self.count: int | None = count
        super().__init__(_MESSAGES[kind].format(count=count))

    @property
    def is_transient(self) -> bool:
        """Whether the failure looks like a dropped or missing Discord connection."""
        return self.kind in TRANSIENT_KINDS

    def __repr__(self) -> str:
        """String representation."""
        if self.count is not None:
            return f"RichPresenceError({self.kind.name}, count={self.count})"
        return f"RichPresenceError({self.kind.name})"
