"""Prometheus metrics registry for the Discord IPC client."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

# Metric definitions
presence_ipc_frames_sent_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_frames_sent_total",
    "Total IPC frames sent",
    ["opcode", "outcome"],
)

presence_ipc_frames_recv_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_frames_recv_total",
    "Total IPC frames received",
    ["opcode"],
)

presence_ipc_errors_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_errors_total",
    "Total IPC errors by kind",
    ["kind"],
)

# Connection metrics
presence_ipc_connection_state: Final = Gauge(  # type: ignore[assignment]
    "presence_ipc_connection_state",
    "Current IPC client state",
    ["state"],
)

presence_ipc_connect_probe_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_connect_probe_total",
    "Total IPC socket probes",
    ["outcome"],
)

presence_ipc_handshake_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_handshake_total",
    "Total handshake attempts",
    ["outcome"],
)

presence_ipc_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "presence_ipc_reconnection_total",
    "Total reconnect-and-retry attempts",
    ["reason"],
)

# Publisher metrics
presence_updates_total: Final = Counter(  # type: ignore[assignment]
    "presence_updates_total",
    "Total presence updates",
    ["action", "outcome"],
)

_CLIENT_STATES = ("unconnected", "connecting", "handshaking", "ready", "closed")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_frame_sent(opcode: int, outcome: str) -> None:
    """Record a sent frame."""
    presence_ipc_frames_sent_total.labels(opcode=str(opcode), outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_frame_recv(opcode: int) -> None:
    """Record a received frame."""
    presence_ipc_frames_recv_total.labels(opcode=str(opcode)).inc()  # type: ignore[no-untyped-call]


def record_ipc_error(kind: str) -> None:
    """Record an IPC error."""
    presence_ipc_errors_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_connection_state(state: str) -> None:
    """Record client state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in _CLIENT_STATES:
        value = 1 if s == state else 0
        presence_ipc_connection_state.labels(state=s).set(value)  # type: ignore[no-untyped-call]


def record_connect_probe(outcome: str) -> None:
    """Record a socket probe."""
    presence_ipc_connect_probe_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_handshake(outcome: str) -> None:
    """Record a handshake attempt."""
    presence_ipc_handshake_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_reconnection(reason: str) -> None:
    """Record a reconnection attempt."""
    presence_ipc_reconnection_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_presence_update(action: str, outcome: str) -> None:
    """Record a presence update."""
    presence_updates_total.labels(action=action, outcome=outcome).inc()  # type: ignore[no-untyped-call]
