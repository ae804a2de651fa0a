"""Metrics module."""

from . import registry
from .registry import (
    record_connection_state,
    record_frame_recv,
    record_frame_sent,
    record_handshake,
    record_ipc_error,
    record_presence_update,
    record_reconnection,
    start_metrics_server,
)

__all__ = [
    "record_connection_state",
    "record_frame_recv",
    "record_frame_sent",
    "record_handshake",
    "record_ipc_error",
    "record_presence_update",
    "record_reconnection",
    "registry",
    "start_metrics_server",
]
