"""Discord IPC transport - socket discovery and raw stream I/O."""

from am_presence.transport.connection import Connector, IpcConnection
from am_presence.transport.locator import candidate_path, candidate_paths, resolve_base_dir
from am_presence.transport.socket_abstraction import DuplexStream, UnixSocketStream, open_unix_stream

__all__ = [
    "Connector",
    "DuplexStream",
    "IpcConnection",
    "UnixSocketStream",
    "candidate_path",
    "candidate_paths",
    "open_unix_stream",
    "resolve_base_dir",
]
