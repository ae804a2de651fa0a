"""Discord Rich Presence publisher for the local IPC socket."""

__version__ = "0.4.0"
