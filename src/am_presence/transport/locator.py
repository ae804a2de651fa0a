"""Discovery of the Discord IPC socket paths."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from am_presence.const import IPC_ENV_KEYS, SOCKET_COUNT, SOCKET_PREFIX
from am_presence.protocol.exceptions import ErrorKind, RichPresenceError

__all__ = ["candidate_path", "candidate_paths", "resolve_base_dir"]

logger = logging.getLogger(__name__)


def resolve_base_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding Discord's IPC sockets.

    Checks IPC_ENV_KEYS in order and returns the first one that is set to a
    non-empty value. There is no hardcoded fallback directory.

    Args:
        environ: Environment to read (default: os.environ)

    Raises:
        RichPresenceError: COULD_NOT_CONNECT if none of the variables is set

    """
    env = os.environ if environ is None else environ
    for key in IPC_ENV_KEYS:
        value = env.get(key)
        if value:
            logger.debug("Using IPC base dir from %s: %s", key, value, extra={"env_key": key})
            return Path(value)

    logger.debug("No IPC base dir variable set", extra={"env_keys": list(IPC_ENV_KEYS)})
    raise RichPresenceError(ErrorKind.COULD_NOT_CONNECT)


def candidate_path(base: Path, index: int) -> Path:
    """Return the socket path for listener ``index`` (0-9) under ``base``."""
    if not 0 <= index < SOCKET_COUNT:
        msg = f"IPC socket index must be in 0..{SOCKET_COUNT - 1}, got {index}"
        raise ValueError(msg)
    return base / f"{SOCKET_PREFIX}-{index}"


def candidate_paths(base: Path) -> list[Path]:
    """Return every candidate socket path in probe order."""
    return [candidate_path(base, index) for index in range(SOCKET_COUNT)]
