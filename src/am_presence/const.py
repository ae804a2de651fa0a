import os
from collections.abc import Mapping

from pydantic import BaseModel

from am_presence import __version__

__all__ = [
    "AM_PRESENCE_VERSION",
    "BUTTON_LABEL_MAX_LENGTH",
    "BUTTON_URL_MAX_LENGTH",
    "DEFAULT_CLIENT_ID",
    "DEFAULT_METRICS_PORT",
    "DEFAULT_UPDATE_INTERVAL",
    "IPC_ENV_KEYS",
    "MAX_BUTTONS",
    "PROTOCOL_VERSION",
    "SET_ACTIVITY_CMD",
    "SOCKET_COUNT",
    "SOCKET_PREFIX",
    "YES_ANSWER",
    "PresenceEnv",
    "env",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
AM_PRESENCE_VERSION: str = __version__

# Discord IPC wire constants
PROTOCOL_VERSION: int = 1
SET_ACTIVITY_CMD: str = "SET_ACTIVITY"
SOCKET_PREFIX: str = "discord-ipc"
SOCKET_COUNT: int = 10
# runtime dir first, then the temp dirs
IPC_ENV_KEYS: tuple[str, ...] = ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP")

# Activity limits enforced by the Discord client
MAX_BUTTONS: int = 2
BUTTON_LABEL_MAX_LENGTH: int = 32
BUTTON_URL_MAX_LENGTH: int = 512

DEFAULT_CLIENT_ID: str = "861702238472241162"
DEFAULT_UPDATE_INTERVAL: float = 5.0
DEFAULT_METRICS_PORT: int = 9400


def _flag(value: str | None) -> bool:
    return (value or "0").casefold() in YES_ANSWER


def _interval(value: str | None) -> float:
    try:
        interval = float(value) if value else DEFAULT_UPDATE_INTERVAL
    except (ValueError, TypeError):
        return DEFAULT_UPDATE_INTERVAL
    return interval if interval > 0 else DEFAULT_UPDATE_INTERVAL


def _port(value: str | None) -> int:
    return int(value) if value and value.isdigit() else DEFAULT_METRICS_PORT


class PresenceEnv(BaseModel):
    """AM_PRESENCE_* environment settings.

    Values are read by reload(), once at import and again after an
    environment file has been loaded.
    """

    client_id: str = DEFAULT_CLIENT_ID
    debug: bool = False
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    # "json", "human", or "both"
    log_format: str = "human"
    log_json_file: str | None = None
    log_human_output: str = "stdout"
    enable_exporter: bool = False
    metrics_port: int = DEFAULT_METRICS_PORT

    def reload(self, environ: Mapping[str, str] | None = None) -> None:
        """Re-evaluate environment variables to update the settings."""
        source = os.environ if environ is None else environ
        self.client_id = source.get("AM_PRESENCE_CLIENT_ID") or DEFAULT_CLIENT_ID
        self.debug = _flag(source.get("AM_PRESENCE_DEBUG"))
        self.update_interval = _interval(source.get("AM_PRESENCE_UPDATE_INTERVAL"))
        self.log_format = source.get("AM_PRESENCE_LOG_FORMAT") or "human"
        self.log_json_file = source.get("AM_PRESENCE_LOG_JSON_FILE") or None
        self.log_human_output = source.get("AM_PRESENCE_LOG_HUMAN_OUTPUT") or "stdout"
        self.enable_exporter = _flag(source.get("AM_PRESENCE_ENABLE_EXPORTER"))
        self.metrics_port = _port(source.get("AM_PRESENCE_METRICS_PORT"))


env = PresenceEnv()
env.reload()
