"""Logging abstraction layer for the presence publisher.

Provides dual-format logging (JSON + human-readable) with correlation tracking,
structured context, and configurable output destinations.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

from am_presence.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "PresenceLogger",
    "configure_root_logging",
    "get_logger",
    "reload_logging",
    "set_log_level",
]

# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "correlation_id",
    "extra_data",
    "taskName",
}


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    """Structured context of a record.

    PresenceLogger wraps its context in ``extra_data``; plain
    ``logging.getLogger`` callers pass ``extra`` keys that land directly on
    the record. Both are rendered, ``extra_data`` keys first.
    """
    context: dict[str, object] = {}
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        context.update(cast("Mapping[str, object]", extra_data))
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRS and not key.startswith("_"):
            context.setdefault(key, value)
    return context or None


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON logs."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """Formatter that outputs human-readable logs with correlation IDs."""

    def __init__(self) -> None:
        # Format: timestamp level [module:line] correlation_id > message
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)

        context = _context_of(record)
        if context:
            context_str = " | ".join(f"{k}={v}" for k, v in context.items())
            formatted = f"{formatted} | {context_str}"

        return formatted


def _build_handlers(
    log_format: str,
    json_file: str | Path | None,
    human_output: str | None,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if log_format in ("json", "both") and json_file:
        try:
            json_path = Path(json_file)
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = logging.FileHandler(json_path, mode="a", encoding="utf-8")
            json_handler.setFormatter(JSONFormatter())
            handlers.append(json_handler)
        except OSError as e:
            print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)

    if log_format in ("human", "both"):
        normalized_output = human_output or "stdout"
        if normalized_output == "stdout":
            human_handler: logging.Handler = logging.StreamHandler(sys.stdout)
        elif normalized_output == "stderr":
            human_handler = logging.StreamHandler(sys.stderr)
        else:
            try:
                human_path = Path(normalized_output)
                human_path.parent.mkdir(parents=True, exist_ok=True)
                human_handler = logging.FileHandler(human_path, mode="a", encoding="utf-8")
            except OSError as e:
                print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
                human_handler = logging.StreamHandler(sys.stdout)
        human_handler.setFormatter(HumanReadableFormatter())
        handlers.append(human_handler)

    return handlers


class PresenceLogger:
    """Logger abstraction providing dual-format output (JSON + human-readable).

    Structured context goes in ``extra`` and is rendered as ``key=value``
    pairs (human) or a ``context`` object (JSON).
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
        level: int | None = None,
    ) -> None:
        """Initialize PresenceLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", or "both"
            json_file: Path for JSON output file (None to disable file output)
            human_output: "stdout", "stderr", or file path for human-readable output
            level: Log level (default: DEBUG if AM_PRESENCE_DEBUG is set, else INFO)

        """
        from am_presence.const import env

        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format

        if level is None:
            level = logging.DEBUG if env.debug else logging.INFO
        self.logger.setLevel(level)

        # Don't add handlers if already configured (avoid duplicates)
        if not self.logger.handlers:
            for handler in _build_handlers(log_format, json_file, human_output):
                handler.setLevel(level)
                self.logger.addHandler(handler)
            self.logger.propagate = False

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log debug message with optional structured context."""
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log info message with optional structured context."""
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log warning message with optional structured context."""
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log error message with optional structured context."""
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log exception with traceback and optional structured context."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra, stacklevel=2)

    def reconfigure(self, log_format: str, json_file: str | Path | None, human_output: str | None) -> None:
        """Replace the output handlers, keeping the current level."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.log_format = log_format
        for handler in _build_handlers(log_format, json_file, human_output):
            handler.setLevel(self.logger.level)
            self.logger.addHandler(handler)

    def set_level(self, level: int) -> None:
        """Set logging level on the logger and its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        """Get list of handlers."""
        return self.logger.handlers


_managed_loggers: dict[str, tuple[PresenceLogger, str | None, str | Path | None, str | None]] = {}


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> PresenceLogger:
    """Get or create a PresenceLogger instance.

    Unset arguments fall back to the AM_PRESENCE_LOG_* settings; those
    loggers follow the settings again on reload_logging().
    """
    from am_presence.const import env

    presence_logger = PresenceLogger(
        name=name,
        log_format=log_format or env.log_format,
        json_file=json_file or env.log_json_file,
        human_output=human_output or env.log_human_output,
    )
    _managed_loggers[name] = (presence_logger, log_format, json_file, human_output)
    return presence_logger


def reload_logging() -> None:
    """Rebuild the handlers of get_logger() loggers from the current AM_PRESENCE_LOG_* settings."""
    from am_presence.const import env

    for presence_logger, log_format, json_file, human_output in _managed_loggers.values():
        presence_logger.reconfigure(
            log_format or env.log_format,
            json_file or env.log_json_file,
            human_output or env.log_human_output,
        )


def set_log_level(level: int) -> None:
    """Set the level of every get_logger() logger."""
    for presence_logger, *_ in _managed_loggers.values():
        presence_logger.set_level(level)


def configure_root_logging(level: int) -> None:
    """Route library loggers (``am_presence.transport``, ``am_presence.ipc_client``) to stderr.

    Library modules log through plain ``logging.getLogger(__name__)`` with
    ``extra`` fields; this gives them the same layout, ``extra`` keys
    included.
    """
    from am_presence.const import env

    package_logger = logging.getLogger("am_presence")
    package_logger.setLevel(level)
    if package_logger.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if env.log_format == "json" else HumanReadableFormatter())
    handler.setLevel(level)
    package_logger.addHandler(handler)
