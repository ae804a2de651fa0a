"""
Correlation ID tracking for presence updates.

Each publisher tick runs inside its own correlation scope, so every log line
produced while querying the activity source, writing frames and reconnecting
can be tied back to the update that caused it. Uses contextvars, so the id
follows the asyncio task.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new correlation ID (UUID4 hex without dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    """Return the current correlation ID, or None if not set."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear, with None) the correlation ID of the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Context manager for a correlation ID scope.

    Generates an ID if none is given and restores the previous ID on exit.

    Example:
        with correlation_context() as corr_id:
            logger.info("Updating presence")  # Includes corr_id
    """
    previous_id = get_correlation_id()
    current_id = correlation_id or generate_correlation_id()
    set_correlation_id(current_id)
    try:
        yield current_id
    finally:
        set_correlation_id(previous_id)
