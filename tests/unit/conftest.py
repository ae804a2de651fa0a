"""Shared fixtures for unit tests."""

from __future__ import annotations

import logging

import pytest

from am_presence.transport.connection import IpcConnection
from tests.helpers.fakes import RUNTIME_DIR, FakeConnector, FakeStream


@pytest.fixture
def ipc_environ() -> dict[str, str]:
    """Environment pointing the socket lookup at a fixed runtime dir."""
    return {"XDG_RUNTIME_DIR": RUNTIME_DIR}


@pytest.fixture
def ready_stream() -> FakeStream:
    return FakeStream.ready()


@pytest.fixture
def connector(ready_stream: FakeStream) -> FakeConnector:
    """Connector with one READY stream listening on discord-ipc-0."""
    return FakeConnector([ready_stream])


@pytest.fixture
def connection(connector: FakeConnector, ipc_environ: dict[str, str]) -> IpcConnection:
    return IpcConnection(connector=connector, environ=ipc_environ)


@pytest.fixture
def propagating_logger():
    """Let caplog see records from a PresenceLogger (which disables propagation)."""
    touched: list[logging.Logger] = []

    def _enable(name: str) -> logging.Logger:
        logger = logging.getLogger(name)
        touched.append(logger)
        logger.propagate = True
        return logger

    yield _enable

    for logger in touched:
        logger.propagate = False
