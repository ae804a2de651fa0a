"""Periodic presence publishing loop.

PresencePublisher asks an activity source what to show every ``interval``
seconds and pushes the answer to Discord through a DiscordIpcClient:

- source returns None  -> clear the activity (logs "Not playing" once)
- same activity as last time -> nothing is sent
- new activity -> set_activity()

Dropped-connection errors are logged once per outage ("Disconnected", then
"Connected" when an update goes through again); other errors are logged
every time. Operations are awaited one at a time, which is the single-caller
contract DiscordIpcClient expects.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from am_presence.const import env
from am_presence.correlation import correlation_context
from am_presence.ipc_client import DiscordIpcClient
from am_presence.logging_abstraction import get_logger
from am_presence.metrics import registry
from am_presence.presence.activity import Activity
from am_presence.protocol.exceptions import RichPresenceError

__all__ = ["ActivitySource", "PresencePublisher"]

logger = get_logger(__name__)

ActivitySource = Callable[[], Awaitable[Activity | None]]


class PresencePublisher:
    """Pushes the activity reported by ``source`` to Discord on a fixed interval."""

    def __init__(
        self,
        client: DiscordIpcClient,
        source: ActivitySource,
        interval: float | None = None,
    ) -> None:
        self.client = client
        self.source = source
        self.interval = env.update_interval if interval is None else interval
        self.last_activity: Activity | None = None
        self.is_idle: bool = False
        self.last_connect_failed: bool = False

    async def start(self) -> bool:
        """Try to connect once. Failure is logged; later updates reconnect on their own."""
        try:
            await self.client.connect()
        except RichPresenceError as e:
            logger.warning("Could not connect to Discord: %s", e, extra={"kind": e.kind.value})
            self.last_connect_failed = True
            return False

        logger.info("Connected to Discord")
        return True

    async def tick(self) -> None:
        """Run one update."""
        with correlation_context():
            try:
                activity = await self.source()
            except Exception:
                registry.record_presence_update("source", "failed")
                logger.exception("Activity source failed")
                return

            action = "clear" if activity is None else "set"
            try:
                sent = await self._publish(activity)
            except RichPresenceError as e:
                registry.record_presence_update(action, "failed")
                self._handle_error(e)
                return

            registry.record_presence_update(action, "sent" if sent else "unchanged")
            if self.last_connect_failed:
                self.last_connect_failed = False
                logger.info("Connected to Discord")

    async def _publish(self, activity: Activity | None) -> bool:
        if activity is None:
            if not self.is_idle:
                logger.info("Not playing anything")
                self.is_idle = True
                self.last_activity = None
            await self.client.clear_activity()
            return True

        if activity == self.last_activity:
            return False

        await self.client.set_activity(activity)
        self.last_activity = activity
        self.is_idle = False
        logger.info(
            "Presence updated: %s · %s",
            activity.details or "-",
            activity.state or "-",
        )
        return True

    def _handle_error(self, err: RichPresenceError) -> None:
        if err.is_transient:
            # Discord may have restarted; resend the activity once it is back
            self.last_activity = None
            if not self.last_connect_failed:
                logger.warning("Disconnected from Discord", extra={"kind": err.kind.value})
                self.last_connect_failed = True
            return

        logger.error("Error updating presence: %s", err, extra={"kind": err.kind.value})

    async def run(self, stop_event: asyncio.Event) -> None:
        """Publish until ``stop_event`` is set, then clear the activity and close."""
        await self.start()
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                continue
        await self.shutdown()

    async def shutdown(self) -> None:
        """Clear the activity and close the IPC connection (errors are logged)."""
        logger.info("Shutting down Discord presence")
        try:
            await self.client.clear_activity()
            await self.client.close()
        except RichPresenceError as e:
            logger.warning("Could not clear presence during shutdown: %s", e, extra={"kind": e.kind.value})
