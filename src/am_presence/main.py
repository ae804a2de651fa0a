from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Sequence
from pathlib import Path

import dotenv
import uvloop

from am_presence.const import AM_PRESENCE_VERSION, env
from am_presence.correlation import correlation_context
from am_presence.ipc_client import DiscordIpcClient
from am_presence.logging_abstraction import (
    configure_root_logging,
    get_logger,
    reload_logging,
    set_log_level,
)
from am_presence.metrics import start_metrics_server
from am_presence.presence.activity import Activity, Assets, Button, Timestamps
from am_presence.presence.source import ActivityFileSource
from am_presence.protocol.exceptions import RichPresenceError
from am_presence.publisher import ActivitySource, PresencePublisher

logger = get_logger(__name__)


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="am-presence", description="Discord Rich Presence publisher")
    _ = parser.add_argument("--client-id", help="Discord application id (default: AM_PRESENCE_CLIENT_ID)")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--env", help="Path to an environment file", default=None, type=Path)
    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {AM_PRESENCE_VERSION}")

    commands = parser.add_subparsers(dest="command", required=True)

    set_cmd = commands.add_parser("set", help="Show an activity until interrupted")
    _ = set_cmd.add_argument("--details", help="First line (title)")
    _ = set_cmd.add_argument("--state", help="Second line (subtitle)")
    _ = set_cmd.add_argument("--start", type=int, help="Start time (epoch seconds)")
    _ = set_cmd.add_argument("--end", type=int, help="End time (epoch seconds)")
    _ = set_cmd.add_argument("--large-image", help="Large image asset key or URL")
    _ = set_cmd.add_argument("--large-text", help="Large image hover text")
    _ = set_cmd.add_argument("--small-image", help="Small image asset key or URL")
    _ = set_cmd.add_argument("--small-text", help="Small image hover text")
    _ = set_cmd.add_argument(
        "--button",
        nargs=2,
        action="append",
        metavar=("LABEL", "URL"),
        help="Link button (repeatable, at most 2)",
    )

    commands.add_parser("clear", help="Clear the activity and disconnect")

    run_cmd = commands.add_parser("run", help="Publish the activity described by a YAML/JSON file")
    _ = run_cmd.add_argument("--activity-file", required=True, type=Path, help="File re-read on every update")
    _ = run_cmd.add_argument(
        "--interval",
        type=float,
        help="Seconds between updates (default: AM_PRESENCE_UPDATE_INTERVAL)",
    )

    return parser.parse_args(argv)


def build_activity(args: argparse.Namespace) -> Activity:
    """Build the activity described by the ``set`` command options."""
    activity = Activity()
    if args.details:
        activity = activity.with_details(args.details)
    if args.state:
        activity = activity.with_state(args.state)
    if args.start is not None or args.end is not None:
        activity = activity.with_timestamps(Timestamps(start=args.start, end=args.end))

    assets = Assets(
        large_image=args.large_image,
        large_text=args.large_text,
        small_image=args.small_image,
        small_text=args.small_text,
    )
    if assets.to_payload():
        activity = activity.with_assets(assets)

    buttons = [Button(label, url) for label, url in args.button or []]
    if buttons:
        activity = activity.with_buttons(buttons)
    return activity


def _load_env(env_file: Path) -> bool:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    if dotenv.load_dotenv(env_path, override=True):
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
        return True
    logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return False


async def publish_until_stopped(
    client: DiscordIpcClient,
    source: ActivitySource,
    interval: float | None = None,
) -> None:
    """Run a PresencePublisher until SIGINT or SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    try:
        await PresencePublisher(client, source, interval=interval).run(stop_event)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)


async def clear_presence(client: DiscordIpcClient) -> None:
    await client.connect()
    await client.clear_activity()
    await client.close()
    logger.info("Presence cleared")


async def run_command(args: argparse.Namespace, client: DiscordIpcClient) -> None:
    if args.command == "clear":
        await clear_presence(client)
        return

    if args.command == "set":
        activity = build_activity(args)

        async def static_source() -> Activity:
            return activity

        await publish_until_stopped(client, static_source)
        return

    await publish_until_stopped(client, ActivityFileSource(args.activity_file), args.interval)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for am-presence."""
    args = parse_cli(argv)

    env_loaded = args.env is not None and _load_env(args.env)
    env.reload()
    if env_loaded:
        reload_logging()

    level = logging.DEBUG if args.debug or env.debug else logging.INFO
    set_log_level(level)
    configure_root_logging(level)

    client = DiscordIpcClient(args.client_id or env.client_id)

    if env.enable_exporter:
        start_metrics_server(env.metrics_port)
        logger.info("Metrics exporter started", extra={"port": env.metrics_port})

    with correlation_context():
        logger.info("Starting am-presence", extra={"version": AM_PRESENCE_VERSION, "command": args.command})
        try:
            uvloop.run(run_command(args, client))
        except RichPresenceError as e:
            logger.error("%s", e, extra={"kind": e.kind.value})
            return 1
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
    return 0
