"""Companion core entry point.

``companion-core run`` keeps a live connection to the agent and logs every
status change until interrupted. The other commands manage the local
snapshots without connecting.
"""

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import Sequence

import logfire

from companion_core.core.config import Settings, get_settings
from companion_core.core.errors import BackupFormatError, PersistenceError
from companion_core.core.logging import get_logger, setup_logging
from companion_core.infrastructure.connection import Channel, ConnectionStatus
from companion_core.services import CompanionContext

logger = get_logger(__name__)


async def run(config: Settings) -> None:
    """Connect and stay connected until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    def on_status(status: ConnectionStatus, channel: Channel | None) -> None:
        logger.info("Agent link", status=status.value, has_channel=channel is not None)

    async with CompanionContext.from_settings(config) as companion:
        companion.subscribe_status(on_status)
        companion.add_message_listener(lambda payload: logger.debug("Agent message", payload=payload))
        logger.info(
            "Companion core running",
            agent_url=config.agent_url,
            storage=str(config.storage_path),
            session_id=companion.session.id,
            conversations=len(companion.conversations),
        )
        await stop.wait()

    logger.info("Companion core stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="companion-core", description="Companion session and connection manager")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Connect to the agent and keep the link alive")

    export = sub.add_parser("export", help="Write a backup of every collection except the live session")
    export.add_argument("path", help="Target file, or a directory for a dated file name")

    restore = sub.add_parser("import", help="Replace collections from a backup file")
    restore.add_argument("path")

    sub.add_parser("reset", help="Reset every collection to its default")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_settings()

    logfire.configure(service_name="companion-core", send_to_logfire="if-token-present", console=False)
    setup_logging(config.log_level, config.log_json)

    command = args.command or "run"
    if command == "run":
        asyncio.run(run(config))
        return 0

    companion = CompanionContext.from_settings(config)
    try:
        if command == "export":
            target = companion.write_backup(args.path)
            print(target)
        elif command == "import":
            replaced = companion.read_backup(args.path)
            print(", ".join(replaced) or "nothing to import")
        elif command == "reset":
            companion.reset_all()
    except (BackupFormatError, PersistenceError, OSError) as e:
        logger.error("Command failed", command=command, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
