"""Operator command line for one-off reconciliation.

Usage:
    filenest-admin integrity check      # report orphans, change nothing
    filenest-admin integrity fix        # link orphaned requests to users
    filenest-admin expiry run           # one expiry pass now
    filenest-admin reminders run        # one reminder pass now

Results are printed as JSON. Exit status is 1 when any row failed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from filenest.core.config import Settings

logger = logging.getLogger(__name__)

COMMANDS = {
    "integrity": ("check", "fix"),
    "expiry": ("run",),
    "reminders": ("run",),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filenest-admin",
        description="Run FileNest reconciliation passes on demand",
    )
    groups = parser.add_subparsers(dest="group", required=True)

    for group, actions in COMMANDS.items():
        sub = groups.add_parser(group, help=f"{group} reconciliation")
        sub.add_argument("action", choices=actions)

    parser.add_argument(
        "--log-level",
        default=os.environ.get("FILENEST_LOG_LEVEL", "INFO"),
        help="Logging level (default: FILENEST_LOG_LEVEL or INFO)",
    )
    return parser


async def run_command(group: str, action: str, settings: Settings) -> dict[str, Any]:
    """Run one operator command in its own session.

    Returns:
        The handler's result dictionary.
    """
    from filenest.db import close_engine, get_async_session
    from filenest.services.notifier import EmailNotifier
    from filenest.worker.handlers import (
        expiry_pass_handler,
        integrity_check_handler,
        integrity_fix_handler,
        reminder_pass_handler,
    )

    try:
        async with get_async_session() as session:
            if group == "integrity":
                if action == "check":
                    return await integrity_check_handler(session)
                return await integrity_fix_handler(session)

            notifier = EmailNotifier(settings.smtp, app_name=settings.app_name)
            if group == "expiry":
                return await expiry_pass_handler(session, settings, notifier)
            return await reminder_pass_handler(session, settings, notifier)
    finally:
        await close_engine()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``filenest-admin`` console script."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    from filenest.core.settings import get_settings

    settings = get_settings()

    try:
        result = asyncio.run(run_command(args.group, args.action, settings))
    except Exception as e:
        logger.exception("Command failed: %s %s: %s", args.group, args.action, e)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    return 1 if result.get("failed_count") else 0


if __name__ == "__main__":
    sys.exit(main())
