"""Listingbot process entry-point.

Usage:
    python -m listingbot [--once] [--task {orders,rented,listed}] ...

The orchestration logic lives in ``listingbot.orchestrator``.  This module
calls ``configure_logging()`` first, validates the configuration (a bad
credential is fatal), then hands off to the scheduler.

Default behaviour is continuous: every selected task runs on its own cadence
until ``SIGTERM`` / ``SIGINT``.  Pass ``--once`` to run each selected task a
single time and exit.

Exit status: 0 on a clean run or shutdown, 1 on a configuration error or when
any ``--once`` cycle fails, 2 on a command-line usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from listingbot.core import configure_logging
from listingbot.core.credentials import build_basic_auth
from listingbot.core.exceptions import ConfigError
from listingbot.core.settings import Settings, load_settings


_EXIT_STATUS = (
    "exit status: 0 clean run or shutdown; 1 configuration error, or a failed "
    "cycle with --once; 2 usage error"
)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    from listingbot.orchestrator.runner import TASKS  # noqa: PLC0415

    parser = argparse.ArgumentParser(
        prog="listingbot",
        description="Rental listing manager: fulfils orders and reclaims silent devices.",
        epilog=_EXIT_STATUS,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run each selected task a single time and exit.",
    )
    parser.add_argument(
        "--task",
        action="append",
        choices=TASKS,
        dest="tasks",
        help="Task to run (repeatable). Defaults to all tasks.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    args = parser.parse_args(argv)
    args.tasks = args.tasks or list(TASKS)
    return args


async def _run_all_once(tasks: list[str], settings: Settings, credential: str) -> bool:
    from listingbot.orchestrator.runner import run_once  # noqa: PLC0415

    reports = [await run_once(task, settings, credential) for task in tasks]
    return all(r.ok for r in reports)


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"listingbot: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Listingbot starting up")

    from listingbot.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        settings = load_settings()
        # .env values only become visible once settings are loaded.
        configure_logging(
            level=args.log_level or settings.log_level,
            fmt=args.log_format or settings.log_format,
            force=True,
        )
        credential = build_basic_auth(settings.marketplace_username, settings.marketplace_password)
        logger.info(
            "Marketplace %s | fleet %s | lease tier %s",
            settings.marketplace_base_url,
            settings.fleet_base_url,
            settings.lease_tier,
        )
        if args.once:
            ok = asyncio.run(_run_all_once(args.tasks, settings, credential))
            sys.exit(0 if ok else 1)
        asyncio.run(run_continuous(settings, args.tasks))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
