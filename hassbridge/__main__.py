"""hassbridge process entry-point.

Usage:
    python -m hassbridge [--log-level LEVEL] [--log-format FORMAT] [--env-file PATH]

The orchestration lives in :mod:`hassbridge.orchestrator.scheduler`.  This
module only configures logging, loads the optional env file and settings,
and runs the bridge until Ctrl+C or ``SIGTERM``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from hassbridge import __version__
from hassbridge.core import configure_logging
from hassbridge.core.exceptions import ConfigError

_DEFAULT_ENV_FILE = ".env"


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="hassbridge",
        description="Bridge HTTP-polled remote devices to MQTT and Home Assistant.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR|CRITICAL).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Load environment variables from this file before reading settings.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()

    # Real environment variables keep priority over either file.
    if args.env_file:
        if not load_dotenv(args.env_file, override=False):
            print(f"hassbridge: env file not found or empty: {args.env_file}", file=sys.stderr)  # noqa: T201
            sys.exit(1)
    else:
        # LOG_LEVEL / LOG_FORMAT in ./.env must reach configure_logging too.
        load_dotenv(_DEFAULT_ENV_FILE, override=False)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"hassbridge: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("hassbridge %s starting up", __version__)

    # Lazy import keeps startup fast when module is imported without running.
    from hassbridge.core.settings import load_settings  # noqa: PLC0415
    from hassbridge.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        settings = load_settings()
        asyncio.run(run_continuous(settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)
    except asyncio.CancelledError:
        # run_continuous() stopped via SIGTERM; the scheduler already logged it.
        logger.info("Shutdown complete, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
