#!/usr/bin/env python3
"""Service entrypoint — polls carbon intensity and publishes alerts to MQTT.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level / renderer
    python scripts/run.py --log-level DEBUG --log-format console
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from src.app import run as run_service
from src.core.config import ConfigError, load_settings
from src.core.logging import setup_logging

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


async def run(args: argparse.Namespace) -> int:
    """Load configuration, then poll until SIGINT/SIGTERM."""
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(level=args.log_level, fmt=args.log_format)

    if not settings.regions:
        logger.error("no_regions_configured")
        print(
            "No regions configured. Add at least one entry under 'regions' "
            "in config/settings.yaml.",
            file=sys.stderr,
        )
        return EXIT_CONFIG_ERROR

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    await run_service(settings, stop_event)
    return EXIT_OK


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Publish carbon-intensity threshold alerts to an MQTT broker.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Log renderer override",
    )
    args = parser.parse_args()

    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = EXIT_OK
    sys.exit(code)


if __name__ == "__main__":
    main()
