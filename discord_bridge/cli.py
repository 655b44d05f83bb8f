"""CLI argument parsing and main entry point.

Provides two modes of operation:

* ``discord-bridge -r [-u URL] [-f FILE]``: write a new registration file.
* ``discord-bridge [-c CONFIG] [-f FILE] [-p PORT]``: run the bridge.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from discord_bridge.config.loader import read_config_file
from discord_bridge.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_REGISTRATION_PATH,
    SERVER_NAME,
    SERVER_VERSION,
)
from discord_bridge.display.logging_config import setup_logging
from discord_bridge.errors import BridgeBaseError, ConfigurationError, StartupError
from discord_bridge.registration.generator import generate_registration
from discord_bridge.runtime.sequencer import StartupSequencer

module_logger = logging.getLogger(__name__)


# ── ``discord-bridge -r`` ───────────────────────────────────────────────


def _cmd_generate(args: argparse.Namespace) -> int:
    """Write a fresh registration to ``args.file``."""
    registration = generate_registration(url=args.url)
    try:
        registration.save(args.file)
    except OSError as e_write:
        print(f"Error: could not write registration to {args.file}: {e_write}", file=sys.stderr)
        return 1
    print(f"Registration written to {args.file}")
    return 0


# ── ``discord-bridge`` (run) ────────────────────────────────────────────


def _install_signal_handlers(sequencer: StartupSequencer) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, sequencer.request_stop)
        except NotImplementedError:
            # Event loops without signal support (Windows)
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(sequencer.request_stop))


async def _run_bridge(sequencer: StartupSequencer) -> int:
    """Async main: start, serve until stopped, tear down."""
    _install_signal_handlers(sequencer)
    try:
        await sequencer.start()
    except StartupError as e_start:
        module_logger.error("Failure during startup. Exiting. (%s)", e_start)
        await sequencer.stop()
        return 1

    try:
        await sequencer.serve()
    except BridgeBaseError as e_fatal:
        module_logger.critical("Fatal error while running. Exiting. (%s)", e_fatal)
        return 1
    finally:
        await sequencer.stop()
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    log_fpath, log_lvl = setup_logging(args.log_level)
    module_logger.info(
        "---- %s v%s starting (file log level: %s) ----",
        SERVER_NAME,
        SERVER_VERSION,
        log_lvl,
    )

    try:
        file_config = read_config_file(args.config)
    except ConfigurationError as e_cfg:
        module_logger.error("%s", e_cfg)
        print(f"Error: {e_cfg}", file=sys.stderr)
        return 1

    sequencer = StartupSequencer(
        file_config,
        registration_path=args.file,
        port=args.port,
        host=args.host,
        bootstrap_log_fpath=log_fpath,
    )
    try:
        return asyncio.run(_run_bridge(sequencer))
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", SERVER_NAME)
        return 1
    finally:
        module_logger.info("%s application finished.", SERVER_NAME)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discord-bridge",
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )
    parser.add_argument(
        "-r",
        "--generate-registration",
        action="store_true",
        default=False,
        help="Generate a registration file for the homeserver and exit",
    )
    parser.add_argument(
        "-u",
        "--url",
        type=str,
        default=None,
        help="URL the homeserver should use to reach this bridge (with -r)",
    )
    parser.add_argument(
        "-f",
        "--file",
        type=str,
        default=DEFAULT_REGISTRATION_PATH,
        metavar="PATH",
        help=f"Registration file to write or read (default: {DEFAULT_REGISTRATION_PATH})",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        metavar="PATH",
        help=f"Bridge configuration file (YAML) (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port for the application-service listener (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_HOST,
        help=f"Host address for the listener (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=DEFAULT_LOG_LEVEL.lower(),
        choices=["debug", "verbose", "info", "warning", "error", "critical"],
        help="Set file logging level (default: info)",
    )
    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Parse *argv* and run the selected mode; returns the exit code."""
    args = _build_parser().parse_args(argv)
    if args.generate_registration:
        return _cmd_generate(args)
    return _cmd_run(args)


def main() -> None:
    """Program entry point."""
    sys.exit(run())
