from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Callable, Optional


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def add_common_cli_arguments(
    parser: argparse.ArgumentParser,
    *,
    include_config: bool = True,
    include_console_control: bool = True,
    default_console_output: bool = True,
) -> None:
    """Options shared by every entry point.

    Defaults are ``None`` where the config file supplies the real default, so
    only values given on the command line override it.
    """
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory where downloaded archives are saved",
    )

    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=None,
        help="Logging verbosity",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Path of the rotating log file",
    )

    if include_config:
        parser.add_argument(
            "--config",
            type=Path,
            default=None,
            help="Optional key = value configuration file",
        )

    if include_console_control:
        console_group = parser.add_mutually_exclusive_group()
        console_group.add_argument(
            "--console",
            dest="console_output",
            action="store_true",
            default=default_console_output,
            help="Also log to console (in addition to file)",
        )
        console_group.add_argument(
            "--no-console",
            dest="console_output",
            action="store_false",
            help="Log to file only (no console output)",
        )


def _positive_number(value: str, typ: type, name: str):
    """Generic positive number validator for argparse."""
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value must be a {name}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed


def positive_int(value: str) -> int:
    return _positive_number(value, int, "integer")


def positive_float(value: str) -> float:
    return _positive_number(value, float, "number")


def install_signal_handlers(
    shutdown: Callable[[], None],
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> None:
    """Register SIGINT/SIGTERM handlers that request a graceful shutdown."""

    loop = loop or asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, shutdown)


def install_exception_handler(
    logger: logging.Logger,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> None:
    """Route unhandled asyncio errors through ``logger``."""

    loop = loop or asyncio.get_running_loop()

    def handle_asyncio_exception(loop, context):
        exception = context.get("exception")
        message = context.get("message", "Unhandled asyncio exception")
        if exception:
            logger.error("Asyncio exception: %s", message, exc_info=exception)
        else:
            logger.error("Asyncio error: %s, context: %s", message, context)

    loop.set_exception_handler(handle_asyncio_exception)


__all__ = [
    "LOG_LEVELS",
    "add_common_cli_arguments",
    "install_exception_handler",
    "install_signal_handlers",
    "positive_float",
    "positive_int",
]
