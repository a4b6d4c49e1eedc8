"""TM Capture entry point: preview, record and export from the command line."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional, TextIO

from tm_capture.cli.common import (
    add_common_cli_arguments,
    install_exception_handler,
    install_signal_handlers,
    positive_float,
    positive_int,
)
from tm_capture.core.logging_config import configure_logging
from tm_capture.core.logging_utils import get_module_logger
from tm_capture.capture.config import CaptureConfig, load_config
from tm_capture.capture.controller import CaptureController, ControlSurface
from tm_capture.capture.source import HttpFrameSource

DISPLAY_NAME = "TM Capture"
MODE_INTERACTIVE = "interactive"
MODE_HEADLESS = "headless"
DEFAULT_DURATION_S = 10.0
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.txt"

logger = get_module_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tm-capture",
        description=f"{DISPLAY_NAME} - record downsized grayscale stills from a remote camera",
    )
    add_common_cli_arguments(parser)
    parser.add_argument(
        "--url",
        dest="base_url",
        default=None,
        help="Base URL of the camera device (e.g. http://192.168.4.1)",
    )
    parser.add_argument(
        "--interval",
        type=positive_int,
        default=None,
        help="Capture interval in milliseconds (clamped to the configured minimum)",
    )
    parser.add_argument(
        "--mode",
        choices=[MODE_INTERACTIVE, MODE_HEADLESS],
        default=MODE_INTERACTIVE,
        help="interactive: stdin commands; headless: record for --duration then export",
    )
    parser.add_argument(
        "--duration",
        type=positive_float,
        default=DEFAULT_DURATION_S,
        help="Recording length in seconds for headless mode",
    )
    return parser.parse_args(argv)


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "base_url": args.base_url,
        "output_dir": args.output_dir,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }


def build_controller(config: CaptureConfig) -> CaptureController:
    source = HttpFrameSource(
        config.source.capture_url,
        timeout_s=config.source.request_timeout_s,
    )
    return CaptureController(config, source)


class StatusPrinter:
    """Prints the status line whenever status or frame count changes."""

    def __init__(self, console: TextIO) -> None:
        self._console = console
        self._last: Optional[tuple[str, int]] = None

    def __call__(self, controls: ControlSurface) -> None:
        current = (controls.status, controls.captured)
        if current == self._last:
            return
        self._last = current
        print(f"Status: {controls.status} | Captured: {controls.captured}", file=self._console)
        self._console.flush()


HELP_TEXT = (
    "Commands:\n"
    "  r        : start recording\n"
    "  s        : stop recording and download the ZIP\n"
    "  i <ms>   : set the capture interval (applied on next start)\n"
    "  p        : print status\n"
    "  q        : quit"
)


async def handle_command(controller: CaptureController, line: str, console: TextIO) -> bool:
    """Apply one interactive command. Returns False when the user quits."""
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return True
    cmd = parts[0].lower()

    if cmd == "q":
        logger.info("Quit command received")
        return False
    if cmd == "r":
        if controller.start() is None:
            print("Already recording", file=console)
    elif cmd == "s":
        result = await controller.stop()
        if result is not None:
            print(f"Saved {result.path} ({len(result.entries)} frames)", file=console)
    elif cmd == "i":
        if len(parts) < 2:
            print(f"Interval: {controller.controls.interval_value} ms", file=console)
        else:
            controller.set_interval(parts[1])
            print(f"Interval set to {parts[1]} (applied on next start)", file=console)
    elif cmd == "p":
        controls = controller.controls
        print(
            f"Status: {controls.status} | Captured: {controls.captured} | "
            f"Preview: {controls.preview_path or '-'}",
            file=console,
        )
    else:
        logger.warning("Unknown command: %s", cmd)
        print(f"Unknown command '{cmd}'\n{HELP_TEXT}", file=console)
    console.flush()
    return True


async def run_interactive(
    controller: CaptureController,
    shutdown_event: asyncio.Event,
    console: TextIO,
) -> None:
    print(HELP_TEXT, file=console)
    console.flush()

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    while not shutdown_event.is_set():
        try:
            line = await asyncio.wait_for(reader.readline(), timeout=0.2)
        except asyncio.TimeoutError:
            continue
        if not line:
            logger.info("stdin closed")
            break
        if not await handle_command(controller, line.decode(errors="replace"), console):
            break

    if controller.session.recording:
        await controller.stop()


async def run_headless(
    controller: CaptureController,
    shutdown_event: asyncio.Event,
    duration_s: float,
) -> Optional[Any]:
    controller.start()
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=duration_s)
    except asyncio.TimeoutError:
        pass
    return await controller.stop()


async def main_async(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config or DEFAULT_CONFIG_PATH, config_overrides(args))

    configure_logging(
        config.logging.level,
        force=True,
        console=args.console_output,
        log_file=config.logging.file,
        component_levels=config.logging.component_levels,
    )
    logger.info(
        "%s starting (source=%s, output=%s)",
        DISPLAY_NAME,
        config.source.capture_url,
        config.export.output_dir,
    )

    controller = build_controller(config)
    if args.interval is not None:
        controller.set_interval(args.interval)
    controller.subscribe(StatusPrinter(sys.stdout))

    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event.set)
    install_exception_handler(logger.logger)

    controller.start_preview()
    exit_code = 0
    try:
        if args.mode == MODE_HEADLESS:
            result = await run_headless(controller, shutdown_event, args.duration)
            if result is None:
                logger.warning("Nothing was exported")
                exit_code = 1
        else:
            await run_interactive(controller, shutdown_event, sys.stdout)
    finally:
        await controller.shutdown()
        logger.info("%s stopped", DISPLAY_NAME)
    return exit_code


def main(argv: Optional[list[str]] = None) -> None:
    sys.exit(asyncio.run(main_async(argv)))


if __name__ == "__main__":
    main()
