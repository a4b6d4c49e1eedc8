"""Root logging setup for TM Capture.

One formatter is shared by the stdout handler and the rotating log file.
Individual capture components (``capture.acquisition``, ``capture.exporter``
and so on) can be given their own level on top of the root level, which is
how a noisy fetch loop gets traced without drowning the rest of the session.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from tm_capture.core.logging_utils import LoggerLike, ensure_structured_logger, get_module_logger

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 500 * 1024
LOG_BACKUP_COUNT = 2

# aiohttp logs every request at INFO; one preview fetch runs every 1.3 s.
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "PIL")

_configured = False
_component_levels: Dict[str, int] = {}


def coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        numeric = logging.getLevelName(level.strip().upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level '{level}'")
        return numeric
    return int(level)


def parse_component_levels(text: str, *, logger: LoggerLike = None) -> Dict[str, int]:
    """Parse ``"capture.acquisition:debug, capture.exporter:warning"``.

    Entries without a ``:`` or with an unknown level are skipped with a warning.
    """
    log = ensure_structured_logger(logger, fallback_name=__name__)
    levels: Dict[str, int] = {}
    for entry in (text or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        component, sep, level = entry.partition(":")
        component = component.strip()
        if not sep or not component:
            log.warning("Ignoring component log level '%s' (expected name:level)", entry)
            continue
        try:
            levels[component] = coerce_level(level)
        except ValueError:
            log.warning("Ignoring component log level '%s' (unknown level)", entry)
    return levels


def apply_component_levels(levels: Mapping[str, Union[int, str]]) -> Dict[str, int]:
    """Set per-component levels; components set by a previous call are reset.

    Returns the applied levels keyed by full logger name.
    """
    for name in _component_levels:
        logging.getLogger(name).setLevel(logging.NOTSET)
    _component_levels.clear()

    for component, level in levels.items():
        target = get_module_logger(component).logger
        numeric = coerce_level(level)
        target.setLevel(numeric)
        _component_levels[target.name] = numeric
    return dict(_component_levels)


def _build_handlers(
    level: int,
    *,
    console: bool,
    log_file: Optional[Path],
) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        # Component overrides can be more verbose than the root level.
        handler.setLevel(min([level, *_component_levels.values()]))
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    component_levels: Optional[Mapping[str, Union[int, str]]] = None,
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Install the console and log-file handlers on the root logger.

    Args:
        level: Root level (int or name such as "info").
        force: Rebuild handlers even if logging was configured before.
        console: Emit to stdout as well as the log file.
        log_file: Path of the rotating log file, or None for no file.
        component_levels: Levels for capture components, keyed by name
            relative to the ``tm_capture`` namespace.
        quiet_loggers: Third-party loggers raised to ERROR.
    """
    global _configured
    numeric_level = coerce_level(level)
    root = logging.getLogger()

    if component_levels is not None:
        apply_component_levels(component_levels)

    if _configured and not force:
        root.setLevel(numeric_level)
    else:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            with contextlib.suppress(Exception):
                handler.close()

        path = Path(log_file) if log_file else None
        for handler in _build_handlers(numeric_level, console=console, log_file=path):
            root.addHandler(handler)
        if not root.handlers:
            logging.basicConfig(level=numeric_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        root.setLevel(numeric_level)
        _configured = True

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.ERROR)


__all__ = [
    "LOG_DATEFMT",
    "LOG_FORMAT",
    "apply_component_levels",
    "coerce_level",
    "configure_logging",
    "parse_component_levels",
]
