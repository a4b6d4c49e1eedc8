"""Shared infrastructure: logging, config files and task tracking."""

from .config_loader import ConfigLoader
from .logging_config import configure_logging
from .logging_utils import StructuredLogger, ensure_structured_logger, get_module_logger
from .task_manager import AsyncTaskManager

__all__ = [
    "AsyncTaskManager",
    "ConfigLoader",
    "StructuredLogger",
    "configure_logging",
    "ensure_structured_logger",
    "get_module_logger",
]
