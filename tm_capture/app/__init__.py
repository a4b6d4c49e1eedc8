"""Command line front end for the capture pipeline."""

from .main import main, main_async, parse_args

__all__ = ["main", "main_async", "parse_args"]
