"""TM Capture: preview a remote camera, record downsized stills, export a ZIP."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

try:
    __version__ = metadata.version("tm-capture")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> None:
    """Convenience wrapper that runs the command line entry point."""
    from .app.main import main

    main(list(argv) if argv is not None else None)


__all__ = ["__version__", "run"]
