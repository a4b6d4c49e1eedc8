"""Live preview surface backed by a single temporary file."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.capture.handles import PREVIEW, HandleRegistry, HandleSlot, unlink_file

logger = get_module_logger(__name__)


class PreviewSurface:
    """Keeps the most recently fetched raw frame on disk for display.

    Every :meth:`show` writes a fresh file and swaps it into the slot, which
    releases the previous file, so at most one preview file exists at a time.
    """

    def __init__(self, registry: HandleRegistry, directory: Optional[Path] = None) -> None:
        self._registry = registry
        self._slot = HandleSlot()
        self._own_dir: Optional[tempfile.TemporaryDirectory] = None
        if directory is None:
            self._own_dir = tempfile.TemporaryDirectory(prefix="tm_preview_")
            directory = Path(self._own_dir.name)
        directory.mkdir(parents=True, exist_ok=True)
        self._directory = directory
        self._updates = 0

    @property
    def path(self) -> Optional[Path]:
        handle = self._slot.current
        return handle.resource if handle is not None else None

    @property
    def updates(self) -> int:
        return self._updates

    async def show(self, payload: bytes) -> Path:
        fd, name = tempfile.mkstemp(prefix="preview_", suffix=".jpg", dir=self._directory)
        os.close(fd)
        path = Path(name)
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(payload)
        except OSError:
            unlink_file(path)
            raise
        # Release the old handle before registering the new one.
        self._slot.clear()
        self._slot.replace(self._registry.open(PREVIEW, path))
        self._updates += 1
        return path

    def close(self) -> None:
        self._slot.clear()
        if self._own_dir is not None:
            self._own_dir.cleanup()
            self._own_dir = None
        logger.debug("Preview surface closed after %d updates", self._updates)


__all__ = ["PreviewSurface"]
