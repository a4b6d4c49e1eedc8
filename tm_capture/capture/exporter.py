"""Archive export: package captured frames into one ZIP and hand it off."""

from __future__ import annotations

import asyncio
import io
import os
import shutil
import tempfile
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

import aiofiles

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.core.task_manager import AsyncTaskManager
from tm_capture.capture.defaults import ARCHIVE_NAME_TEMPLATE, ENTRY_NAME_TEMPLATE
from tm_capture.capture.errors import ExportError
from tm_capture.capture.frame import CapturedFrame
from tm_capture.capture.handles import DOWNLOAD, HandleRegistry, ResourceHandle

logger = get_module_logger(__name__)


def entry_name(index: int) -> str:
    """Archive entry name for the 1-based ``index``."""
    return ENTRY_NAME_TEMPLATE.format(index=index)


def archive_name(epoch_ms: int) -> str:
    return ARCHIVE_NAME_TEMPLATE.format(epoch_ms=epoch_ms)


def epoch_millis() -> int:
    return int(time.time() * 1000)


class ArchiveBuilder(Protocol):
    def build(self, entries: Sequence[tuple[str, bytes]]) -> bytes:
        """Serialize named entries into a single archive blob."""


class ZipArchiveBuilder:
    """Builds an in-memory ZIP archive."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self.compression = compression

    def build(self, entries: Sequence[tuple[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", self.compression) as zipf:
            for name, data in entries:
                zipf.writestr(name, data)
        return buffer.getvalue()


_DEFAULT_BUILDER = ZipArchiveBuilder()


class DownloadSurface(Protocol):
    async def save(self, staged: Path, filename: str) -> Path:
        """Persist the staged blob under ``filename``; return where it went."""


class DirectoryDownloadSurface:
    """Saves downloads into a local directory."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    async def save(self, staged: Path, filename: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / filename
        await asyncio.to_thread(shutil.copyfile, staged, target)
        logger.info("Saved %s", target)
        return target


@dataclass(frozen=True, slots=True)
class ExportResult:
    filename: str
    path: Path
    entries: tuple[str, ...]
    size: int


class ArchiveExporter:
    """Turns a frame sequence into ``tm_captures_<ms>.zip`` on the download surface.

    The archive is staged in a temporary file tracked as a ``download`` handle;
    the handle is released ``release_delay_s`` after the surface has been told
    to save it.
    """

    def __init__(
        self,
        surface: DownloadSurface,
        *,
        builder: Optional[ArchiveBuilder] = _DEFAULT_BUILDER,
        registry: Optional[HandleRegistry] = None,
        tasks: Optional[AsyncTaskManager] = None,
        release_delay_s: float = 1.0,
        clock: Callable[[], int] = epoch_millis,
        staging_dir: Optional[Path] = None,
    ) -> None:
        self._surface = surface
        self._builder = builder
        self._registry = registry or HandleRegistry()
        self._tasks = tasks or AsyncTaskManager("ArchiveExporter")
        self._release_delay_s = release_delay_s
        self._clock = clock
        self._staging_dir = staging_dir
        self._pending: set[ResourceHandle] = set()

    @property
    def registry(self) -> HandleRegistry:
        return self._registry

    async def export(self, frames: Sequence[CapturedFrame]) -> ExportResult:
        if self._builder is None:
            raise ExportError("Archive builder not available")
        if not frames:
            raise ExportError("Nothing to download")

        entries = [(entry_name(i), frame.data) for i, frame in enumerate(frames, start=1)]
        try:
            blob = await asyncio.to_thread(self._builder.build, entries)
        except Exception as exc:
            raise ExportError(f"Failed to build archive: {exc}") from exc

        filename = archive_name(self._clock())
        handle = await self._stage(blob)
        try:
            path = await self._surface.save(handle.resource, filename)
        except Exception as exc:
            handle.release()
            raise ExportError(f"Failed to save {filename}: {exc}") from exc

        self._schedule_release(handle)
        logger.info("Exported %d frames to %s (%d bytes)", len(entries), filename, len(blob))
        return ExportResult(
            filename=filename,
            path=path,
            entries=tuple(name for name, _ in entries),
            size=len(blob),
        )

    async def _stage(self, blob: bytes) -> ResourceHandle:
        try:
            fd, name = tempfile.mkstemp(prefix="tm_export_", suffix=".zip", dir=self._staging_dir)
        except OSError as exc:
            raise ExportError(f"Failed to stage archive: {exc}") from exc
        os.close(fd)
        handle = self._registry.open(DOWNLOAD, Path(name))
        try:
            async with aiofiles.open(handle.resource, "wb") as f:
                await f.write(blob)
        except Exception as exc:
            handle.release()
            raise ExportError(f"Failed to stage archive: {exc}") from exc
        return handle

    def _schedule_release(self, handle: ResourceHandle) -> None:
        self._pending.add(handle)

        async def _release_later() -> None:
            try:
                await asyncio.sleep(self._release_delay_s)
            finally:
                handle.release()
                self._pending.discard(handle)

        self._tasks.create(_release_later(), name="release:download")

    async def shutdown(self) -> None:
        await self._tasks.cancel("release:download")
        for handle in list(self._pending):
            handle.release()
        self._pending.clear()


__all__ = [
    "ArchiveBuilder",
    "ArchiveExporter",
    "DirectoryDownloadSurface",
    "DownloadSurface",
    "ExportResult",
    "ZipArchiveBuilder",
    "archive_name",
    "entry_name",
    "epoch_millis",
]
