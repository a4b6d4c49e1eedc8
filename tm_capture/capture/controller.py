"""Capture controller - session state machine, timers and export routing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.core.task_manager import AsyncTaskManager
from tm_capture.capture.acquisition import AcquisitionLoop, PeriodicTimer
from tm_capture.capture.buffer import CaptureBuffer
from tm_capture.capture.config import CaptureConfig
from tm_capture.capture.defaults import (
    STATUS_DOWNLOAD_READY,
    STATUS_EXPORT_FAILED,
    STATUS_IDLE,
)
from tm_capture.capture.errors import ExportError
from tm_capture.capture.exporter import (
    ArchiveExporter,
    DirectoryDownloadSurface,
    ExportResult,
)
from tm_capture.capture.frame import CapturedFrame
from tm_capture.capture.handles import HandleRegistry
from tm_capture.capture.preview import PreviewSurface
from tm_capture.capture.source import FrameSource
from tm_capture.capture.state import (
    Session,
    SessionPhase,
    begin_recording,
    end_recording,
    finish_export,
    mark_camera_error,
    resolve_interval,
    with_status,
)
from tm_capture.capture.transform import FrameTransform

logger = get_module_logger(__name__)


@dataclass
class ControlSurface:
    """Values the presentation shell reads and writes."""

    interval_value: str
    status: str = STATUS_IDLE
    captured: int = 0
    preview_path: Optional[Path] = None


class CaptureController:
    """Owns the recording session and drives acquisition and export.

    The preview timer keeps the live view fresh while idle; the recording
    timer feeds the capture buffer at the interval resolved on ``start()``.
    Both dispatch into one :class:`AcquisitionLoop`, whose fetch guard keeps
    their requests from overlapping.
    """

    def __init__(
        self,
        config: CaptureConfig,
        source: FrameSource,
        *,
        exporter: Optional[ArchiveExporter] = None,
        transform: Optional[Callable] = None,
        registry: Optional[HandleRegistry] = None,
        preview: Optional[PreviewSurface] = None,
        tasks: Optional[AsyncTaskManager] = None,
    ) -> None:
        self._config = config
        self._source = source
        self._registry = registry or HandleRegistry()
        self._tasks = tasks or AsyncTaskManager("CaptureController", logger=logger)
        self._preview = preview or PreviewSurface(self._registry)
        self._exporter = exporter or ArchiveExporter(
            DirectoryDownloadSurface(config.export.output_dir),
            registry=self._registry,
            tasks=self._tasks,
            release_delay_s=config.export.release_delay_ms / 1000.0,
        )
        transform = transform or FrameTransform(
            size=config.transform.frame_size,
            quality=config.transform.encoder_quality,
        )

        self._session = Session(interval_ms=config.timing.default_interval_ms)
        self._buffer = CaptureBuffer()
        self._controls = ControlSurface(interval_value=str(config.timing.default_interval_ms))
        self._subscribers: list[Callable[[ControlSurface], None]] = []

        self._acquisition = AcquisitionLoop(
            source,
            transform,
            self._preview,
            on_frame=self._on_frame,
            on_failure=self._on_failure,
            on_preview=self._on_preview,
        )
        self._preview_timer = PeriodicTimer(
            "preview",
            config.timing.preview_period_ms / 1000.0,
            self._preview_tick,
            self._tasks,
        )
        self._recording_timer = PeriodicTimer(
            "recording",
            self._session.interval_ms / 1000.0,
            self._recording_tick,
            self._tasks,
        )

    # ------------------------------------------------------------------
    # Observers

    def subscribe(self, callback: Callable[[ControlSurface], None]) -> None:
        """Subscribe to control surface changes."""
        self._subscribers.append(callback)
        callback(self._controls)

    def unsubscribe(self, callback: Callable[[ControlSurface], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self) -> None:
        for sub in self._subscribers:
            try:
                sub(self._controls)
            except Exception as e:
                logger.error("Subscriber error: %s", e)

    # ------------------------------------------------------------------
    # Properties

    @property
    def session(self) -> Session:
        return self._session

    @property
    def controls(self) -> ControlSurface:
        return self._controls

    @property
    def buffer(self) -> CaptureBuffer:
        return self._buffer

    @property
    def acquisition(self) -> AcquisitionLoop:
        return self._acquisition

    @property
    def registry(self) -> HandleRegistry:
        return self._registry

    @property
    def recording_timer(self) -> PeriodicTimer:
        return self._recording_timer

    @property
    def preview_timer(self) -> PeriodicTimer:
        return self._preview_timer

    # ------------------------------------------------------------------
    # Controls

    def set_interval(self, value: object) -> None:
        """Write the interval control. Read back only on the next ``start()``."""
        self._controls.interval_value = str(value).strip()
        self._notify()

    def start_preview(self) -> asyncio.Task:
        """Arm the preview timer and fetch one preview frame right away."""
        self._preview_timer.start()
        return self._tasks.create(
            self._acquisition.request_frame(False), name="capture:preview"
        )

    def start(self) -> Optional[asyncio.Task]:
        """Begin a recording session.

        Returns the task for the immediate first capture, or None if the
        request was ignored.
        """
        if self._session.phase is SessionPhase.RECORDING:
            logger.debug("start() ignored; already recording")
            return None
        if self._session.phase is SessionPhase.EXPORTING:
            logger.warning("start() ignored; previous export still running")
            return None

        dropped = self._buffer.clear()
        if dropped:
            logger.debug("Dropped %d stale frames", dropped)
        interval_ms = resolve_interval(
            self._controls.interval_value, self._config.timing.min_interval_ms
        )
        self._controls.interval_value = str(interval_ms)
        self._controls.captured = 0
        self._set_session(begin_recording(self._session, interval_ms))
        logger.info(
            "Recording started (generation %d, interval %dms)",
            self._session.generation,
            interval_ms,
        )

        first = self._tasks.create(self.capture_now(), name="capture:recording")
        self._recording_timer.period_s = interval_ms / 1000.0
        self._recording_timer.start()
        return first

    async def capture_now(self) -> bool:
        """Attempt one recording-path capture for the current session."""
        return await self._acquisition.request_frame(True, self._session.generation)

    async def stop(self) -> Optional[ExportResult]:
        """End the recording session and export whatever was captured."""
        if self._session.phase is not SessionPhase.RECORDING:
            logger.debug("stop() ignored; not recording")
            return None

        # Leave RECORDING before the first await so late frames are rejected.
        self._set_session(end_recording(self._session, has_frames=bool(self._buffer)))
        await self._recording_timer.stop()

        if self._session.phase is SessionPhase.IDLE:
            logger.info("Recording stopped with no frames; nothing to export")
            return None

        frames = self._buffer.snapshot()
        logger.info("Recording stopped; exporting %d frames", len(frames))
        status = STATUS_EXPORT_FAILED
        result: Optional[ExportResult] = None
        try:
            result = await self._exporter.export(frames)
            status = STATUS_DOWNLOAD_READY
        except ExportError as exc:
            logger.error("Export failed: %s", exc)
            status = str(exc) or STATUS_EXPORT_FAILED
        except Exception as exc:
            # Export failures are never fatal to the session.
            logger.exception("Unexpected export failure: %s", exc)
            status = str(exc) or STATUS_EXPORT_FAILED
        finally:
            self._buffer.clear()
            self._controls.captured = 0
            self._set_session(finish_export(self._session, status))
            self._schedule_status_reset(status)
        return result

    async def shutdown(self) -> None:
        """Stop both timers and release every resource."""
        await self._preview_timer.stop()
        await self._recording_timer.stop()
        await self._exporter.shutdown()
        await self._tasks.shutdown()
        self._preview.close()
        self._controls.preview_path = None
        close = getattr(self._source, "close", None)
        if close is not None:
            await close()
        logger.info("Capture controller shut down")

    # ------------------------------------------------------------------
    # Timer callbacks

    def _preview_tick(self):
        if self._session.recording:
            return None
        return self._acquisition.request_frame(False)

    def _recording_tick(self):
        return self._acquisition.request_frame(True, self._session.generation)

    # ------------------------------------------------------------------
    # Acquisition callbacks

    def _on_frame(self, frame: CapturedFrame, generation: Optional[int]) -> bool:
        if not self._session.accepts(generation):
            logger.debug("Discarding frame for closed session (generation %s)", generation)
            return False
        count = self._buffer.append(frame)
        self._controls.captured = count
        logger.debug("Captured frame %d (%d bytes)", count, frame.nbytes)
        self._notify()
        return True

    def _on_failure(self, exc: Exception) -> None:
        self._set_session(mark_camera_error(self._session))

    def _on_preview(self, path: Path) -> None:
        self._controls.preview_path = path
        self._notify()

    # ------------------------------------------------------------------
    # Helpers

    def _set_session(self, session: Session) -> None:
        self._session = session
        self._controls.status = session.status
        self._notify()

    def _schedule_status_reset(self, shown: str) -> None:
        if self._tasks.closed:
            return

        async def _reset_later() -> None:
            await asyncio.sleep(self._config.timing.status_reset_delay_ms / 1000.0)
            if self._session.phase is SessionPhase.IDLE and self._session.status == shown:
                self._set_session(with_status(self._session, STATUS_IDLE))

        self._tasks.create(_reset_later(), name="status-reset")


__all__ = ["CaptureController", "ControlSurface"]
