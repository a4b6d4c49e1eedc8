"""Frame acquisition: fetch guard, request routing and periodic timers."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.core.task_manager import AsyncTaskManager
from tm_capture.capture.errors import CaptureError
from tm_capture.capture.frame import CapturedFrame
from tm_capture.capture.preview import PreviewSurface
from tm_capture.capture.source import FrameSource
from tm_capture.capture.state import FetchPhase

logger = get_module_logger(__name__)

FrameSink = Callable[[CapturedFrame, Optional[int]], bool]
FailureSink = Callable[[Exception], None]
PreviewSink = Callable[[Path], None]
Transform = Callable[[bytes], Awaitable[CapturedFrame]]


class FetchGuard:
    """Allows at most one frame request in flight."""

    def __init__(self) -> None:
        self._phase = FetchPhase.IDLE
        self.rejected = 0

    @property
    def phase(self) -> FetchPhase:
        return self._phase

    def try_acquire(self) -> bool:
        # Check-and-set with no await in between.
        if self._phase is FetchPhase.FETCH_IN_FLIGHT:
            self.rejected += 1
            return False
        self._phase = FetchPhase.FETCH_IN_FLIGHT
        return True

    def release(self) -> None:
        self._phase = FetchPhase.IDLE


class AcquisitionLoop:
    """Pulls one frame per call and routes it to preview and recording.

    Failures are reported through ``on_failure`` and never propagate: a timer
    tick that fails is simply retried on the next tick.
    """

    def __init__(
        self,
        source: FrameSource,
        transform: Transform,
        preview: PreviewSurface,
        *,
        on_frame: FrameSink,
        on_failure: FailureSink,
        on_preview: Optional[PreviewSink] = None,
    ) -> None:
        self._source = source
        self._transform = transform
        self._preview = preview
        self._on_frame = on_frame
        self._on_failure = on_failure
        self._on_preview = on_preview
        self.guard = FetchGuard()
        self.completed = 0
        self.failed = 0

    @property
    def transform(self) -> Transform:
        return self._transform

    @property
    def in_flight(self) -> bool:
        return self.guard.phase is FetchPhase.FETCH_IN_FLIGHT

    async def request_frame(self, for_recording: bool, generation: Optional[int] = None) -> bool:
        """Fetch one frame. Returns True if a frame was fetched and routed."""
        if not self.guard.try_acquire():
            logger.debug("Request skipped; fetch already in flight")
            return False

        started = time.perf_counter()
        try:
            payload = await self._source.fetch()
            preview_path = await self._preview.show(payload)
            if self._on_preview is not None:
                self._on_preview(preview_path)
            if for_recording:
                frame = await self._transform(payload)
                self._on_frame(frame, generation)
            self.completed += 1
            logger.debug(
                "Frame routed (recording=%s) in %.1fms",
                for_recording,
                (time.perf_counter() - started) * 1000,
            )
            return True
        except CaptureError as exc:
            self.failed += 1
            logger.warning("Capture failed: %s", exc)
            self._on_failure(exc)
            return False
        except Exception as exc:
            self.failed += 1
            logger.exception("Unexpected capture failure: %s", exc)
            self._on_failure(exc)
            return False
        finally:
            self.guard.release()


class PeriodicTimer:
    """Dispatches ``callback`` every ``period_s`` seconds until stopped.

    Each firing spawns the callback's coroutine as its own task, so the timer
    keeps its cadence even when a dispatched request is slow.
    """

    def __init__(
        self,
        name: str,
        period_s: float,
        callback: Callable[[], Optional[Awaitable]],
        tasks: AsyncTaskManager,
    ) -> None:
        self.name = name
        self.period_s = period_s
        self._callback = callback
        self._tasks = tasks
        self._task: Optional[asyncio.Task] = None
        self.fired = 0

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.armed:
            return
        self._task = self._tasks.create(self._run(), name=f"timer:{self.name}")
        logger.debug("Timer %s armed (%.0fms)", self.name, self.period_s * 1000)

    async def stop(self) -> None:
        # Detach before awaiting so a start() issued meanwhile arms a new task.
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug("Timer %s disarmed after %d firings", self.name, self.fired)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.period_s)
            self.fired += 1
            coro = self._callback()
            if coro is not None:
                self._tasks.create(coro, name=f"tick:{self.name}")


__all__ = ["AcquisitionLoop", "FetchGuard", "PeriodicTimer"]
