"""In-memory capture buffer for one recording session."""

from __future__ import annotations

from typing import Iterator

from tm_capture.capture.frame import CapturedFrame


class CaptureBuffer:
    """Ordered, append-only list of frames; only ever cleared in full."""

    def __init__(self) -> None:
        self._frames: list[CapturedFrame] = []

    def append(self, frame: CapturedFrame) -> int:
        """Append ``frame`` and return its 1-based position."""
        self._frames.append(frame)
        return len(self._frames)

    def clear(self) -> int:
        """Drop every frame. Returns how many were dropped."""
        dropped = len(self._frames)
        self._frames = []
        return dropped

    def snapshot(self) -> tuple[CapturedFrame, ...]:
        return tuple(self._frames)

    @property
    def total_bytes(self) -> int:
        return sum(frame.nbytes for frame in self._frames)

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    def __iter__(self) -> Iterator[CapturedFrame]:
        return iter(tuple(self._frames))


__all__ = ["CaptureBuffer"]
