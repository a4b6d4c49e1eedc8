"""Session state definitions and pure transitions."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any

from tm_capture.capture.defaults import (
    DEFAULT_INTERVAL_MS,
    MIN_INTERVAL_MS,
    STATUS_CAMERA_ERROR,
    STATUS_IDLE,
    STATUS_PREPARING,
    STATUS_RECORDING,
)


class SessionPhase(Enum):
    """Recording session lifecycle."""

    IDLE = auto()
    RECORDING = auto()
    EXPORTING = auto()


class FetchPhase(Enum):
    """Whether a frame request is currently outstanding."""

    IDLE = auto()
    FETCH_IN_FLIGHT = auto()


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of the recording session."""

    phase: SessionPhase = SessionPhase.IDLE
    interval_ms: int = DEFAULT_INTERVAL_MS
    generation: int = 0  # bumped on every start()
    status: str = STATUS_IDLE

    @property
    def recording(self) -> bool:
        return self.phase is SessionPhase.RECORDING

    def accepts(self, generation: int | None) -> bool:
        """True if a frame dispatched for ``generation`` may still be appended."""
        return self.recording and generation == self.generation


# ---------------------------------------------------------------------------
# Transitions


def resolve_interval(raw: Any, floor: int = MIN_INTERVAL_MS) -> int:
    """Return the effective recording interval in milliseconds.

    Non-numeric, non-finite and below-floor inputs all clamp to ``floor``.
    """
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return floor
    if not math.isfinite(value):
        return floor
    return max(floor, int(value))


def begin_recording(session: Session, interval_ms: int) -> Session:
    if session.phase is not SessionPhase.IDLE:
        return session
    return replace(
        session,
        phase=SessionPhase.RECORDING,
        interval_ms=interval_ms,
        generation=session.generation + 1,
        status=STATUS_RECORDING,
    )


def end_recording(session: Session, *, has_frames: bool) -> Session:
    if session.phase is not SessionPhase.RECORDING:
        return session
    if not has_frames:
        return replace(session, phase=SessionPhase.IDLE, status=STATUS_IDLE)
    return replace(session, phase=SessionPhase.EXPORTING, status=STATUS_PREPARING)


def finish_export(session: Session, status: str) -> Session:
    if session.phase is not SessionPhase.EXPORTING:
        return session
    return replace(session, phase=SessionPhase.IDLE, status=status)


def with_status(session: Session, status: str) -> Session:
    if status == session.status:
        return session
    return replace(session, status=status)


def mark_camera_error(session: Session) -> Session:
    # Failures never change the phase; the loop retries on the next tick.
    return with_status(session, STATUS_CAMERA_ERROR)


__all__ = [
    "FetchPhase",
    "Session",
    "SessionPhase",
    "begin_recording",
    "end_recording",
    "finish_export",
    "mark_camera_error",
    "resolve_interval",
    "with_status",
]
