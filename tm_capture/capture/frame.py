"""Captured frame data structure."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CapturedFrame:
    """Immutable downsized grayscale still produced by one recording tick."""

    data: bytes  # JPEG payload
    size: tuple[int, int]  # (width, height)
    monotonic_time: float  # time.perf_counter() at fetch completion
    wall_time: float  # Wall clock time (time.time())

    @property
    def nbytes(self) -> int:
        return len(self.data)
