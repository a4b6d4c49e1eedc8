"""Unit tests for CaptureBuffer."""

from tm_capture.capture.buffer import CaptureBuffer
from tm_capture.capture.frame import CapturedFrame


def _frame(data: bytes) -> CapturedFrame:
    return CapturedFrame(data=data, size=(96, 96), monotonic_time=0.0, wall_time=0.0)


class TestCaptureBuffer:

    def test_append_returns_position(self):
        buffer = CaptureBuffer()

        assert buffer.append(_frame(b"a")) == 1
        assert buffer.append(_frame(b"bb")) == 2
        assert len(buffer) == 2
        assert buffer.total_bytes == 3

    def test_order_is_preserved(self):
        buffer = CaptureBuffer()
        for payload in (b"1", b"2", b"3"):
            buffer.append(_frame(payload))

        assert [f.data for f in buffer.snapshot()] == [b"1", b"2", b"3"]
        assert [f.data for f in buffer] == [b"1", b"2", b"3"]

    def test_clear_reports_dropped(self):
        buffer = CaptureBuffer()
        buffer.append(_frame(b"x"))

        assert buffer.clear() == 1
        assert not buffer
        assert buffer.clear() == 0

    def test_snapshot_is_detached(self):
        buffer = CaptureBuffer()
        buffer.append(_frame(b"x"))
        snapshot = buffer.snapshot()
        buffer.clear()

        assert len(snapshot) == 1
