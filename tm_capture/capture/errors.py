"""Exception types raised by the capture pipeline."""


class CaptureError(Exception):
    """Base class for recoverable capture pipeline failures."""


class AcquisitionError(CaptureError):
    """The remote frame source failed or answered with a non-success status."""


class TransformError(CaptureError):
    """A raw frame could not be decoded, resampled or re-encoded."""


class ExportError(CaptureError):
    """The capture buffer could not be packaged or delivered."""


__all__ = ["CaptureError", "AcquisitionError", "TransformError", "ExportError"]
