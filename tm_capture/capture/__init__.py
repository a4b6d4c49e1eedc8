"""Capture pipeline - acquisition, transform, buffering and archive export."""

from .config import CaptureConfig, build_config, load_config
from .controller import CaptureController, ControlSurface
from .errors import AcquisitionError, CaptureError, ExportError, TransformError
from .exporter import ArchiveExporter, DirectoryDownloadSurface, ExportResult, ZipArchiveBuilder
from .frame import CapturedFrame
from .source import HttpFrameSource
from .state import FetchPhase, Session, SessionPhase

__all__ = [
    "AcquisitionError",
    "ArchiveExporter",
    "CaptureConfig",
    "CaptureController",
    "CaptureError",
    "CapturedFrame",
    "ControlSurface",
    "DirectoryDownloadSurface",
    "ExportError",
    "ExportResult",
    "FetchPhase",
    "HttpFrameSource",
    "Session",
    "SessionPhase",
    "TransformError",
    "ZipArchiveBuilder",
    "build_config",
    "load_config",
]
