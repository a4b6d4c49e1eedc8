"""
Shared default values for the capture pipeline.

Keep this module lightweight - it is imported by config, state and the CLI.
"""

from pathlib import Path

DEFAULT_BASE_URL = "http://192.168.4.1"
DEFAULT_CAPTURE_PATH = "/capture"
DEFAULT_REQUEST_TIMEOUT_S = 5.0

DEFAULT_PREVIEW_PERIOD_MS = 1300
DEFAULT_INTERVAL_MS = 1000
MIN_INTERVAL_MS = 200

FRAME_SIZE = 96
JPEG_QUALITY = 0.92

DEFAULT_OUTPUT_DIR = Path("captures")
STATUS_RESET_DELAY_MS = 1200
DOWNLOAD_RELEASE_DELAY_MS = 1000

DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_FILE = Path("logs/tm_capture.log")

ENTRY_NAME_TEMPLATE = "capture_{index:04d}.jpg"
ARCHIVE_NAME_TEMPLATE = "tm_captures_{epoch_ms}.zip"

# Status texts shown by the presentation shell.
STATUS_IDLE = "Idle"
STATUS_RECORDING = "Recording..."
STATUS_PREPARING = "Preparing ZIP..."
STATUS_DOWNLOAD_READY = "Download ready"
STATUS_CAMERA_ERROR = "Camera error"
STATUS_EXPORT_FAILED = "ZIP failed"
