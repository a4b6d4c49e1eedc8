"""Typed configuration helpers for the capture pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from tm_capture.core.config_loader import ConfigLoader
from tm_capture.core.logging_config import parse_component_levels
from tm_capture.core.logging_utils import LoggerLike, StructuredLogger, ensure_structured_logger
from tm_capture.capture.defaults import (
    DEFAULT_BASE_URL,
    DEFAULT_CAPTURE_PATH,
    DEFAULT_INTERVAL_MS,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PREVIEW_PERIOD_MS,
    DEFAULT_REQUEST_TIMEOUT_S,
    DOWNLOAD_RELEASE_DELAY_MS,
    FRAME_SIZE,
    JPEG_QUALITY,
    MIN_INTERVAL_MS,
    STATUS_RESET_DELAY_MS,
)
from tm_capture.capture.transform import encoder_quality

# Flat defaults as they appear in config.txt.
CONFIG_DEFAULTS: Dict[str, Any] = {
    "base_url": DEFAULT_BASE_URL,
    "capture_path": DEFAULT_CAPTURE_PATH,
    "request_timeout_s": DEFAULT_REQUEST_TIMEOUT_S,
    "preview_period_ms": DEFAULT_PREVIEW_PERIOD_MS,
    "default_interval_ms": DEFAULT_INTERVAL_MS,
    "min_interval_ms": MIN_INTERVAL_MS,
    "frame_size": FRAME_SIZE,
    "jpeg_quality": JPEG_QUALITY,
    "output_dir": str(DEFAULT_OUTPUT_DIR),
    "status_reset_delay_ms": STATUS_RESET_DELAY_MS,
    "download_release_delay_ms": DOWNLOAD_RELEASE_DELAY_MS,
    "log_level": DEFAULT_LOG_LEVEL,
    "log_file": str(DEFAULT_LOG_FILE),
    "component_log_levels": "",
}


@dataclass(slots=True)
class SourceSettings:
    base_url: str
    capture_path: str
    request_timeout_s: float

    @property
    def capture_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.capture_path.lstrip('/')}"


@dataclass(slots=True)
class TimingSettings:
    preview_period_ms: int
    default_interval_ms: int
    min_interval_ms: int
    status_reset_delay_ms: int


@dataclass(slots=True)
class TransformSettings:
    frame_size: int
    jpeg_quality: float  # 0-1 scale

    @property
    def encoder_quality(self) -> int:
        return encoder_quality(self.jpeg_quality)


@dataclass(slots=True)
class ExportSettings:
    output_dir: Path
    release_delay_ms: int


@dataclass(slots=True)
class LoggingSettings:
    level: str
    file: Path
    # Component name relative to tm_capture -> numeric level.
    component_levels: Dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class CaptureConfig:
    source: SourceSettings
    timing: TimingSettings
    transform: TransformSettings
    export: ExportSettings
    logging: LoggingSettings


# ---------------------------------------------------------------------------
# Public API


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    logger: LoggerLike = None,
) -> CaptureConfig:
    """Build a typed config from an optional config.txt plus CLI overrides."""

    log = ensure_structured_logger(logger, fallback_name=__name__)
    if config_path is not None:
        merged = ConfigLoader.load(config_path, CONFIG_DEFAULTS, strict=True)
    else:
        merged = dict(CONFIG_DEFAULTS)
    if overrides:
        for key, value in overrides.items():
            if value is not None:
                merged[key] = value
    return build_config(merged, logger=log)


def build_config(values: Mapping[str, Any], *, logger: LoggerLike = None) -> CaptureConfig:
    log = ensure_structured_logger(logger, fallback_name=__name__)

    min_interval = _coerce_int(values, "min_interval_ms", MIN_INTERVAL_MS, minimum=1, logger=log)

    source = SourceSettings(
        base_url=_coerce_str(values, "base_url", DEFAULT_BASE_URL),
        capture_path=_coerce_str(values, "capture_path", DEFAULT_CAPTURE_PATH),
        request_timeout_s=_coerce_float(
            values, "request_timeout_s", DEFAULT_REQUEST_TIMEOUT_S, minimum=0.1, logger=log
        ),
    )

    timing = TimingSettings(
        preview_period_ms=_coerce_int(
            values, "preview_period_ms", DEFAULT_PREVIEW_PERIOD_MS, minimum=1, logger=log
        ),
        default_interval_ms=max(
            min_interval,
            _coerce_int(values, "default_interval_ms", DEFAULT_INTERVAL_MS, minimum=1, logger=log),
        ),
        min_interval_ms=min_interval,
        status_reset_delay_ms=_coerce_int(
            values, "status_reset_delay_ms", STATUS_RESET_DELAY_MS, minimum=0, logger=log
        ),
    )

    quality = _coerce_float(values, "jpeg_quality", JPEG_QUALITY, minimum=0.0, logger=log)
    if quality > 1.0:
        log.warning("jpeg_quality %.2f is above 1.0; using %.2f", quality, JPEG_QUALITY)
        quality = JPEG_QUALITY

    transform = TransformSettings(
        frame_size=_coerce_int(values, "frame_size", FRAME_SIZE, minimum=1, logger=log),
        jpeg_quality=quality,
    )

    export = ExportSettings(
        output_dir=_coerce_path(values, "output_dir", DEFAULT_OUTPUT_DIR),
        release_delay_ms=_coerce_int(
            values, "download_release_delay_ms", DOWNLOAD_RELEASE_DELAY_MS, minimum=0, logger=log
        ),
    )

    logging_settings = LoggingSettings(
        level=_coerce_str(values, "log_level", DEFAULT_LOG_LEVEL).lower(),
        file=_coerce_path(values, "log_file", DEFAULT_LOG_FILE),
        component_levels=parse_component_levels(
            _coerce_str(values, "component_log_levels", ""), logger=log
        ),
    )

    return CaptureConfig(
        source=source,
        timing=timing,
        transform=transform,
        export=export,
        logging=logging_settings,
    )


# ---------------------------------------------------------------------------
# Coercion helpers


def _coerce_str(values: Mapping[str, Any], key: str, default: str) -> str:
    value = values.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _coerce_path(values: Mapping[str, Any], key: str, default: Path) -> Path:
    value = values.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return Path(text).expanduser() if text else default


def _coerce_int(
    values: Mapping[str, Any],
    key: str,
    default: int,
    *,
    minimum: int,
    logger: StructuredLogger,
) -> int:
    value = values.get(key, default)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; using %d", key, value, default)
        return default
    if parsed < minimum:
        logger.warning("%s=%d is below %d; using %d", key, parsed, minimum, default)
        return default
    return parsed


def _coerce_float(
    values: Mapping[str, Any],
    key: str,
    default: float,
    *,
    minimum: float,
    logger: StructuredLogger,
) -> float:
    value = values.get(key, default)
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; using %s", key, value, default)
        return default
    if parsed != parsed or parsed < minimum:  # NaN or below range
        logger.warning("%s=%r is out of range; using %s", key, value, default)
        return default
    return parsed


__all__ = [
    "CONFIG_DEFAULTS",
    "CaptureConfig",
    "ExportSettings",
    "LoggingSettings",
    "SourceSettings",
    "TimingSettings",
    "TransformSettings",
    "build_config",
    "load_config",
]
