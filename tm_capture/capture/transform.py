"""
Frame transform: raw device frame -> fixed-size grayscale JPEG still.

Decoding prefers OpenCV and falls back to Pillow; both paths hand back a BGR
uint8 array so the rest of the pipeline is identical. The grayscale step uses
the Rec. 601 luma weights rounded half up, written into all colour channels.
"""
from __future__ import annotations

import asyncio
import io
import time
from typing import Optional

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.capture.defaults import FRAME_SIZE, JPEG_QUALITY
from tm_capture.capture.errors import TransformError
from tm_capture.capture.frame import CapturedFrame

logger = get_module_logger(__name__)

LUMA_WEIGHTS_BGR = np.array([0.114, 0.587, 0.299], dtype=np.float64)


def encoder_quality(quality: float) -> int:
    """Map a 0-1 quality to the 0-100 scale OpenCV expects."""
    return int(round(quality * 100))


DEFAULT_ENCODER_QUALITY = encoder_quality(JPEG_QUALITY)


def _decode_opencv(payload: bytes) -> Optional[np.ndarray]:
    if not payload:
        return None
    arr = np.frombuffer(payload, dtype=np.uint8)
    try:
        return cv2.imdecode(arr, cv2.IMREAD_COLOR)
    except cv2.error as exc:
        logger.debug("OpenCV decode failed: %s", exc)
        return None


def _decode_pillow(payload: bytes) -> np.ndarray:
    try:
        with Image.open(io.BytesIO(payload)) as img:
            rgb = np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise TransformError(f"Failed to decode frame ({len(payload)} bytes): {exc}") from exc
    return np.ascontiguousarray(rgb[:, :, ::-1])


def decode_frame(payload: bytes) -> np.ndarray:
    """Decode a compressed image into a BGR uint8 array."""
    frame = _decode_opencv(payload)
    if frame is None:
        logger.debug("Falling back to Pillow decode")
        frame = _decode_pillow(payload)
    return frame


def resize_frame(frame: np.ndarray, size: int = FRAME_SIZE) -> np.ndarray:
    """Stretch ``frame`` to ``size`` x ``size``; aspect ratio is not kept."""
    h, w = frame.shape[:2]
    if h == size and w == size:
        return frame.copy()
    return cv2.resize(frame, (size, size), interpolation=cv2.INTER_AREA)


def apply_grayscale(frame: np.ndarray) -> np.ndarray:
    """Replace B, G and R with the rounded luma of each pixel, in place.

    A fourth (alpha) channel, if present, is left untouched.
    """
    if frame.ndim != 3 or frame.shape[2] < 3:
        raise TransformError(f"Expected a colour frame, got shape {frame.shape}")
    luma = frame[:, :, :3].astype(np.float64) @ LUMA_WEIGHTS_BGR
    gray = np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)
    frame[:, :, 0] = gray
    frame[:, :, 1] = gray
    frame[:, :, 2] = gray
    return frame


def encode_frame(frame: np.ndarray, quality: int) -> bytes:
    """JPEG-encode a grayscale frame.

    The colour channels are identical, so only the luminance plane is
    encoded; decoders then reproduce R = G = B exactly.
    """
    plane = np.ascontiguousarray(frame[:, :, 0]) if frame.ndim == 3 else frame
    try:
        success, encoded = cv2.imencode(".jpg", plane, [cv2.IMWRITE_JPEG_QUALITY, quality])
    except cv2.error as exc:
        raise TransformError(f"Failed to encode frame: {exc}") from exc
    if not success:
        raise TransformError("Failed to encode frame")
    return encoded.tobytes()


def transform_frame(
    payload: bytes,
    *,
    size: int = FRAME_SIZE,
    quality: int = DEFAULT_ENCODER_QUALITY,
) -> bytes:
    """Decode, resample, grayscale and re-encode one raw frame."""
    frame = decode_frame(payload)
    try:
        frame = resize_frame(frame, size)
    except cv2.error as exc:
        raise TransformError(f"Failed to resample frame {frame.shape}: {exc}") from exc
    apply_grayscale(frame)
    return encode_frame(frame, quality)


class FrameTransform:
    """Runs :func:`transform_frame` off the event loop."""

    def __init__(self, size: int = FRAME_SIZE, quality: int = DEFAULT_ENCODER_QUALITY) -> None:
        self.size = size
        self.quality = quality

    async def __call__(self, payload: bytes) -> CapturedFrame:
        started = time.perf_counter()
        data = await asyncio.to_thread(
            transform_frame, payload, size=self.size, quality=self.quality
        )
        logger.debug(
            "Transformed %d -> %d bytes in %.1fms",
            len(payload),
            len(data),
            (time.perf_counter() - started) * 1000,
        )
        return CapturedFrame(
            data=data,
            size=(self.size, self.size),
            monotonic_time=time.perf_counter(),
            wall_time=time.time(),
        )


__all__ = [
    "DEFAULT_ENCODER_QUALITY",
    "FrameTransform",
    "apply_grayscale",
    "decode_frame",
    "encode_frame",
    "encoder_quality",
    "resize_frame",
    "transform_frame",
]
