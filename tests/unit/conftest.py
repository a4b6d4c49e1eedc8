"""Unit test fixtures for isolated, fast test execution.

This file provides:
- Sample image payloads encoded in memory (JPEG and PNG)
- Scripted frame sources that stand in for the camera device
- Config and controller factories wired to temporary directories
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import cv2
import numpy as np
import pytest


# =============================================================================
# Sample Images
# =============================================================================

def make_color_image(width: int = 64, height: int = 48) -> np.ndarray:
    """BGR gradient so every channel carries different values."""
    x = np.linspace(0, 255, width, dtype=np.uint8)
    y = np.linspace(0, 255, height, dtype=np.uint8)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = x[np.newaxis, :]
    image[:, :, 1] = y[:, np.newaxis]
    image[:, :, 2] = 128
    return image


def encode_image(image: np.ndarray, ext: str = ".jpg") -> bytes:
    success, encoded = cv2.imencode(ext, image)
    assert success
    return encoded.tobytes()


@pytest.fixture
def color_image() -> np.ndarray:
    return make_color_image()


@pytest.fixture
def jpeg_bytes(color_image: np.ndarray) -> bytes:
    """A 64x48 colour JPEG as the device would serve it."""
    return encode_image(color_image, ".jpg")


@pytest.fixture
def png_bytes(color_image: np.ndarray) -> bytes:
    return encode_image(color_image, ".png")


# =============================================================================
# Frame Sources
# =============================================================================

ScriptItem = Union[bytes, BaseException]


class FakeFrameSource:
    """Replays a script of payloads or exceptions, then repeats ``default``."""

    def __init__(self, script: Iterable[ScriptItem] = (), default: Optional[ScriptItem] = None) -> None:
        self._script = list(script)
        self._default = default
        self.calls = 0
        self.closed = False

    async def fetch(self) -> bytes:
        self.calls += 1
        item = self._script.pop(0) if self._script else self._default
        if item is None:
            raise AssertionError("FakeFrameSource script exhausted")
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class GatedFrameSource:
    """Blocks every fetch until ``open()`` is called; tracks concurrency."""

    def __init__(self, payload: bytes) -> None:
        self._payload = payload
        self._gate = asyncio.Event()
        self.calls = 0
        self.active = 0
        self.max_active = 0

    def open(self) -> None:
        self._gate.set()

    async def fetch(self) -> bytes:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self._gate.wait()
            return self._payload
        finally:
            self.active -= 1


@pytest.fixture
def fake_source_factory() -> Callable[..., FakeFrameSource]:
    return FakeFrameSource


@pytest.fixture
def gated_source_factory() -> Callable[[bytes], GatedFrameSource]:
    return GatedFrameSource


# =============================================================================
# Async Helpers
# =============================================================================

async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate on the running loop until it holds or times out."""
    return _wait_until


# =============================================================================
# Config & Controller Factories
# =============================================================================

@pytest.fixture
def make_config(tmp_path: Path):
    """Build a CaptureConfig pointed at tmp_path with fast timings.

    Timer periods default to a minute so tests drive captures explicitly.
    """
    from tm_capture.capture.config import CONFIG_DEFAULTS, build_config

    def _make(**overrides: Any):
        values = dict(CONFIG_DEFAULTS)
        values.update(
            {
                "output_dir": str(tmp_path / "out"),
                "log_file": str(tmp_path / "logs" / "test.log"),
                "preview_period_ms": 60_000,
                "default_interval_ms": 60_000,
                "min_interval_ms": 200,
                "status_reset_delay_ms": 20,
                "download_release_delay_ms": 20,
            }
        )
        values.update(overrides)
        return build_config(values)

    return _make


@pytest.fixture
def make_controller(tmp_path: Path, make_config):
    """Create a CaptureController around a fake source; shut down via the returned object."""
    from tm_capture.capture.controller import CaptureController
    from tm_capture.capture.handles import HandleRegistry
    from tm_capture.capture.preview import PreviewSurface

    def _make(source, *, config=None, **kwargs):
        config = config or make_config()
        registry = kwargs.pop("registry", None) or HandleRegistry()
        preview = kwargs.pop("preview", None) or PreviewSurface(registry, tmp_path / "preview")
        return CaptureController(config, source, registry=registry, preview=preview, **kwargs)

    return _make


@pytest.fixture
def restore_logging():
    """Put root logging back the way pytest left it."""
    from tm_capture.core import logging_config

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    configured = logging_config._configured
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging_config._configured = configured
    logging_config.apply_component_levels({})
