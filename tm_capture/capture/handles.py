"""Scoped resource handles with guaranteed release.

Preview frames and staged archives are backed by temporary files. Each one is
wrapped in a :class:`ResourceHandle` created through a :class:`HandleRegistry`,
which counts outstanding handles per kind so leaks show up in tests and logs.
"""

from __future__ import annotations

import contextlib
import os
from collections import Counter
from pathlib import Path
from typing import Callable, Optional

from tm_capture.core.logging_utils import get_module_logger

logger = get_module_logger(__name__)

PREVIEW = "preview"
DOWNLOAD = "download"


class ResourceHandle:
    """A resource plus the callable that frees it. ``release()`` is idempotent."""

    __slots__ = ("kind", "resource", "_releaser", "_released", "_registry")

    def __init__(
        self,
        kind: str,
        resource: Path,
        releaser: Callable[[Path], None],
        registry: "HandleRegistry",
    ) -> None:
        self.kind = kind
        self.resource = resource
        self._releaser = releaser
        self._released = False
        self._registry = registry

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._releaser(self.resource)
        except OSError as exc:
            logger.warning("Releasing %s handle %s failed: %s", self.kind, self.resource, exc)
        finally:
            self._registry._on_release(self)

    def __enter__(self) -> "ResourceHandle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        state = "released" if self._released else "live"
        return f"ResourceHandle({self.kind!r}, {self.resource!s}, {state})"


def unlink_file(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        os.unlink(path)


class HandleRegistry:
    """Hands out handles and tracks how many of each kind are still live."""

    def __init__(self) -> None:
        self._outstanding: Counter[str] = Counter()
        self._peak: Counter[str] = Counter()

    def open(
        self,
        kind: str,
        resource: Path,
        releaser: Callable[[Path], None] = unlink_file,
    ) -> ResourceHandle:
        handle = ResourceHandle(kind, resource, releaser, self)
        self._outstanding[kind] += 1
        self._peak[kind] = max(self._peak[kind], self._outstanding[kind])
        return handle

    def outstanding(self, kind: str) -> int:
        return self._outstanding[kind]

    def peak(self, kind: str) -> int:
        """Highest number of simultaneously live handles of ``kind`` so far."""
        return self._peak[kind]

    def _on_release(self, handle: ResourceHandle) -> None:
        self._outstanding[handle.kind] -= 1


class HandleSlot:
    """Holds at most one live handle; storing a new one releases the old."""

    def __init__(self) -> None:
        self._current: Optional[ResourceHandle] = None

    @property
    def current(self) -> Optional[ResourceHandle]:
        return self._current

    def replace(self, handle: ResourceHandle) -> None:
        previous, self._current = self._current, handle
        if previous is not None and previous is not handle:
            previous.release()

    def clear(self) -> None:
        previous, self._current = self._current, None
        if previous is not None:
            previous.release()


__all__ = [
    "DOWNLOAD",
    "PREVIEW",
    "HandleRegistry",
    "HandleSlot",
    "ResourceHandle",
    "unlink_file",
]
