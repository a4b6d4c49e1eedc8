"""HTTP client for the remote device's single-frame endpoint."""

from __future__ import annotations

import asyncio
import time
from typing import Optional, Protocol

import aiohttp

from tm_capture.core.logging_utils import get_module_logger
from tm_capture.capture.errors import AcquisitionError

logger = get_module_logger(__name__)


class FrameSource(Protocol):
    async def fetch(self) -> bytes:
        """Return the raw image payload of the device's current frame."""


def cache_token() -> str:
    """Millisecond timestamp used only to defeat intermediate caches."""
    return str(int(time.time() * 1000))


class HttpFrameSource:
    """Fetch frames with ``GET <capture_url>?_ts=<ms>``.

    The aiohttp session is created lazily and reused across requests; call
    :meth:`close` (or use ``async with``) when done.
    """

    def __init__(
        self,
        capture_url: str,
        *,
        timeout_s: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = capture_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None
        self._requests = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def request_count(self) -> int:
        return self._requests

    async def __aenter__(self) -> "HttpFrameSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def fetch(self) -> bytes:
        session = self._ensure_session()
        self._requests += 1
        params = {"_ts": cache_token()}
        try:
            async with session.get(self._url, params=params, timeout=self._timeout) as response:
                if response.status < 200 or response.status >= 300:
                    raise AcquisitionError(
                        f"Failed to fetch frame: HTTP {response.status} from {self._url}"
                    )
                payload = await response.read()
        except aiohttp.ClientError as exc:
            raise AcquisitionError(f"Failed to fetch frame: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise AcquisitionError(
                f"Failed to fetch frame: timed out after {self._timeout.total}s"
            ) from exc

        logger.debug("Fetched %d bytes from %s", len(payload), self._url)
        return payload

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["FrameSource", "HttpFrameSource", "cache_token"]
