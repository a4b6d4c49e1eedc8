"""Unit tests for HttpFrameSource against a local aiohttp server."""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from tm_capture.capture.errors import AcquisitionError
from tm_capture.capture.source import HttpFrameSource, cache_token


def create_camera_app(
    payload: bytes, *, status: int = 200, delay: float = 0.0
) -> tuple[web.Application, list[dict[str, str]]]:
    """Minimal stand-in for the device's /capture endpoint."""
    seen: list[dict[str, str]] = []

    async def capture(request: web.Request) -> web.Response:
        seen.append(dict(request.query))
        if delay:
            await asyncio.sleep(delay)
        return web.Response(body=payload, status=status, content_type="image/jpeg")

    app = web.Application()
    app.router.add_get("/capture", capture)
    return app, seen


class TestCacheToken:

    def test_token_is_millisecond_timestamp(self):
        token = cache_token()

        assert token.isdigit()
        assert len(token) >= 13


class TestHttpFrameSource:
    """Test request shape and failure mapping."""

    @pytest.mark.asyncio
    async def test_fetch_returns_body_with_cache_token(self, jpeg_bytes):
        app, seen = create_camera_app(jpeg_bytes)
        async with TestServer(app) as server:
            async with HttpFrameSource(str(server.make_url("/capture"))) as source:
                first = await source.fetch()
                second = await source.fetch()

        assert first == jpeg_bytes
        assert second == jpeg_bytes
        assert source.request_count == 2
        assert all("_ts" in query and query["_ts"].isdigit() for query in seen)
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        app, _ = create_camera_app(b"oops", status=500)
        async with TestServer(app) as server:
            async with HttpFrameSource(str(server.make_url("/capture"))) as source:
                with pytest.raises(AcquisitionError, match="HTTP 500"):
                    await source.fetch()

    @pytest.mark.asyncio
    async def test_missing_route_raises(self):
        app, _ = create_camera_app(b"")
        async with TestServer(app) as server:
            async with HttpFrameSource(str(server.make_url("/nope"))) as source:
                with pytest.raises(AcquisitionError, match="HTTP 404"):
                    await source.fetch()

    @pytest.mark.asyncio
    async def test_timeout_raises(self, jpeg_bytes):
        app, _ = create_camera_app(jpeg_bytes, delay=0.5)
        async with TestServer(app) as server:
            source = HttpFrameSource(str(server.make_url("/capture")), timeout_s=0.1)
            try:
                with pytest.raises(AcquisitionError):
                    await source.fetch()
            finally:
                await source.close()

    @pytest.mark.asyncio
    async def test_connection_refused_raises(self):
        app, _ = create_camera_app(b"")
        server = TestServer(app)
        await server.start_server()
        url = str(server.make_url("/capture"))
        await server.close()

        async with HttpFrameSource(url, timeout_s=1.0) as source:
            with pytest.raises(AcquisitionError):
                await source.fetch()

    @pytest.mark.asyncio
    async def test_borrowed_session_is_not_closed(self, jpeg_bytes):
        import aiohttp

        app, _ = create_camera_app(jpeg_bytes)
        async with TestServer(app) as server:
            async with aiohttp.ClientSession() as session:
                source = HttpFrameSource(str(server.make_url("/capture")), session=session)
                assert await source.fetch() == jpeg_bytes
                await source.close()
                assert not session.closed
