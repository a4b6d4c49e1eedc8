"""Unit tests for AsyncTaskManager."""

import asyncio
import logging

import pytest


class TestTaskTracking:
    """Test task registration and bookkeeping."""

    @pytest.mark.asyncio
    async def test_create_tracks_until_done(self):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")
        gate = asyncio.Event()

        async def worker():
            await gate.wait()
            return "done"

        task = manager.create(worker(), name="worker")
        await asyncio.sleep(0)
        assert manager.active_count() == 1
        assert manager.active_names() == ["worker"]

        gate.set()
        assert await task == "done"
        await asyncio.sleep(0)
        assert manager.active_count() == 0

    @pytest.mark.asyncio
    async def test_failed_task_is_logged(self, caplog):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")

        async def broken():
            raise RuntimeError("kaput")

        with caplog.at_level(logging.ERROR, logger="tm_capture"):
            task = manager.create(broken(), name="broken")
            await asyncio.gather(task, return_exceptions=True)
            await asyncio.sleep(0)

        assert any("broken failed: kaput" in r.getMessage() for r in caplog.records)


class TestCancellation:
    """Test cancel-by-name and shutdown."""

    @pytest.mark.asyncio
    async def test_cancel_by_name_leaves_others(self):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")
        keep = manager.create(asyncio.sleep(10), name="keep")
        drop = manager.create(asyncio.sleep(10), name="drop")

        assert await manager.cancel("drop") is True
        assert drop.cancelled()
        assert not keep.done()

        await manager.shutdown()
        assert keep.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_unknown_name_is_noop(self):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")
        assert await manager.cancel("nothing") is True

    @pytest.mark.asyncio
    async def test_shutdown_refuses_new_tasks(self):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")
        await manager.shutdown()
        assert manager.closed

        coro = asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            manager.create(coro, name="late")
        # The refused coroutine was closed, so it never warns as un-awaited.
        assert coro.cr_frame is None

    @pytest.mark.asyncio
    async def test_shutdown_times_out_on_stubborn_task(self, caplog):
        from tm_capture.core.task_manager import AsyncTaskManager

        manager = AsyncTaskManager("test")

        async def stubborn():
            # Swallows the first cancel only.
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(10)

        task = manager.create(stubborn(), name="stubborn")
        await asyncio.sleep(0)

        with caplog.at_level(logging.WARNING, logger="tm_capture"):
            assert await manager.shutdown(timeout=0.05) is False

        assert any("shutdown timed out" in r.getMessage() for r in caplog.records)
        assert task.done()
