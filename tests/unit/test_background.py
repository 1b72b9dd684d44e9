"""
Unit Tests: BackgroundTasks

Run: pytest tests/unit/test_background.py -v
"""

import asyncio
import pytest

from src.conversation_store.errors import BackendTransientError
from src.conversation_store.services.background import BackgroundTasks


class TestBackgroundTasks:
    """Fire-and-forget scheduling with an error channel."""

    @pytest.mark.asyncio
    async def test_spawned_work_runs(self):
        tasks = BackgroundTasks()
        done = []

        async def work():
            await asyncio.sleep(0)
            done.append(True)

        tasks.spawn(work(), name="work")
        assert tasks.pending == 1

        await tasks.drain()
        assert done == [True]
        assert tasks.pending == 0
        assert tasks.failures == 0

    @pytest.mark.asyncio
    async def test_failure_counted_and_reported(self):
        errors = []
        tasks = BackgroundTasks(on_error=lambda name, error: errors.append((name, error)))

        async def boom():
            raise BackendTransientError("throttled", status_code=429)

        tasks.spawn(boom(), name="window_sync", conversation_id="c1")
        await tasks.drain()

        assert tasks.failures == 1
        assert errors[0][0] == "window_sync"
        assert isinstance(errors[0][1], BackendTransientError)

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_escape(self):
        def bad_callback(name, error):
            raise RuntimeError("callback broke")

        tasks = BackgroundTasks(on_error=bad_callback)

        async def boom():
            raise ValueError("bad")

        tasks.spawn(boom(), name="boom")
        await tasks.drain()

        assert tasks.failures == 1

    @pytest.mark.asyncio
    async def test_drain_waits_for_nested_spawns(self):
        tasks = BackgroundTasks()
        done = []

        async def inner():
            done.append("inner")

        async def outer():
            tasks.spawn(inner(), name="inner")
            done.append("outer")

        tasks.spawn(outer(), name="outer")
        await tasks.drain()

        assert done == ["outer", "inner"]
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await BackgroundTasks().drain()

    @pytest.mark.asyncio
    async def test_drain_by_key_waits_only_for_that_key(self):
        tasks = BackgroundTasks()
        release = asyncio.Event()
        done = []

        async def mine():
            await asyncio.sleep(0)
            done.append("c1")

        async def theirs():
            await release.wait()
            done.append("c2")

        tasks.spawn(mine(), name="window_sync", key="c1")
        other = tasks.spawn(theirs(), name="window_sync", key="c2")

        await tasks.drain("c1")
        assert done == ["c1"]
        assert not other.done()

        release.set()
        await tasks.drain()
        assert done == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_drain_unknown_key_returns_immediately(self):
        tasks = BackgroundTasks()
        release = asyncio.Event()
        pending = tasks.spawn(release.wait(), name="blocked", key="c1")

        await tasks.drain("c9")
        assert not pending.done()

        release.set()
        await tasks.drain()
