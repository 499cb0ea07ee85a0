"""Unit tests for Dispatcher."""

import asyncio

import pytest

from qchat.core.dispatch import Dispatcher


@pytest.mark.asyncio
async def test_spawn_tracks_task_until_done():
    dispatcher = Dispatcher()
    ready = asyncio.Event()

    async def worker():
        await ready.wait()
        return "done"

    task = dispatcher.spawn(worker(), name="worker")
    assert dispatcher.pending() == 1

    ready.set()
    assert await task == "done"
    await asyncio.sleep(0)
    assert dispatcher.pending() == 0


@pytest.mark.asyncio
async def test_failed_task_is_logged_not_raised():
    dispatcher = Dispatcher()

    async def boom():
        raise RuntimeError("boom")

    dispatcher.spawn(boom(), name="boom")
    await dispatcher.drain()

    assert dispatcher.pending() == 0


@pytest.mark.asyncio
async def test_drain_waits_for_tasks_spawned_meanwhile():
    dispatcher = Dispatcher()
    order = []

    async def second():
        order.append("second")

    async def first():
        order.append("first")
        dispatcher.spawn(second(), name="second")

    dispatcher.spawn(first(), name="first")
    await dispatcher.drain()

    assert order == ["first", "second"]


@pytest.mark.asyncio
async def test_schedule_after_fires_callback():
    dispatcher = Dispatcher()
    fired = asyncio.Event()

    dispatcher.schedule_after(10, fired.set)
    assert dispatcher.pending() == 1

    await asyncio.wait_for(fired.wait(), timeout=0.5)
    assert dispatcher.pending() == 0


@pytest.mark.asyncio
async def test_shutdown_cancels_timers_and_tasks():
    dispatcher = Dispatcher()
    calls = []
    blocker = asyncio.Event()

    async def long_running():
        await blocker.wait()

    task = dispatcher.spawn(long_running(), name="long")
    dispatcher.schedule_after(20, lambda: calls.append("timer"))

    await dispatcher.shutdown(timeout=0.2)
    await asyncio.sleep(0.05)

    assert task.cancelled()
    assert calls == []
