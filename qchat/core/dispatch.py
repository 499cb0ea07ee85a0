"""Dispatcher for the session's background work.

Everything the session does asynchronously (the auth probe, process spawns,
exit watchers, settle timers) goes through one Dispatcher so it runs on the
event loop thread and can be cancelled on shutdown.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Coroutine, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Dispatcher:
    """Tracks background asyncio tasks and loop timers.

    Also satisfies the Scheduler protocol via `schedule_after`.

    Example:
        dispatcher = Dispatcher()
        dispatcher.spawn(probe(), name="qchat-auth-probe")
        dispatcher.schedule_after(1000, reopen)
        await dispatcher.shutdown(timeout=5.0)
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[object]] = set()
        self._timers: set[asyncio.TimerHandle] = set()

    def _on_task_done(self, task: asyncio.Task[object]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    def spawn(self, coro: Coroutine[object, object, T], name: str | None = None) -> asyncio.Task[T]:
        """Run `coro` as a tracked task on the running loop."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)  # type: ignore[arg-type]
        task.add_done_callback(self._on_task_done)  # type: ignore[arg-type]
        logger.debug("Spawned task %s (total: %d)", name or f"<unnamed-{id(task)}>", len(self._tasks))
        return task

    def schedule_after(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        """Call `callback` on the loop after `delay_ms` milliseconds."""
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(handle)
            try:
                callback()
            except Exception as exc:  # pylint: disable=broad-exception-caught  # keep the loop alive
                logger.error("Scheduled callback %s failed: %s", callback, exc, exc_info=exc)

        handle = loop.call_later(max(delay_ms, 0) / 1000.0, _fire)
        self._timers.add(handle)
        return handle

    def pending(self) -> int:
        """Number of tracked tasks and timers not yet finished."""
        return len(self._tasks) + len(self._timers)

    async def drain(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))
            await asyncio.sleep(0)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel timers and tasks, waiting up to `timeout` seconds for tasks to finish."""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        if not self._tasks:
            return

        task_count = len(self._tasks)
        logger.info("Shutting down %d background tasks (timeout=%.1fs)", task_count, timeout)
        for task in self._tasks:
            if not task.done():
                task.cancel()

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("Shutdown timeout: %d/%d tasks still pending", len(pending), task_count)
