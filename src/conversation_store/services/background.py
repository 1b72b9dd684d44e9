"""
Fire-and-forget side effects (window sync, directory touch).

Each coroutine runs in its own task so the caller's response path never waits
on it. Failures are logged and counted, and optionally forwarded to an error
callback; they never reach the caller that spawned the work.
"""

import asyncio
from typing import Any, Callable, Coroutine, Dict, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

ErrorCallback = Callable[[str, BaseException], None]


class BackgroundTasks:
    """Tracks spawned tasks until they finish."""

    def __init__(self, on_error: Optional[ErrorCallback] = None):
        self._tasks: Set[asyncio.Task] = set()
        self._keys: Dict[asyncio.Task, str] = {}
        self._on_error = on_error
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str,
        key: Optional[str] = None,
        **context,
    ) -> asyncio.Task:
        """Run ``coro`` in its own task. ``key`` groups tasks for ``drain(key)``."""
        task = asyncio.create_task(coro, name=name)
        # Event loop holds only weak references to tasks
        self._tasks.add(task)
        if key is not None:
            self._keys[task] = key
        task.add_done_callback(lambda t: self._finished(t, name, context))
        return task

    def _finished(self, task: asyncio.Task, name: str, context: dict) -> None:
        self._tasks.discard(task)
        self._keys.pop(task, None)
        if task.cancelled():
            logger.debug("background_task_cancelled", task=name, **context)
            return
        error = task.exception()
        if error is None:
            return

        self.failures += 1
        logger.warning("background_task_failed",
                       task=name,
                       error=str(error),
                       error_type=type(error).__name__,
                       **context)
        if self._on_error is not None:
            try:
                self._on_error(name, error)
            except Exception as callback_error:
                logger.warning("background_error_callback_failed", task=name, error=str(callback_error))

    def _outstanding(self, key: Optional[str]) -> list:
        if key is None:
            return list(self._tasks)
        return [task for task, task_key in self._keys.items() if task_key == key]

    async def drain(self, key: Optional[str] = None) -> None:
        """Wait for outstanding tasks, including ones spawned while waiting.

        With ``key`` only the tasks spawned under that key are awaited.
        """
        outstanding = self._outstanding(key)
        while outstanding:
            await asyncio.gather(*outstanding, return_exceptions=True)
            outstanding = self._outstanding(key)
