"""
Background Worker Utility
=========================

This module provides a task tracker for background operations on the
client's event loop. Every coroutine the client starts without awaiting it
(server reconciliation, remote logout, debounced searches) goes through a
BackgroundWorker, so nothing is left running unobserved and everything can be
cancelled or drained at teardown.

Key Features:
-------------
- Fire-and-forget: `submit()` schedules a coroutine and logs its failure
  instead of letting it vanish.
- Replaceable delayed tasks: `submit_replacing()` schedules a coroutine after
  a delay; submitting again with the same task id cancels the pending one
  (debouncing).
- Cancellation Support: pending delayed tasks can be cancelled without
  affecting tasks that have already started.
- Graceful Shutdown: `shutdown()` cancels pending timers and waits for
  started tasks.

Usage:
------
    >>> worker = BackgroundWorker(name="SearchWorker")
    >>>
    >>> # Rapid typing - only the last submission runs, 0.3s after it
    >>> worker.submit_replacing("search", do_search, "n", delay=0.3)
    >>> worker.submit_replacing("search", do_search, "ne", delay=0.3)
    >>> worker.submit_replacing("search", do_search, "neb", delay=0.3)
    >>>
    >>> await worker.shutdown()

Author: Synthex Project
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple


class BackgroundWorker:
    """
    Tracks background coroutines on the running event loop.

    A replaceable task has two phases: waiting out its delay, then running.
    Only the waiting phase is cancellable by a replacement; once a task has
    started it runs to completion, and callers rely on generation tokens to
    discard its result if it is no longer wanted.

    Attributes:
        name: Identifier for logging purposes
        _tasks: Every task not yet finished
        _pending_replaceable: Maps task_id -> (marker, task) for tasks still
            waiting out their delay
    """

    def __init__(self, name: str = "BackgroundWorker"):
        self.name = name
        self.logger = logging.getLogger(__name__)

        self._running = True
        self._tasks: Set[asyncio.Task] = set()
        self._pending_replaceable: Dict[str, Tuple[int, asyncio.Task]] = {}
        self._marker_counter = 0

        self.logger.debug(f"BackgroundWorker '{name}' started")

    def submit(self, task: Callable[..., Awaitable[Any]], *args, **kwargs) -> Optional[asyncio.Task]:
        """
        Schedule `task(*args, **kwargs)` on the running loop without awaiting it.

        Returns:
            The scheduled asyncio.Task, or None if the worker is shut down or
            no event loop is running.
        """
        if not self._running:
            self.logger.warning(f"Worker '{self.name}' is shut down, ignoring task submission")
            return None

        loop = self._get_loop()
        if loop is None:
            return None

        return self._track(loop.create_task(self._run(task, args, kwargs)))

    def submit_replacing(
        self,
        task_id: str,
        task: Callable[..., Awaitable[Any]],
        *args,
        delay: float = 0.0,
        **kwargs
    ) -> Optional[asyncio.Task]:
        """
        Schedule a task that replaces any pending task with the same ID.

        The task starts after `delay` seconds. If another submission with the
        same `task_id` arrives before then, this one is cancelled and never
        runs.

        Args:
            task_id: Unique identifier for this type of replaceable task
            task: The coroutine function to execute
            delay: Seconds to wait before starting
        """
        if not self._running:
            self.logger.warning(f"Worker '{self.name}' is shut down, ignoring task submission")
            return None

        loop = self._get_loop()
        if loop is None:
            return None

        self.cancel(task_id)

        self._marker_counter += 1
        marker = self._marker_counter
        scheduled = loop.create_task(self._run_delayed(task_id, marker, delay, task, args, kwargs))
        self._pending_replaceable[task_id] = (marker, scheduled)
        return self._track(scheduled)

    def cancel(self, task_id: str) -> bool:
        """
        Cancel the pending (not yet started) task with this ID.

        Returns:
            True if a pending task was cancelled
        """
        entry = self._pending_replaceable.pop(task_id, None)
        if entry is None:
            return False
        _, pending = entry
        pending.cancel()
        self.logger.debug(f"Worker '{self.name}' cancelled pending task '{task_id}'")
        return True

    def cancel_all(self) -> None:
        """
        Cancel all pending delayed tasks.

        Tasks already in execution will complete.
        """
        for task_id in list(self._pending_replaceable):
            self.cancel(task_id)

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._pending_replaceable

    async def join(self) -> None:
        """Wait until every task submitted so far has finished."""
        while True:
            unfinished = [t for t in self._tasks if not t.done()]
            if not unfinished:
                return
            await asyncio.gather(*unfinished, return_exceptions=True)

    async def shutdown(self, timeout: float = 2.0) -> None:
        """
        Gracefully shut down the worker.

        Pending delayed tasks are cancelled; started tasks get `timeout`
        seconds to finish before they are cancelled too.
        """
        if not self._running:
            return

        self.logger.debug(f"Worker '{self.name}' shutting down...")
        self._running = False
        self.cancel_all()

        if self._tasks:
            done, still_running = await asyncio.wait(list(self._tasks), timeout=timeout)
            if still_running:
                self.logger.warning(
                    f"Worker '{self.name}': {len(still_running)} task(s) did not finish within {timeout}s"
                )
                for task in still_running:
                    task.cancel()

        self.logger.debug(f"Worker '{self.name}' shutdown complete")

    @property
    def pending_count(self) -> int:
        """Number of tasks not yet finished (delayed or running)."""
        return len(self._tasks)

    def _get_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning(f"Worker '{self.name}': no running event loop, task dropped")
            return None

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, task, args, kwargs):
        try:
            return await task(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                f"Worker '{self.name}' task failed: {type(e).__name__}: {e}",
                exc_info=True
            )
            return None

    async def _run_delayed(self, task_id, marker, delay, task, args, kwargs):
        if delay > 0:
            await asyncio.sleep(delay)

        # Started: from here on a replacement no longer cancels this task
        current = self._pending_replaceable.get(task_id)
        if current is not None and current[0] == marker:
            del self._pending_replaceable[task_id]

        return await self._run(task, args, kwargs)
