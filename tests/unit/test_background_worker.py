"""
Unit tests for the asyncio BackgroundWorker.
"""

import asyncio
import os
import sys
import unittest
from unittest.mock import AsyncMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from synthex.utils.background_worker import BackgroundWorker


class TestBackgroundWorker(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.worker = BackgroundWorker(name="TestWorker")

    async def asyncTearDown(self):
        await self.worker.shutdown()

    async def test_submit_runs_task(self):
        task = AsyncMock(return_value=42)
        self.worker.submit(task, "a", key="b")
        await self.worker.join()
        task.assert_awaited_once_with("a", key="b")

    async def test_failing_task_is_contained(self):
        task = AsyncMock(side_effect=RuntimeError("boom"))
        scheduled = self.worker.submit(task)
        await self.worker.join()
        self.assertIsNone(scheduled.result())
        self.assertEqual(self.worker.pending_count, 0)

    async def test_replacing_runs_only_last(self):
        task = AsyncMock()
        for value in ("n", "ne", "neb"):
            self.worker.submit_replacing("search", task, value, delay=0.02)
        self.assertTrue(self.worker.is_pending("search"))

        await self.worker.join()

        task.assert_awaited_once_with("neb")
        self.assertFalse(self.worker.is_pending("search"))

    async def test_started_task_is_not_cancelled_by_replacement(self):
        release = asyncio.Event()
        calls = []

        async def slow(value):
            calls.append(value)
            await release.wait()

        self.worker.submit_replacing("job", slow, "first")
        await asyncio.sleep(0.01)
        self.worker.submit_replacing("job", slow, "second")
        release.set()
        await self.worker.join()

        self.assertEqual(calls, ["first", "second"])

    async def test_cancel_pending(self):
        task = AsyncMock()
        self.worker.submit_replacing("job", task, delay=0.05)
        self.assertTrue(self.worker.cancel("job"))
        self.assertFalse(self.worker.cancel("job"))
        await self.worker.join()
        task.assert_not_called()

    async def test_shutdown_rejects_new_tasks(self):
        await self.worker.shutdown()
        self.assertIsNone(self.worker.submit(AsyncMock()))


class TestWithoutLoop(unittest.TestCase):

    def test_submit_without_running_loop_is_dropped(self):
        worker = BackgroundWorker(name="NoLoop")
        task = AsyncMock()
        self.assertIsNone(worker.submit(task))
        task.assert_not_called()


if __name__ == "__main__":
    unittest.main()
