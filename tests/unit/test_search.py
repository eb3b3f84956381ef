"""
Unit tests for SearchDebouncer.

Verifies that:
1. Keystrokes within the debounce window collapse into one request for the
   final query.
2. A blank query never reaches the network and clears results at once.
3. A slow response to an older query never overwrites a newer one.
4. With the default 300 ms window nothing is sent before the window ends.
"""

import asyncio
import os
import sys
import unittest
from unittest.mock import AsyncMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from synthex.core.config import DEBOUNCE_WINDOW_SECONDS, DEFAULT_SEARCH_LIMIT
from synthex.core.search import SearchDebouncer
from synthex.utils.background_worker import BackgroundWorker

WINDOW = 0.05


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestDebounce(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.worker = BackgroundWorker(name="TestSearchWorker")

    async def asyncTearDown(self):
        await self.worker.shutdown()

    async def test_rapid_typing_issues_one_request(self):
        searcher = AsyncMock(return_value=["nebula-1", "nebula-2"])
        search = SearchDebouncer(searcher, self.worker, limit=20, window=WINDOW)

        for prefix in ("n", "ne", "neb", "nebula"):
            search.set_query(prefix)
        self.assertTrue(search.pending)

        await search.wait_idle()

        searcher.assert_awaited_once_with("nebula", 20)
        self.assertEqual(search.data, ["nebula-1", "nebula-2"])
        self.assertFalse(search.pending)
        self.assertFalse(search.loading)

    async def test_default_window_holds_request_back(self):
        searcher = AsyncMock(return_value=["nebula-1"])
        search = SearchDebouncer(searcher, self.worker)
        self.assertAlmostEqual(search.window, DEBOUNCE_WINDOW_SECONDS)
        self.assertAlmostEqual(DEBOUNCE_WINDOW_SECONDS, 0.3)

        loop = asyncio.get_running_loop()
        started = loop.time()
        search.set_query("nebula")

        await asyncio.sleep(0.15)
        searcher.assert_not_called()
        self.assertTrue(search.pending)

        await search.wait_idle()
        # The request goes out no earlier than the full window after the keystroke
        self.assertGreaterEqual(loop.time() - started, DEBOUNCE_WINDOW_SECONDS - 0.01)
        searcher.assert_awaited_once_with("nebula", DEFAULT_SEARCH_LIMIT)

    async def test_query_is_trimmed(self):
        searcher = AsyncMock(return_value=[])
        search = SearchDebouncer(searcher, self.worker, limit=5, window=WINDOW)

        search.set_query("  neon city ")
        await search.wait_idle()

        searcher.assert_awaited_once_with("neon city", 5)

    async def test_blank_query_makes_no_request(self):
        searcher = AsyncMock(return_value=["x"])
        search = SearchDebouncer(searcher, self.worker, window=WINDOW)

        search.set_query("   ")
        await search.wait_idle()

        searcher.assert_not_called()
        self.assertEqual(search.data, [])
        self.assertFalse(search.loading)

    async def test_clearing_cancels_pending_search(self):
        searcher = AsyncMock(return_value=["x"])
        search = SearchDebouncer(searcher, self.worker, window=WINDOW)

        search.set_query("neb")
        search.set_query("")
        await search.wait_idle()

        searcher.assert_not_called()
        self.assertEqual(search.data, [])

    async def test_clearing_discards_in_flight_result(self):
        release = asyncio.Event()

        async def slow_search(query, limit):
            await release.wait()
            return [query]

        searcher = AsyncMock(side_effect=slow_search)
        search = SearchDebouncer(searcher, self.worker, window=WINDOW)

        search.set_query("neb")
        await _wait_for(lambda: searcher.await_count == 1)
        search.set_query("")
        release.set()
        await search.wait_idle()

        self.assertEqual(search.data, [])

    async def test_failure_sets_error(self):
        searcher = AsyncMock(side_effect=RuntimeError("search unavailable"))
        search = SearchDebouncer(searcher, self.worker, window=WINDOW)

        search.set_query("nebula")
        await search.wait_idle()

        self.assertEqual(search.data, [])
        self.assertEqual(search.error, "search unavailable")


class TestOrdering(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.worker = BackgroundWorker(name="TestSearchWorker")

    async def asyncTearDown(self):
        await self.worker.shutdown()

    async def test_slow_older_query_does_not_overwrite_newer(self):
        gates = {"neb": asyncio.Event(), "nebula": asyncio.Event()}
        calls = []

        async def gated_search(query, limit):
            calls.append(query)
            await gates[query].wait()
            return [f"{query}-result"]

        search = SearchDebouncer(gated_search, self.worker, window=WINDOW)

        search.set_query("neb")
        await _wait_for(lambda: calls == ["neb"])
        search.set_query("nebula")
        await _wait_for(lambda: calls == ["neb", "nebula"])

        gates["nebula"].set()
        await _wait_for(lambda: search.data == ["nebula-result"])
        gates["neb"].set()
        await search.wait_idle()

        self.assertEqual(search.data, ["nebula-result"])
        self.assertFalse(search.loading)

    async def test_closed_handle_ignores_keystrokes(self):
        searcher = AsyncMock(return_value=["x"])
        search = SearchDebouncer(searcher, self.worker, window=WINDOW)
        search.close()

        search.set_query("nebula")
        await search.wait_idle()

        searcher.assert_not_called()


if __name__ == "__main__":
    unittest.main()
