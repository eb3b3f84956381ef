"""
Unit tests for the resource factories and the SynthexClient container.

Verifies that:
1. The page fetcher infers has_more for endpoints without a total.
2. Resource handles degrade to their documented defaults.
3. close() tears down every handle so late results are discarded.
4. The client does not keep handles alive once the caller drops them.
"""

import asyncio
import gc
import os
import sys
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from synthex.client import SynthexClient
from synthex.core import resources
from synthex.core.models import PaginationCursor
from synthex.core.storage import LocalStore
from synthex.utils.config_manager import ClientSettings


def _make_api():
    api = MagicMock()
    api.add_auth_expired_hook.return_value = lambda: None
    api.agents.get_all = AsyncMock(return_value=["nova", "echo"])
    api.agents.get_by_id = AsyncMock(return_value="nova")
    api.agents.get_creations = AsyncMock(return_value=[{"id": f"c{i}"} for i in range(3)])
    api.feed.get_all = AsyncMock(return_value=[{"id": f"f{i}"} for i in range(5)])
    api.feed.get_by_type = AsyncMock(return_value=[{"id": "m1"}])
    api.stats.get = AsyncMock(side_effect=ConnectionError("unreachable"))
    api.stats.get_leaderboard = AsyncMock(return_value=[{"id": "c1", "title": "Nebula", "count": 40}])
    api.creations.get_all = AsyncMock(return_value={
        "items": [{"id": "c1"}], "pagination": PaginationCursor.compute(0, 20, 1),
    })
    api.creations.search = AsyncMock(return_value=[{"id": "c1"}])
    api.evolution.get_tree = AsyncMock(return_value="tree")
    return api


class TestPageFetcher(unittest.IsolatedAsyncioTestCase):

    async def test_full_feed_page_suggests_more(self):
        api = _make_api()
        fetch = resources.make_page_fetcher(api)

        result = await fetch(resource_kind="feed", limit=5, offset=10)

        api.feed.get_all.assert_awaited_once_with(limit=5, offset=10)
        self.assertTrue(result["pagination"].has_more)
        self.assertEqual(result["pagination"].next_offset, 15)

    async def test_short_agent_page_is_last(self):
        api = _make_api()
        fetch = resources.make_page_fetcher(api)

        result = await fetch(resource_kind="agent_creations", limit=20, offset=0, agent="a1")

        api.agents.get_creations.assert_awaited_once_with("a1", limit=20, offset=0)
        self.assertFalse(result["pagination"].has_more)
        self.assertEqual(len(result["items"]), 3)

    async def test_creations_use_server_cursor(self):
        api = _make_api()
        fetch = resources.make_page_fetcher(api)

        await fetch(resource_kind="creations", limit=20, offset=0, style="neon")

        api.creations.get_all.assert_awaited_once_with(limit=20, offset=0, agent=None, search=None, style="neon")


class TestResourceHandles(unittest.IsolatedAsyncioTestCase):

    async def test_agent_without_id_makes_no_request(self):
        api = _make_api()
        agent = resources.agent_query(api, None)

        await agent.start()

        self.assertIsNone(agent.data)
        api.agents.get_by_id.assert_not_called()

        await agent.update(agent_id="a1")
        api.agents.get_by_id.assert_awaited_once_with(agent_id="a1")
        self.assertEqual(agent.data, "nova")

    async def test_stats_fall_back_when_unreachable(self):
        stats = resources.stats_query(_make_api())
        await stats.start()
        self.assertEqual(stats.data.total_creations, 2836)
        self.assertEqual(stats.error, "unreachable")

    async def test_feed_by_type(self):
        api = _make_api()
        feed = resources.feed_query(api, limit=10, item_type="milestone")
        await feed.start()
        api.feed.get_by_type.assert_awaited_once_with("milestone", limit=10)
        self.assertEqual(feed.data, [{"id": "m1"}])

    async def test_unknown_feed_type_is_rejected(self):
        api = _make_api()
        with self.assertRaises(ValueError):
            resources.feed_query(api, item_type="announcement")
        api.feed.get_by_type.assert_not_called()

    async def test_leaderboard(self):
        api = _make_api()
        board = resources.leaderboard_query(api, board="likes", limit=3)
        await board.start()
        api.stats.get_leaderboard.assert_awaited_once_with(board="likes", limit=3)
        self.assertEqual(board.data, [{"id": "c1", "title": "Nebula", "count": 40}])

    async def test_unknown_leaderboard_is_rejected(self):
        with self.assertRaises(ValueError):
            resources.leaderboard_query(_make_api(), board="followers")


class TestSynthexClient(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.api = _make_api()
        self.client = SynthexClient(
            ClientSettings(storage_dir=self._tmp.name, debounce_window=0.01),
            api=self.api,
            store=LocalStore(self._tmp.name),
        )

    async def asyncTearDown(self):
        await self.client.close()
        self._tmp.cleanup()

    async def test_start_without_stored_session(self):
        self.assertFalse(await self.client.start())
        self.assertFalse(self.client.session.is_authenticated)

    async def test_handles_load_data(self):
        agents = self.client.agents()
        creations = self.client.creations(style="neon")
        await agents.start()
        await creations.start()

        self.assertEqual(agents.data, ["nova", "echo"])
        self.assertEqual(creations.data, [{"id": "c1"}])
        self.assertFalse(creations.has_more)

    async def test_search_through_client(self):
        search = self.client.search()
        search.set_query("nebula")
        await search.wait_idle()
        self.api.creations.search.assert_awaited_once_with("nebula", 20)

    async def test_close_discards_in_flight_results(self):
        release = asyncio.Event()

        async def slow_agents():
            await release.wait()
            return ["late"]

        self.api.agents.get_all.side_effect = slow_agents
        agents = self.client.agents()
        task = asyncio.create_task(agents.start())
        await asyncio.sleep(0)

        await self.client.close()
        release.set()

        self.assertFalse(await task)
        self.assertEqual(agents.data, [])
        self.assertTrue(agents.closed)
        self.api.close.assert_called_once()

    async def test_closed_client_refuses_new_handles(self):
        await self.client.close()
        with self.assertRaises(RuntimeError):
            self.client.agents()

    async def test_dropped_handles_are_not_retained(self):
        for _ in range(5):
            handle = self.client.creations()
            await handle.start()
            handle.close()
        search = self.client.search()
        del handle, search
        gc.collect()

        self.assertEqual(len(self.client._handles), 0)

    async def test_live_handles_are_closed_with_the_client(self):
        board = self.client.leaderboard(board="evolutions")
        self.assertIn(board, self.client._handles)

        await self.client.close()
        self.assertTrue(board.closed)


if __name__ == "__main__":
    unittest.main()
