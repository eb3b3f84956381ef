import asyncio
import json
import unittest
from unittest.mock import MagicMock, patch

import requests

import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from synthex.core.models import PaginationCursor
from synthex.core.synthex_api import (
    SynthexAPI,
    SynthexAPIError,
    SynthexAuthExpiredError,
    SynthexNetworkError,
    SynthexNotFoundError,
    SynthexRateLimitError,
    SynthexServerError,
)


def _response(status_code: int, body=None):
    """Build a fake requests.Response carrying `body` as JSON."""
    resp = MagicMock()
    resp.status_code = status_code
    if body is None:
        resp.content = b''
        resp.json.side_effect = ValueError("No JSON")
    else:
        resp.content = json.dumps(body).encode('utf-8')
        resp.json.return_value = body
    return resp


class TestApiErrorPaths(unittest.TestCase):
    def setUp(self):
        self.api = SynthexAPI(base_url="https://example.net/api")

    def tearDown(self):
        self.api.close()

    def _respond(self, resp):
        return patch.object(self.api.session, 'request', return_value=resp)

    def test_authentication_error_mapping(self):
        with self._respond(_response(401, {"error": "Invalid token"})):
            with self.assertRaises(SynthexAuthExpiredError) as ctx:
                self.api._make_request("/auth/me", token="t")
        self.assertEqual(str(ctx.exception), "Invalid token")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_not_found_error_mapping(self):
        with self._respond(_response(404, {"error": "Creation not found"})):
            with self.assertRaises(SynthexNotFoundError):
                self.api._make_request("/creations/missing")

    def test_rate_limit_error_mapping(self):
        with self._respond(_response(429, {"error": "Too many requests"})):
            with self.assertRaises(SynthexRateLimitError):
                self.api._make_request("/creations")

    def test_server_error_mapping(self):
        with self._respond(_response(503)):
            with self.assertRaises(SynthexServerError) as ctx:
                self.api._make_request("/stats")
        self.assertEqual(str(ctx.exception), "Request failed")

    def test_client_error_carries_server_message(self):
        with self._respond(_response(400, {"error": "Email already registered"})):
            with self.assertRaises(SynthexAPIError) as ctx:
                self.api._make_request("/auth/signup", method="POST", data={"email": "a@b.com"})
        self.assertEqual(str(ctx.exception), "Email already registered")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_network_error_mapping(self):
        with patch.object(self.api.session, 'request', side_effect=requests.exceptions.ConnectionError("down")):
            with self.assertRaises(SynthexNetworkError):
                self.api._make_request("/agents")

    def test_timeout_mapping(self):
        with patch.object(self.api.session, 'request', side_effect=requests.exceptions.Timeout("slow")):
            with self.assertRaises(SynthexNetworkError):
                self.api._make_request("/agents")

    def test_empty_body_returns_none(self):
        with self._respond(_response(204)):
            self.assertIsNone(self.api._make_request("/favorites/c1", method="DELETE"))

    def test_bearer_header_and_param_filtering(self):
        with self._respond(_response(200, {"creations": []})) as request:
            self.api._make_request("/creations", params={"limit": 20, "offset": 0, "agent": None, "search": ""}, token="tok")
        kwargs = request.call_args.kwargs
        self.assertEqual(kwargs['headers']['Authorization'], "Bearer tok")
        self.assertEqual(kwargs['params'], {"limit": 20, "offset": 0})
        self.assertEqual(request.call_args.args, ("GET", "https://example.net/api/creations"))

    def test_observability_counter_increments(self):
        with self._respond(_response(200, {"agents": []})):
            self.api._make_request("/agents")
            self.api._make_request("/agents")
        self.assertEqual(self.api.get_request_count(), 2)


class TestAuthExpiredHook(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.api = SynthexAPI(base_url="https://example.net/api")
        self.expired = MagicMock()
        self.api.add_auth_expired_hook(self.expired)

    async def asyncTearDown(self):
        self.api.close()

    async def test_401_with_token_fires_hook(self):
        self.api.set_token("tok")
        with patch.object(self.api.session, 'request', return_value=_response(401, {"error": "Invalid token"})):
            with self.assertRaises(SynthexAuthExpiredError):
                await self.api.agents.get_all()
        self.expired.assert_called_once()

    async def test_401_on_login_does_not_fire_hook(self):
        with patch.object(self.api.session, 'request', return_value=_response(401, {"error": "Invalid credentials"})):
            with self.assertRaises(SynthexAuthExpiredError):
                await self.api.auth.login("a@b.com", "wrong-pass")
        self.expired.assert_not_called()

    async def test_removed_hook_is_not_called(self):
        other = MagicMock()
        remove = self.api.add_auth_expired_hook(other)
        remove()
        self.api.set_token("tok")
        with patch.object(self.api.session, 'request', return_value=_response(401, {"error": "Invalid token"})):
            with self.assertRaises(SynthexAuthExpiredError):
                await self.api.auth.me()
        other.assert_not_called()


class TestEndpointParsing(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.api = SynthexAPI(base_url="https://example.net/api")

    async def asyncTearDown(self):
        self.api.close()

    async def test_creations_window(self):
        body = {
            "creations": [{"id": "c1", "agentId": "a1", "generation": 0, "title": "Nebula"}],
            "pagination": {"offset": 20, "limit": 20, "total": 45, "hasMore": True},
        }
        with patch.object(self.api.session, 'request', return_value=_response(200, body)):
            result = await self.api.creations.get_all(limit=20, offset=20)
        self.assertEqual(result["items"][0].title, "Nebula")
        self.assertEqual(result["pagination"], PaginationCursor(offset=20, limit=20, total=45, has_more=True))

    async def test_like_returns_server_count(self):
        with patch.object(self.api.session, 'request', return_value=_response(200, {"success": True, "likes": 13})):
            self.assertEqual(await self.api.creations.like("c1"), 13)

    async def test_unlike_returns_server_count(self):
        with patch.object(self.api.session, 'request', return_value=_response(200, {"success": True, "likes": 12})) as request:
            self.assertEqual(await self.api.creations.unlike("c 1"), 12)
        self.assertEqual(request.call_args.args, ("POST", "https://example.net/api/creations/c%201/unlike"))

    async def test_create_sends_camel_case_payload(self):
        body = {"creation": {"id": "c9", "agentId": "a1", "title": "Aurora", "style": "neon", "tags": ["sky"]}}
        with patch.object(self.api.session, 'request', return_value=_response(201, body)) as request:
            creation = await self.api.creations.create("Aurora", "a1", style="neon", tags=("sky",))
        self.assertEqual(request.call_args.kwargs['json'], {"title": "Aurora", "agentId": "a1", "style": "neon", "tags": ["sky"]})
        self.assertEqual(creation.id, "c9")
        self.assertEqual(creation.title, "Aurora")

    async def test_evolve_returns_next_generation(self):
        body = {"creation": {"id": "c2", "agentId": "a1", "parentId": "c1", "generation": 3, "title": "Aurora II"}}
        with patch.object(self.api.session, 'request', return_value=_response(200, body)) as request:
            child = await self.api.creations.evolve("c1", direction="chaotic", intensity=0.7)
        self.assertEqual(request.call_args.args, ("POST", "https://example.net/api/creations/c1/evolve"))
        self.assertEqual(request.call_args.kwargs['json'], {"direction": "chaotic", "intensity": 0.7})
        self.assertEqual(child.generation, 3)

    async def test_leaderboard_query_parameters(self):
        body = {"type": "likes", "leaderboard": [{"id": "c1", "title": "Nebula", "count": 40}]}
        with patch.object(self.api.session, 'request', return_value=_response(200, body)) as request:
            entries = await self.api.stats.get_leaderboard("likes", limit=5)
        self.assertEqual(request.call_args.kwargs['params'], {"type": "likes", "limit": 5})
        self.assertEqual(entries, [{"id": "c1", "title": "Nebula", "count": 40}])

    async def test_login_returns_token_and_user(self):
        body = {"token": "tok", "user": {"id": 1, "name": "Al", "email": "a@b.com", "plan": "free"}}
        with patch.object(self.api.session, 'request', return_value=_response(200, body)) as request:
            result = await self.api.auth.login("a@b.com", "secret1")
        self.assertEqual(result["token"], "tok")
        self.assertEqual(result["user"].id, "1")
        self.assertNotIn('Authorization', request.call_args.kwargs['headers'])


if __name__ == '__main__':
    unittest.main()
