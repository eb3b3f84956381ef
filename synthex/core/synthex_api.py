"""
Synthex Web API Client

A client for the Synthex creative-media service JSON API: authentication,
agents, creations, favorites, the social feed, platform statistics and the
evolution lineage.

HTTP is performed with a `requests.Session`. Every public method is a
coroutine: the blocking request runs in a worker thread through
`asyncio.to_thread`, so the event loop never blocks and all client state is
mutated on the loop thread only. Requests are never aborted mid-flight;
callers that no longer want a result discard it (see ResourceQueryEngine).

Author: Synthex Project
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import DEFAULT_API_URL, DEFAULT_ERROR_MESSAGE, DEFAULT_LEADERBOARD_LIMIT, NETWORK_TIMEOUT_SECONDS
from .models import (
    AIAgent,
    Creation,
    EvolutionTree,
    FeedItem,
    PaginationCursor,
    PlatformStats,
    User,
)
from ..utils.logger import log_api_call, log_api_request, log_api_response


# ============================================================================
# EXCEPTIONS
# ============================================================================

class SynthexError(Exception):
    """Base exception for all Synthex client errors."""
    pass


class ValidationError(SynthexError):
    """Raised on the client, before any network call, for invalid input."""
    pass


class SynthexAPIError(SynthexError):
    """A request failed or was rejected. The message is safe to display."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SynthexNetworkError(SynthexAPIError):
    """Raised when the server cannot be reached or does not answer in time."""
    pass


class SynthexServerError(SynthexAPIError):
    """Raised for 5xx responses and unparseable bodies."""
    pass


class SynthexNotFoundError(SynthexAPIError):
    """Raised when a resource is not found (404)."""
    pass


class SynthexRateLimitError(SynthexAPIError):
    """Raised when the rate limit is exceeded (429)."""
    pass


class SynthexAuthExpiredError(SynthexAPIError):
    """Raised when the server rejects the credentials or session token (401)."""
    pass


class SessionError(SynthexError):
    """Base class for session lifecycle misuse."""
    pass


class SessionBusyError(SessionError):
    """Raised when a mutating session operation is already in flight."""
    pass


class AuthRequiredError(SessionError):
    """Raised when an operation needs an authenticated session."""
    pass


# ============================================================================
# MAIN API CLIENT
# ============================================================================

class SynthexAPI:
    """
    Synthex Web API client.

    Usage:
        ```python
        api = SynthexAPI("http://localhost:3001/api")
        result = await api.auth.login("a@b.com", "secret1")
        api.set_token(result["token"])
        agents = await api.agents.get_all()
        api.close()
        ```

    The client never stores credentials of its own: the session token is set
    by SessionManager through `set_token()`. When a request that carried a
    token is rejected with 401, every registered auth-expired hook is called
    before SynthexAuthExpiredError propagates.

    Attributes:
        auth: AuthAPI - login, signup, identity check, profile
        agents: AgentsAPI - agent listing and detail
        creations: CreationsAPI - creation listing, detail and mutations
        favorites: FavoritesAPI - favorite and saved sets
        feed: FeedAPI - social feed
        stats: StatsAPI - platform statistics
        evolution: EvolutionAPI - lineage trees
    """

    def __init__(self, base_url: str = DEFAULT_API_URL, timeout: float = NETWORK_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        })

        self._token: Optional[str] = None
        self._auth_expired_hooks: List[Callable[[], None]] = []
        self._request_count = 0

        self.auth = AuthAPI(self)
        self.agents = AgentsAPI(self)
        self.creations = CreationsAPI(self)
        self.favorites = FavoritesAPI(self)
        self.feed = FeedAPI(self)
        self.stats = StatsAPI(self)
        self.evolution = EvolutionAPI(self)

        self.logger.info(f"Initialized SynthexAPI for {self.base_url}")

    # ------------------------------------------------------------------------
    # TOKEN & HOOKS
    # ------------------------------------------------------------------------

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def add_auth_expired_hook(self, hook: Callable[[], None]) -> Callable[[], None]:
        """Register `hook`; returns a callable that unregisters it."""
        self._auth_expired_hooks.append(hook)

        def remove():
            if hook in self._auth_expired_hooks:
                self._auth_expired_hooks.remove(hook)

        return remove

    def get_request_count(self) -> int:
        """Number of HTTP requests issued by this client."""
        return self._request_count

    def close(self) -> None:
        self.session.close()

    # ------------------------------------------------------------------------
    # REQUEST HANDLING
    # ------------------------------------------------------------------------

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        authenticated: bool = True,
        auth_token: Optional[str] = None,
    ) -> Any:
        """
        Perform a request without blocking the event loop.

        The token is captured on the loop thread when the request is issued,
        so a logout racing with an in-flight request cannot change what that
        request sent.

        Args:
            authenticated: Send the session token (login/signup do not)
            auth_token: Send this token instead of the session token
        """
        if not authenticated:
            token = None
        else:
            token = auth_token if auth_token is not None else self._token
        try:
            return await asyncio.to_thread(self._make_request, endpoint, method, data, params, token)
        except SynthexAuthExpiredError:
            if token is not None and token == self._token:
                self._notify_auth_expired()
            raise

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        token: Optional[str] = None,
    ) -> Any:
        """
        Make a blocking API request.

        Args:
            endpoint: API endpoint relative to base_url (e.g., "/agents")
            method: HTTP method (GET, POST, PUT, DELETE)
            data: Optional JSON request body
            params: Optional URL query parameters (None values are dropped)
            token: Bearer token to send, if any

        Returns:
            Parsed JSON body (None for empty responses)

        Raises:
            SynthexAPIError: For the error taxonomy described in this module
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {}
        if token:
            headers['Authorization'] = f"Bearer {token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}

        log_api_request(self.logger, method, url, headers=headers, data=data, params=params)
        self._request_count += 1
        start_time = time.monotonic()

        try:
            response = self.session.request(
                method,
                url,
                json=data,
                params=params or None,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise SynthexNetworkError(f"Request timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise SynthexNetworkError(f"Network error: {e}")

        elapsed = time.monotonic() - start_time

        if response.status_code >= 400:
            message = self._error_message(response)
            log_api_response(self.logger, response.status_code, {"error": message}, elapsed)
            code = response.status_code
            if code == 401:
                raise SynthexAuthExpiredError(message, code)
            elif code == 404:
                raise SynthexNotFoundError(message, code)
            elif code == 429:
                raise SynthexRateLimitError(message, code)
            elif code >= 500:
                raise SynthexServerError(message, code)
            else:
                raise SynthexAPIError(message, code)

        if response.status_code == 204 or not response.content:
            log_api_response(self.logger, response.status_code, None, elapsed)
            return None

        try:
            result = response.json()
        except ValueError as e:
            raise SynthexServerError(f"Invalid JSON response: {e}", response.status_code)

        log_api_response(self.logger, response.status_code, result, elapsed)
        return result

    @staticmethod
    def _error_message(response) -> str:
        """Extract the server's {"error": "..."} message, if any."""
        try:
            body = response.json()
        except ValueError:
            return DEFAULT_ERROR_MESSAGE
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return DEFAULT_ERROR_MESSAGE

    def _notify_auth_expired(self) -> None:
        self.logger.info("Server rejected the session token")
        for hook in list(self._auth_expired_hooks):
            try:
                hook()
            except Exception as e:
                self.logger.error(f"Auth-expired hook failed: {e}", exc_info=True)


# ============================================================================
# SUB-API CLASSES
# ============================================================================

class BaseAPI:
    """Base class for sub-API implementations."""

    def __init__(self, client: SynthexAPI):
        self.client = client

    async def _request(self, *args, **kwargs):
        """Shortcut to client.request()"""
        return await self.client.request(*args, **kwargs)


class AuthAPI(BaseAPI):
    """Authentication endpoints. Results carry the raw token for SessionManager."""

    @log_api_call(api_name="Synthex")
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Returns:
            {"token": str, "user": User}
        """
        result = await self._request(
            "/auth/login", method="POST", data={"email": email, "password": password}, authenticated=False
        )
        return {"token": result["token"], "user": User.from_dict(result["user"])}

    @log_api_call(api_name="Synthex")
    async def signup(self, name: str, email: str, password: str) -> Dict[str, Any]:
        result = await self._request(
            "/auth/signup", method="POST", data={"name": name, "email": email, "password": password},
            authenticated=False,
        )
        return {"token": result["token"], "user": User.from_dict(result["user"])}

    @log_api_call(api_name="Synthex")
    async def me(self) -> User:
        result = await self._request("/auth/me")
        return User.from_dict(result["user"])

    @log_api_call(api_name="Synthex")
    async def update_profile(self, **changes) -> User:
        result = await self._request("/auth/me", method="PUT", data=changes)
        return User.from_dict(result["user"])

    @log_api_call(api_name="Synthex")
    async def logout(self, token: Optional[str] = None) -> None:
        """Invalidate `token` (default: the current session token) on the server."""
        await self._request("/auth/logout", method="POST", auth_token=token)


class AgentsAPI(BaseAPI):

    @log_api_call(api_name="Synthex")
    async def get_all(self) -> List[AIAgent]:
        result = await self._request("/agents")
        return [AIAgent.from_dict(a) for a in result.get("agents", [])]

    @log_api_call(api_name="Synthex")
    async def get_by_id(self, agent_id: str) -> AIAgent:
        result = await self._request(f"/agents/{quote(str(agent_id), safe='')}")
        return AIAgent.from_dict(result["agent"])

    @log_api_call(api_name="Synthex")
    async def get_creations(self, agent_id: str, limit: int = 20, offset: int = 0) -> List[Creation]:
        result = await self._request(
            f"/agents/{quote(str(agent_id), safe='')}/creations",
            params={"limit": limit, "offset": offset},
        )
        return [Creation.from_dict(c) for c in result.get("creations", [])]


class CreationsAPI(BaseAPI):
    """
    Creations API - listing with filters and offset/limit pagination, detail,
    likes, creation and evolution.
    """

    @log_api_call(api_name="Synthex")
    async def get_all(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        agent: Optional[str] = None,
        search: Optional[str] = None,
        style: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one window of creations.

        Returns:
            {"items": List[Creation], "pagination": PaginationCursor}
        """
        result = await self._request(
            "/creations",
            params={"limit": limit, "offset": offset or None, "agent": agent, "search": search, "style": style},
        )
        items = [Creation.from_dict(c) for c in result.get("creations", [])]
        cursor = result.get("pagination")
        if cursor is None:
            cursor = {"offset": offset or 0, "limit": limit or len(items), "total": (offset or 0) + len(items)}
        return {"items": items, "pagination": PaginationCursor.from_dict(cursor)}

    @log_api_call(api_name="Synthex")
    async def get_by_id(self, creation_id: str) -> Creation:
        result = await self._request(f"/creations/{quote(str(creation_id), safe='')}")
        return Creation.from_dict(result["creation"])

    @log_api_call(api_name="Synthex")
    async def create(
        self,
        title: str,
        agent_id: str,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Creation:
        payload = {"title": title, "agentId": agent_id}
        if prompt is not None:
            payload["prompt"] = prompt
        if style is not None:
            payload["style"] = style
        if tags is not None:
            payload["tags"] = list(tags)
        result = await self._request("/creations", method="POST", data=payload)
        return Creation.from_dict(result["creation"])

    @log_api_call(api_name="Synthex")
    async def like(self, creation_id: str) -> int:
        """Returns the server's authoritative like count."""
        result = await self._request(f"/creations/{quote(str(creation_id), safe='')}/like", method="POST")
        return int(result.get("likes", 0))

    @log_api_call(api_name="Synthex")
    async def unlike(self, creation_id: str) -> int:
        result = await self._request(f"/creations/{quote(str(creation_id), safe='')}/unlike", method="POST")
        return int(result.get("likes", 0))

    @log_api_call(api_name="Synthex")
    async def evolve(self, creation_id: str, direction: Optional[str] = None, intensity: Optional[float] = None) -> Creation:
        payload = {}
        if direction is not None:
            payload["direction"] = direction
        if intensity is not None:
            payload["intensity"] = intensity
        result = await self._request(
            f"/creations/{quote(str(creation_id), safe='')}/evolve", method="POST", data=payload
        )
        return Creation.from_dict(result["creation"])

    @log_api_call(api_name="Synthex")
    async def search(self, query: str, limit: int = 20) -> List[Creation]:
        result = await self._request(
            f"/creations/search/{quote(query, safe='')}", params={"limit": limit}
        )
        return [Creation.from_dict(c) for c in result.get("results", [])]


class FavoritesAPI(BaseAPI):
    """Favorite and saved sets. All endpoints require authentication."""

    @log_api_call(api_name="Synthex")
    async def get_ids(self) -> List[str]:
        result = await self._request("/favorites")
        return [str(i) for i in result.get("ids") or []]

    @log_api_call(api_name="Synthex")
    async def add(self, creation_id: str) -> None:
        await self._request(f"/favorites/{quote(str(creation_id), safe='')}", method="POST")

    @log_api_call(api_name="Synthex")
    async def remove(self, creation_id: str) -> None:
        await self._request(f"/favorites/{quote(str(creation_id), safe='')}", method="DELETE")

    @log_api_call(api_name="Synthex")
    async def get_saved_ids(self) -> List[str]:
        result = await self._request("/favorites/saved")
        return [str(i) for i in result.get("ids") or []]

    @log_api_call(api_name="Synthex")
    async def save(self, creation_id: str) -> None:
        await self._request(f"/favorites/saved/{quote(str(creation_id), safe='')}", method="POST")

    @log_api_call(api_name="Synthex")
    async def unsave(self, creation_id: str) -> None:
        await self._request(f"/favorites/saved/{quote(str(creation_id), safe='')}", method="DELETE")


class FeedAPI(BaseAPI):

    @log_api_call(api_name="Synthex")
    async def get_all(self, limit: int = 20, offset: int = 0) -> List[FeedItem]:
        result = await self._request("/feed", params={"limit": limit, "offset": offset})
        return [FeedItem.from_dict(item) for item in result.get("feed", [])]

    @log_api_call(api_name="Synthex")
    async def get_by_type(self, item_type: str, limit: int = 20) -> List[FeedItem]:
        result = await self._request(f"/feed/type/{quote(item_type, safe='')}", params={"limit": limit})
        return [FeedItem.from_dict(item) for item in result.get("feed", [])]


class StatsAPI(BaseAPI):

    @log_api_call(api_name="Synthex")
    async def get(self) -> PlatformStats:
        result = await self._request("/stats")
        return PlatformStats.from_dict(result.get("stats") or {})

    @log_api_call(api_name="Synthex")
    async def get_leaderboard(self, board: str = "creations", limit: int = DEFAULT_LEADERBOARD_LIMIT) -> List[Dict[str, Any]]:
        result = await self._request("/stats/leaderboard", params={"type": board, "limit": limit})
        return list(result.get("leaderboard") or [])


class EvolutionAPI(BaseAPI):

    @log_api_call(api_name="Synthex")
    async def get_tree(self, creation_id: str) -> EvolutionTree:
        result = await self._request(f"/evolution/tree/{quote(str(creation_id), safe='')}")
        return EvolutionTree.from_dict(result)
