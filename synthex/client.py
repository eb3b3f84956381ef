"""
Synthex Client
==============

The service container of the client library. One SynthexClient wires
together everything a front end needs:

    api        SynthexAPI         HTTP transport and endpoint groups
    store      LocalStore         durable local records
    worker     BackgroundWorker   fire-and-forget and debounced tasks
    session    SessionManager     authentication lifecycle
    favorites  FavoritesService   favorites and saved sets

Nothing here is a process-wide singleton: two clients in one process are
fully independent. Resource handles created through the factory methods are
tracked and torn down by `close()`.

Example:
    >>> async with SynthexClient() as client:
    ...     agents = client.agents()
    ...     await agents.start()
    ...     print(agents.data)
"""

import logging
import weakref
from pathlib import Path
from typing import Optional

from .core import resources
from .core.config import DEFAULT_LEADERBOARD_LIMIT, RESOURCE_AGENT_CREATIONS
from .core.pagination import PaginatedCollectionLoader
from .core.query_engine import ResourceQueryEngine
from .core.search import SearchDebouncer
from .core.session import SessionManager
from .core.storage import LocalStore
from .core.synthex_api import SynthexAPI
from .core.toggles import FavoritesService
from .utils.background_worker import BackgroundWorker
from .utils.config_manager import ClientSettings
from .utils.logger import log_config


class SynthexClient:
    """
    Explicitly constructed container for one client instance.

    Args:
        settings: Effective settings (defaults when omitted)
        api: Pre-built API client (tests pass a fake)
        store: Pre-built LocalStore (tests pass one rooted in a temp dir)
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        api: Optional[SynthexAPI] = None,
        store: Optional[LocalStore] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or ClientSettings()
        log_config("Client Settings", vars(self.settings), self.logger)

        self.api = api if api is not None else SynthexAPI(self.settings.api_url, timeout=self.settings.timeout)
        self.store = store if store is not None else LocalStore(Path(self.settings.storage_dir).expanduser())
        self.worker = BackgroundWorker(name="SynthexWorker")
        self.session = SessionManager(self.api, self.store, self.worker)
        self.favorites = FavoritesService(self.store, self.api, self.worker, session=self.session)

        # Handles the caller dropped are released without waiting for close()
        self._handles = weakref.WeakSet()
        self._closed = False

    async def __aenter__(self) -> "SynthexClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> bool:
        """Restore and validate the stored session; True if authenticated."""
        return await self.session.initialize()

    # ------------------------------------------------------------------------
    # RESOURCE HANDLES
    # ------------------------------------------------------------------------

    def agents(self) -> ResourceQueryEngine:
        return self._track(resources.agents_query(self.api))

    def agent(self, agent_id: Optional[str]) -> ResourceQueryEngine:
        return self._track(resources.agent_query(self.api, agent_id))

    def agent_creations(self, agent_id: Optional[str], paginated: bool = False):
        """Creations of one agent, as a single page or as a paginated loader."""
        if paginated:
            return self._track(PaginatedCollectionLoader(
                resources.make_page_fetcher(self.api),
                resource_kind=RESOURCE_AGENT_CREATIONS,
                agent=agent_id,
                limit=self.settings.page_limit,
                name="agent_creations",
            ))
        return self._track(resources.agent_creations_query(self.api, agent_id, limit=self.settings.page_limit))

    def creations(
        self,
        agent: Optional[str] = None,
        search: Optional[str] = None,
        style: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> PaginatedCollectionLoader:
        return self._track(resources.creations_loader(
            self.api, agent=agent, search=search, style=style,
            limit=limit or self.settings.page_limit,
        ))

    def feed(self, item_type: Optional[str] = None, limit: Optional[int] = None, paginated: bool = False):
        limit = limit or self.settings.page_limit
        if paginated:
            return self._track(resources.feed_loader(self.api, limit=limit))
        return self._track(resources.feed_query(self.api, limit=limit, item_type=item_type))

    def stats(self) -> ResourceQueryEngine:
        return self._track(resources.stats_query(self.api))

    def leaderboard(self, board: str = "creations", limit: int = DEFAULT_LEADERBOARD_LIMIT) -> ResourceQueryEngine:
        return self._track(resources.leaderboard_query(self.api, board=board, limit=limit))

    def evolution_tree(self, creation_id: Optional[str]) -> ResourceQueryEngine:
        return self._track(resources.evolution_tree_query(self.api, creation_id))

    def search(self) -> SearchDebouncer:
        return self._track(resources.search_handle(
            self.api, self.worker,
            limit=self.settings.search_limit,
            window=self.settings.debounce_window,
        ))

    # ------------------------------------------------------------------------
    # TEARDOWN
    # ------------------------------------------------------------------------

    async def close(self) -> None:
        """
        Tear everything down: resource handles first (their in-flight results
        are discarded), then the session and favorites, then background
        tasks, then the HTTP session.
        """
        if self._closed:
            return
        self._closed = True

        for handle in list(self._handles):
            handle.close()
        self._handles.clear()

        self.favorites.close()
        self.session.close()
        await self.worker.shutdown()
        self.api.close()
        self.logger.info("Synthex client closed")

    def _track(self, handle):
        if self._closed:
            raise RuntimeError("SynthexClient is closed")
        self._handles.add(handle)
        return handle
