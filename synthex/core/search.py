"""
Search Debouncer
================

Search-as-you-type on top of ResourceQueryEngine. Keystrokes arriving within
the debounce window collapse into a single request, issued once the window
after the last keystroke has elapsed. A blank query resolves to an empty
result immediately and never reaches the network.

Responses are applied in issue order through the engine's generation
tokens: a slow response to "neb" can never overwrite a faster "nebula".
"""

import logging
from typing import Awaitable, Callable, List, Optional

from .config import DEBOUNCE_WINDOW_SECONDS, DEFAULT_SEARCH_LIMIT
from .query_engine import ResourceQueryEngine
from ..utils.background_worker import BackgroundWorker

SEARCH_TASK_ID = "search"


class SearchDebouncer:
    """
    A debounced search handle.

    Args:
        searcher: Coroutine called as searcher(query, limit)
        worker: BackgroundWorker owning the delayed search task
        limit: Maximum number of results
        window: Debounce window in seconds

    Example:
        >>> search = SearchDebouncer(api.creations.search, worker)
        >>> for prefix in ("n", "ne", "neb", "nebula"):
        ...     search.set_query(prefix)
        >>> await search.wait_idle()      # one request, for "nebula"
        >>> search.data
        [Creation(...), ...]
    """

    def __init__(
        self,
        searcher: Callable[..., Awaitable[List]],
        worker: BackgroundWorker,
        limit: int = DEFAULT_SEARCH_LIMIT,
        window: float = DEBOUNCE_WINDOW_SECONDS,
        name: str = "search",
    ):
        self.logger = logging.getLogger(__name__)
        self.window = window
        self._searcher = searcher
        self._worker = worker
        self._task_id = f"{SEARCH_TASK_ID}:{name}:{id(self)}"
        self._query = ""

        self._engine: ResourceQueryEngine[List] = ResourceQueryEngine(
            self._search,
            default_factory=list,
            params={"query": "", "limit": limit},
            name=name,
        )

    @property
    def query(self) -> str:
        """The latest raw query passed to set_query()."""
        return self._query

    @property
    def data(self) -> List:
        return self._engine.data

    @property
    def loading(self) -> bool:
        return self._engine.loading

    @property
    def error(self) -> Optional[str]:
        return self._engine.error

    @property
    def engine(self) -> ResourceQueryEngine:
        return self._engine

    @property
    def pending(self) -> bool:
        """True while a keystroke is waiting out its debounce window."""
        return self._worker.is_pending(self._task_id)

    def subscribe(self, listener: Callable[["SearchDebouncer"], None]) -> Callable[[], None]:
        return self._engine.subscribe(lambda _engine: listener(self))

    def set_query(self, text: str) -> None:
        """
        Accept a keystroke.

        Cancels the pending search and restarts the debounce window. A blank
        query clears the results at once and invalidates any search still in
        flight.
        """
        if self._engine.closed:
            return

        self._query = text
        self._worker.cancel(self._task_id)

        if not text.strip():
            token = self._engine.begin(mark_loading=False)
            self._engine.commit(token, data=[], error=None)
            return

        self._worker.submit_replacing(self._task_id, self._fire, text, delay=self.window)

    async def refetch(self) -> bool:
        """Re-run the current query immediately, bypassing the debounce window."""
        self._worker.cancel(self._task_id)
        if not self._query.strip():
            return False
        return await self._fire(self._query)

    async def wait_idle(self) -> None:
        """Wait until no search is pending or in flight."""
        await self._worker.join()

    def close(self) -> None:
        self._worker.cancel(self._task_id)
        self._engine.close()

    async def _fire(self, text: str) -> bool:
        params = self._engine.params
        if params["query"] != text:
            return await self._engine.update(query=text)
        return await self._engine.refetch()

    async def _search(self, query: str, limit: int) -> List:
        self.logger.debug(f"Searching for '{query}'")
        return await self._searcher(query.strip(), limit)
