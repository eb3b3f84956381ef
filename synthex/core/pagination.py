"""
Paginated Collection Loader
===========================

Offset/limit windowing over a server collection, built on
ResourceQueryEngine. The engine holds a `CreationPage` (every item loaded so
far plus the last cursor); the loader adds the filter parameters and the
incremental `load_more()` merge.

Rules:
------
- A filter change resets the offset to 0 and replaces the whole dataset with
  the new first page.
- `load_more()` appends the next window in order and never replaces. It is
  a no-op without `has_more`, and a second call while one is in flight is
  ignored, so two requests can never target the same offset.
- A failed `load_more()` keeps every loaded page and the cursor, so the user
  can simply retry.
- A filter change or refetch invalidates an in-flight `load_more()`; its
  result is discarded by the engine's generation check.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import DEFAULT_PAGE_LIMIT, PAGINATED_RESOURCE_KINDS, RESOURCE_CREATIONS
from .models import CreationPage, PaginationCursor
from .query_engine import ResourceQueryEngine

# page_fetcher(resource_kind=, agent=, search=, style=, limit=, offset=)
#   -> {"items": [...], "pagination": PaginationCursor}
PageFetcher = Callable[..., Awaitable[Dict[str, Any]]]


class PaginatedCollectionLoader:
    """
    A live, paginated collection handle.

    Args:
        page_fetcher: Coroutine returning one window (see PageFetcher)
        resource_kind: Which collection to page through
        agent, search, style: Server-side filters (None = unfiltered)
        limit: Page size
        name: Label used in log messages

    Example:
        >>> loader = PaginatedCollectionLoader(fetch_page, limit=20)
        >>> await loader.start()                 # items 1-20
        >>> await loader.load_more()             # items 21-40 appended
        >>> await loader.update(style="neon")    # replaced by the neon first page
    """

    def __init__(
        self,
        page_fetcher: PageFetcher,
        resource_kind: str = RESOURCE_CREATIONS,
        agent: Optional[str] = None,
        search: Optional[str] = None,
        style: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        name: Optional[str] = None,
    ):
        if resource_kind not in PAGINATED_RESOURCE_KINDS:
            raise ValueError(f"Unknown resource kind '{resource_kind}'")
        if limit <= 0:
            raise ValueError("limit must be positive")

        self.logger = logging.getLogger(__name__)
        self._page_fetcher = page_fetcher
        self._load_more_token: Optional[int] = None

        self._engine: ResourceQueryEngine[CreationPage] = ResourceQueryEngine(
            self._fetch_first_page,
            default_factory=CreationPage,
            params={
                "resource_kind": resource_kind,
                "agent": agent,
                "search": search,
                "style": style,
                "limit": limit,
            },
            name=name or resource_kind,
        )

    # ------------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------------

    @property
    def engine(self) -> ResourceQueryEngine:
        return self._engine

    @property
    def data(self) -> List[Any]:
        """Every item loaded so far, in server order."""
        return self._engine.data.items

    @property
    def pagination(self) -> Optional[PaginationCursor]:
        return self._engine.data.pagination

    @property
    def has_more(self) -> bool:
        cursor = self.pagination
        return cursor is not None and cursor.has_more

    @property
    def next_offset(self) -> int:
        return self._engine.data.next_offset

    @property
    def loading(self) -> bool:
        return self._engine.loading

    @property
    def loading_more(self) -> bool:
        return self._load_more_token is not None and self._engine.is_current(self._load_more_token)

    @property
    def error(self) -> Optional[str]:
        return self._engine.error

    @property
    def filters(self) -> Dict[str, Any]:
        return self._engine.params

    def subscribe(self, listener: Callable[["PaginatedCollectionLoader"], None]) -> Callable[[], None]:
        return self._engine.subscribe(lambda _engine: listener(self))

    # ------------------------------------------------------------------------
    # OPERATIONS
    # ------------------------------------------------------------------------

    async def start(self) -> bool:
        return await self._engine.start()

    async def refetch(self) -> bool:
        """Reload from offset 0, replacing the dataset."""
        return await self._engine.refetch()

    async def update(self, **filters) -> bool:
        """
        Change filters (agent, search, style, limit, resource_kind).

        Any actual change resets the offset and replaces the dataset with the
        new first page.
        """
        kind = filters.get("resource_kind")
        if kind is not None and kind not in PAGINATED_RESOURCE_KINDS:
            raise ValueError(f"Unknown resource kind '{kind}'")
        return await self._engine.update(**filters)

    async def load_more(self) -> bool:
        """
        Fetch the next window and append it.

        Returns:
            True if a page was appended; False if there was nothing to load,
            another load was in flight, the request failed, or the result was
            superseded by a filter change
        """
        engine = self._engine

        if engine.closed:
            return False
        if self.loading_more:
            self.logger.debug(f"Collection '{engine.name}': load_more already in flight, ignored")
            return False
        if engine.loading:
            self.logger.debug(f"Collection '{engine.name}': first page still loading, load_more ignored")
            return False
        if not self.has_more:
            return False

        # No new token: the first page and every appended page share one
        # generation, and any filter change or refetch invalidates them all.
        token = engine.generation
        offset = self.next_offset
        params = engine.params
        self._load_more_token = token
        engine.notify()

        failure = None
        try:
            result = await self._page_fetcher(offset=offset, **params)
        except Exception as e:
            failure = e
        finally:
            if self._load_more_token == token:
                self._load_more_token = None

        if failure is not None:
            self.logger.warning(f"Collection '{engine.name}': load_more at offset {offset} failed: {failure}")
            # Loaded pages and the cursor stay as they are
            engine.commit(token, error=str(failure) or type(failure).__name__)
            return False

        if not engine.is_current(token):
            engine.commit(token)  # logs the discard
            return False

        current = engine.data
        seen = {self._item_id(item) for item in current.items}
        fresh = []
        for item in result["items"]:
            item_id = self._item_id(item)
            if item_id in seen:
                self.logger.info(
                    f"Collection '{engine.name}': dropped duplicate item {item_id} at offset {offset} "
                    f"(collection changed on the server between pages)"
                )
                continue
            seen.add(item_id)
            fresh.append(item)

        page = CreationPage(items=current.items + fresh, pagination=result["pagination"])
        self.logger.debug(
            f"Collection '{engine.name}': appended {len(fresh)} item(s), "
            f"{len(page.items)} loaded, has_more={page.pagination.has_more}"
        )
        return engine.commit(token, data=page)

    def close(self) -> None:
        self._load_more_token = None
        self._engine.close()

    # ------------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------------

    async def _fetch_first_page(self, **params) -> CreationPage:
        result = await self._page_fetcher(offset=0, **params)
        return CreationPage(items=list(result["items"]), pagination=result["pagination"])

    @staticmethod
    def _item_id(item: Any) -> Any:
        return getattr(item, "id", None) if not isinstance(item, dict) else item.get("id")
