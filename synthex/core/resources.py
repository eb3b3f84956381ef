"""
Resource Handles
================

Binds the generic query primitives to the concrete Synthex resources. Each
factory returns a live handle for one resource: consumers read `data`,
`loading` and `error`, call `refetch()` / `update()` / `load_more()`, and
never deal with fetch timing, ordering or merging themselves.

| Factory                  | Handle                     | data on error         |
|--------------------------|----------------------------|-----------------------|
| agents_query             | ResourceQueryEngine        | []                    |
| agent_query              | ResourceQueryEngine        | None                  |
| agent_creations_query    | ResourceQueryEngine        | []                    |
| creations_loader         | PaginatedCollectionLoader  | []                    |
| feed_query               | ResourceQueryEngine        | []                    |
| feed_loader              | PaginatedCollectionLoader  | []                    |
| stats_query              | ResourceQueryEngine        | PlatformStats.fallback|
| leaderboard_query        | ResourceQueryEngine        | []                    |
| evolution_tree_query     | ResourceQueryEngine        | None                  |
| search_handle            | SearchDebouncer            | []                    |
"""

from typing import Any, Dict, Optional

from .config import (
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEBOUNCE_WINDOW_SECONDS,
    FEED_ITEM_TYPES,
    LEADERBOARD_TYPES,
    RESOURCE_AGENT_CREATIONS,
    RESOURCE_CREATIONS,
    RESOURCE_FEED,
)
from .models import PaginationCursor, PlatformStats
from .pagination import PageFetcher, PaginatedCollectionLoader
from .query_engine import ResourceQueryEngine
from .search import SearchDebouncer
from .synthex_api import SynthexAPI
from ..utils.background_worker import BackgroundWorker


def _missing(key: str):
    return lambda params: not params.get(key)


def make_page_fetcher(api: SynthexAPI) -> PageFetcher:
    """
    Build the page fetcher used by PaginatedCollectionLoader.

    Only the creations listing reports a total. For agent creations and the
    feed, a full page is taken to mean there may be more.
    """
    async def fetch_page(
        resource_kind: str,
        limit: int,
        offset: int = 0,
        agent: Optional[str] = None,
        search: Optional[str] = None,
        style: Optional[str] = None,
    ) -> Dict[str, Any]:
        if resource_kind == RESOURCE_CREATIONS:
            return await api.creations.get_all(limit=limit, offset=offset, agent=agent, search=search, style=style)

        if resource_kind == RESOURCE_AGENT_CREATIONS:
            if not agent:
                return {"items": [], "pagination": PaginationCursor.compute(offset, limit, offset)}
            items = await api.agents.get_creations(agent, limit=limit, offset=offset)
        elif resource_kind == RESOURCE_FEED:
            items = await api.feed.get_all(limit=limit, offset=offset)
        else:
            raise ValueError(f"Unknown resource kind '{resource_kind}'")

        total = offset + len(items) + (1 if len(items) >= limit else 0)
        return {"items": items, "pagination": PaginationCursor.compute(offset, limit, total)}

    return fetch_page


def agents_query(api: SynthexAPI) -> ResourceQueryEngine:
    return ResourceQueryEngine(api.agents.get_all, default_factory=list, name="agents")


def agent_query(api: SynthexAPI, agent_id: Optional[str]) -> ResourceQueryEngine:
    """A single agent; resolves to None without a request while no id is known."""
    return ResourceQueryEngine(
        api.agents.get_by_id,
        default_factory=lambda: None,
        params={"agent_id": agent_id},
        skip_when=_missing("agent_id"),
        name="agent",
    )


def agent_creations_query(api: SynthexAPI, agent_id: Optional[str], limit: int = DEFAULT_PAGE_LIMIT) -> ResourceQueryEngine:
    return ResourceQueryEngine(
        api.agents.get_creations,
        default_factory=list,
        params={"agent_id": agent_id, "limit": limit},
        skip_when=_missing("agent_id"),
        name="agent_creations",
    )


def creations_loader(
    api: SynthexAPI,
    agent: Optional[str] = None,
    search: Optional[str] = None,
    style: Optional[str] = None,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> PaginatedCollectionLoader:
    return PaginatedCollectionLoader(
        make_page_fetcher(api),
        resource_kind=RESOURCE_CREATIONS,
        agent=agent,
        search=search,
        style=style,
        limit=limit,
        name="creations",
    )


def feed_query(api: SynthexAPI, limit: int = DEFAULT_PAGE_LIMIT, item_type: Optional[str] = None) -> ResourceQueryEngine:
    """The most recent feed items, optionally restricted to one item type."""
    if item_type and item_type not in FEED_ITEM_TYPES:
        raise ValueError(f"Unknown feed item type '{item_type}', expected one of {', '.join(FEED_ITEM_TYPES)}")

    async def fetch_feed(limit: int, item_type: Optional[str]):
        if item_type:
            return await api.feed.get_by_type(item_type, limit=limit)
        return await api.feed.get_all(limit=limit)

    return ResourceQueryEngine(
        fetch_feed,
        default_factory=list,
        params={"limit": limit, "item_type": item_type},
        name="feed",
    )


def feed_loader(api: SynthexAPI, limit: int = DEFAULT_PAGE_LIMIT) -> PaginatedCollectionLoader:
    return PaginatedCollectionLoader(make_page_fetcher(api), resource_kind=RESOURCE_FEED, limit=limit, name="feed")


def stats_query(api: SynthexAPI) -> ResourceQueryEngine:
    return ResourceQueryEngine(api.stats.get, default_factory=PlatformStats.fallback, name="stats")


def leaderboard_query(api: SynthexAPI, board: str = "creations", limit: int = DEFAULT_LEADERBOARD_LIMIT) -> ResourceQueryEngine:
    """Top entries of one leaderboard ("creations", "evolutions" or "likes")."""
    if board not in LEADERBOARD_TYPES:
        raise ValueError(f"Unknown leaderboard '{board}', expected one of {', '.join(LEADERBOARD_TYPES)}")
    return ResourceQueryEngine(
        api.stats.get_leaderboard,
        default_factory=list,
        params={"board": board, "limit": limit},
        name="leaderboard",
    )


def evolution_tree_query(api: SynthexAPI, creation_id: Optional[str]) -> ResourceQueryEngine:
    return ResourceQueryEngine(
        api.evolution.get_tree,
        default_factory=lambda: None,
        params={"creation_id": creation_id},
        skip_when=_missing("creation_id"),
        name="evolution_tree",
    )


def search_handle(
    api: SynthexAPI,
    worker: BackgroundWorker,
    limit: int = DEFAULT_SEARCH_LIMIT,
    window: float = DEBOUNCE_WINDOW_SECONDS,
) -> SearchDebouncer:
    return SearchDebouncer(api.creations.search, worker, limit=limit, window=window)
