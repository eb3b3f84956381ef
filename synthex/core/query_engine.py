"""
Resource Query Engine
=====================

The generic fetch/cache/error primitive behind every server-backed handle in
the client. An engine wraps one async read, `fetcher(**params)`, and exposes
its outcome as `data`, `loading` and `error`.

Ordering:
---------
Every issue of the read draws a fresh, monotonically increasing generation
token. A completion is applied only if its token is still the latest one and
the engine has not been closed. Results that lose this race are discarded
silently, so applied state always follows issue order, never completion
order, however the network reorders responses.

Failures:
---------
A failed read sets `error` to a displayable message and resets `data` to
`default_factory()`. Collections therefore degrade to an empty list and
aggregates to their documented fallback record; `data` is never left unset
after an error.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

Listener = Callable[["ResourceQueryEngine"], None]

_UNSET = object()


class ResourceQueryEngine(Generic[T]):
    """
    Generation-guarded async read of server state.

    Args:
        fetcher: Coroutine function called as fetcher(**params)
        default_factory: Produces the value shown before the first result
            and after a failure (e.g. `list`)
        params: The declared parameters; `update()` only accepts these names
        skip_when: Optional predicate on params. When it returns True the
            engine resolves to the default without calling the fetcher
        name: Label used in log messages

    Example:
        >>> engine = ResourceQueryEngine(api.agents.get_all, default_factory=list, name="agents")
        >>> await engine.start()
        >>> engine.data
        [AIAgent(...), ...]
    """

    def __init__(
        self,
        fetcher: Callable[..., Awaitable[T]],
        default_factory: Callable[[], T],
        params: Optional[Dict[str, Any]] = None,
        skip_when: Optional[Callable[[Dict[str, Any]], bool]] = None,
        name: str = "query",
    ):
        self.name = name
        self.logger = logging.getLogger(__name__)

        self._fetcher = fetcher
        self._default_factory = default_factory
        self._params: Dict[str, Any] = dict(params or {})
        self._skip_when = skip_when

        self._data: T = default_factory()
        self._loading = False
        self._error: Optional[str] = None

        self._generation = 0
        self._closed = False
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------------

    @property
    def data(self) -> T:
        return self._data

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def generation(self) -> int:
        """Token of the most recently issued request."""
        return self._generation

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self._params)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call `listener(engine)` after every state change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------------
    # ISSUING
    # ------------------------------------------------------------------------

    async def start(self) -> bool:
        """Issue the initial read. Equivalent to refetch()."""
        return await self.refetch()

    async def refetch(self) -> bool:
        """
        Issue the read with a fresh generation token.

        Returns:
            True if this call's result was applied, False if it was
            superseded, skipped or the engine is closed
        """
        if self._closed:
            return False

        params = dict(self._params)
        if self._skip_when is not None and self._skip_when(params):
            token = self.begin(mark_loading=False)
            self.commit(token, data=self._default_factory(), error=None)
            return False

        token = self.begin()
        try:
            result = await self._fetcher(**params)
        except Exception as e:
            self.logger.warning(f"Query '{self.name}' failed: {e}")
            return self.commit(token, data=self._default_factory(), error=str(e) or type(e).__name__)
        return self.commit(token, data=result, error=None)

    async def update(self, **params) -> bool:
        """
        Change declared parameters and re-issue if any value changed.

        Raises:
            TypeError: If a parameter name was not declared at construction
        """
        unknown = set(params) - set(self._params)
        if unknown:
            raise TypeError(f"Query '{self.name}' has no parameter(s) {sorted(unknown)}")

        changed = {k: v for k, v in params.items() if self._params.get(k) != v}
        if not changed or self._closed:
            return False

        self.logger.debug(f"Query '{self.name}' parameters changed: {changed}")
        self._params.update(changed)
        return await self.refetch()

    def close(self) -> None:
        """
        Tear the engine down. In-flight results are discarded from now on.
        """
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._listeners.clear()
        self.logger.debug(f"Query '{self.name}' closed")

    # ------------------------------------------------------------------------
    # LOW-LEVEL PRIMITIVES
    # ------------------------------------------------------------------------
    # Used by components that issue their own reads against this engine's
    # state (pagination's load_more, the search debouncer).

    def begin(self, mark_loading: bool = True) -> int:
        """Draw a new generation token; every older token becomes stale."""
        self._generation += 1
        if mark_loading and not self._closed:
            self._loading = True
            self._error = None
            self.notify()
        return self._generation

    def is_current(self, token: int) -> bool:
        return not self._closed and token == self._generation

    def commit(self, token: int, data: Any = _UNSET, error: Optional[str] = None, loading: bool = False) -> bool:
        """
        Apply a completed read if `token` is still current.

        Args:
            token: Generation token returned by begin()
            data: New value; omitted to keep the current value
            error: Displayable error message, or None on success
            loading: Loading flag after this commit

        Returns:
            True if applied, False if the result was stale and discarded
        """
        if not self.is_current(token):
            self.logger.debug(
                f"Query '{self.name}' discarded stale result "
                f"(token {token}, current {self._generation}, closed={self._closed})"
            )
            return False

        if data is not _UNSET:
            self._data = data
        self._error = error
        self._loading = loading
        self.notify()
        return True

    def notify(self) -> None:
        """Call every listener with the current state."""
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Listener of query '{self.name}' failed: {e}", exc_info=True)
