"""
Optimistic Toggle Stores
========================

Favorites and saved creations are membership sets that the user flips with
a single click. They are modelled as two layers:

1. An authoritative local set, persisted to LocalStore on every flip and
   readable without any network access.
2. A best-effort reconciliation task that tells the server about the flip.

A failed reconciliation does NOT roll back the local flip: local membership
is what the user sees, and the server is only notified. Every flip the
server has not yet acknowledged is kept as a pending operation in the
persisted record. Pending operations are pushed again on the next sync, and
a sync never lets the server's copy override them.

Reconciliation runs one request at a time per id and always sends the
latest local membership, so a quick add/remove cannot reach the server in
reverse order.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .config import FAVORITES_KEY, SAVED_KEY
from .storage import LocalStore
from ..utils.background_worker import BackgroundWorker

RemoteCall = Callable[[str], Awaitable[None]]


class OptimisticToggleStore:
    """
    A durable, ordered set of creation ids with fire-and-forget server sync.

    Args:
        store: Durable storage for the set
        key: Record key inside the store ("favorites", "saved", ...)
        worker: Runs reconciliation tasks
        add_remote / remove_remote: Coroutines notifying the server
        fetch_remote: Coroutine returning the server's ids (used by pull())
        is_online: Predicate deciding whether the server should be notified
            (typically "the session is authenticated")

    Attributes:
        last_sync_error: Message of the last failed reconciliation, if any
    """

    def __init__(
        self,
        store: LocalStore,
        key: str,
        worker: BackgroundWorker,
        add_remote: Optional[RemoteCall] = None,
        remove_remote: Optional[RemoteCall] = None,
        fetch_remote: Optional[Callable[[], Awaitable[List[str]]]] = None,
        is_online: Callable[[], bool] = lambda: False,
    ):
        self.key = key
        self.logger = logging.getLogger(__name__)
        self._store = store
        self._worker = worker
        self._add_remote = add_remote
        self._remove_remote = remove_remote
        self._fetch_remote = fetch_remote
        self._is_online = is_online

        ids, pending = self._load()
        # dict preserves insertion order and gives O(1) membership
        self._ids: Dict[str, None] = dict.fromkeys(ids)
        # id -> membership the server has not acknowledged yet
        self._pending: Dict[str, bool] = pending
        self._syncing = set()
        self.last_sync_error: Optional[str] = None
        self._listeners: List[Callable[["OptimisticToggleStore"], None]] = []

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    @property
    def pending(self) -> Dict[str, bool]:
        """Flips not yet acknowledged by the server (id -> membership)."""
        return dict(self._pending)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, creation_id: str) -> bool:
        return self.contains(creation_id)

    def contains(self, creation_id: str) -> bool:
        return str(creation_id) in self._ids

    def subscribe(self, listener: Callable[["OptimisticToggleStore"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def toggle(self, creation_id: str) -> bool:
        """
        Flip membership of `creation_id` locally, persist it, and notify the
        server in the background.

        Returns:
            The new membership (True = now in the set)
        """
        creation_id = str(creation_id)
        if creation_id in self._ids:
            del self._ids[creation_id]
            member = False
        else:
            self._ids[creation_id] = None
            member = True

        if self._has_remote:
            self._pending[creation_id] = member
        self._persist()
        self._notify()
        self.logger.debug(f"{self.key}: {creation_id} -> {'added' if member else 'removed'}")

        if self._has_remote and self._is_online():
            self._schedule(creation_id)

        return member

    async def flush(self) -> bool:
        """
        Push every pending flip to the server, one id at a time.

        Ids whose reconciliation is already running are left to that task.

        Returns:
            True if nothing is left pending
        """
        if not self._has_remote or not self._is_online():
            return not self._pending

        for creation_id in list(self._pending):
            if creation_id in self._syncing:
                continue
            self._syncing.add(creation_id)
            await self._reconcile(creation_id)
        return not self._pending

    async def pull(self) -> bool:
        """
        Push pending flips, then merge the server's ids into the local set.

        Ids only known locally are kept, and ids with a pending removal are
        not brought back: the local set stays authoritative.

        Returns:
            True if the server answered
        """
        if self._fetch_remote is None:
            return False

        await self.flush()
        try:
            remote_ids = await self._fetch_remote()
        except Exception as e:
            self.logger.warning(f"{self.key}: could not fetch server set, keeping local copy: {e}")
            return False

        added = [
            i for i in map(str, remote_ids)
            if i not in self._ids and self._pending.get(i) is not False
        ]
        if added:
            self._ids.update(dict.fromkeys(added))
            self._persist()
            self._notify()
            self.logger.info(f"{self.key}: merged {len(added)} id(s) from the server")
        return True

    @property
    def _has_remote(self) -> bool:
        return self._add_remote is not None and self._remove_remote is not None

    def _schedule(self, creation_id: str) -> None:
        if creation_id in self._syncing:
            # The running task sends the latest membership when it loops
            return
        self._syncing.add(creation_id)
        if self._worker.submit(self._reconcile, creation_id) is None:
            self._syncing.discard(creation_id)

    async def _reconcile(self, creation_id: str) -> bool:
        try:
            while creation_id in self._pending:
                member = self._pending[creation_id]
                action = "add" if member else "remove"
                remote = self._add_remote if member else self._remove_remote
                try:
                    await remote(creation_id)
                except Exception as e:
                    self.last_sync_error = f"Failed to {action} {creation_id}: {e}"
                    self.logger.warning(
                        f"{self.key}: server {action} for {creation_id} failed, keeping local state: {e}"
                    )
                    return False

                if self._pending.get(creation_id) == member:
                    del self._pending[creation_id]
                    self._persist()
            self.last_sync_error = None
            return True
        finally:
            self._syncing.discard(creation_id)

    def _load(self) -> Tuple[List[str], Dict[str, bool]]:
        record = self._store.read(self.key)
        if record is None:
            return [], {}
        # schema 0 was a bare list; schema 1 is {"ids": [...], "pending": {...}}
        ids = record.get("ids") if isinstance(record, dict) else record
        if not isinstance(ids, list):
            self.logger.warning(f"{self.key}: unexpected stored record, starting empty")
            return [], {}
        pending = record.get("pending") if isinstance(record, dict) else None
        if not isinstance(pending, dict):
            pending = {}
        return [str(i) for i in ids], {str(k): bool(v) for k, v in pending.items()}

    def _persist(self) -> None:
        self._store.write(self.key, {"ids": list(self._ids), "pending": dict(self._pending)})

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"{self.key}: listener failed: {e}", exc_info=True)


class FavoritesService:
    """
    The favorites and saved sets of the current user.

    When the session becomes authenticated both sets push their pending
    flips and then merge the server's copies into the local ones.
    """

    def __init__(self, store: LocalStore, api, worker: BackgroundWorker, session=None):
        self.logger = logging.getLogger(__name__)
        self._worker = worker
        self._session = session
        is_online = (lambda: session.is_authenticated) if session is not None else (lambda: False)

        self.favorites = OptimisticToggleStore(
            store, FAVORITES_KEY, worker,
            add_remote=api.favorites.add,
            remove_remote=api.favorites.remove,
            fetch_remote=api.favorites.get_ids,
            is_online=is_online,
        )
        self.saved = OptimisticToggleStore(
            store, SAVED_KEY, worker,
            add_remote=api.favorites.save,
            remove_remote=api.favorites.unsave,
            fetch_remote=api.favorites.get_saved_ids,
            is_online=is_online,
        )

        self._was_authenticated = False
        self._unsubscribe = session.subscribe(self._on_session_change) if session is not None else None

    def toggle_favorite(self, creation_id: str) -> bool:
        return self.favorites.toggle(creation_id)

    def toggle_saved(self, creation_id: str) -> bool:
        return self.saved.toggle(creation_id)

    def is_favorite(self, creation_id: str) -> bool:
        return self.favorites.contains(creation_id)

    def is_saved(self, creation_id: str) -> bool:
        return self.saved.contains(creation_id)

    async def sync(self) -> bool:
        """Push and pull both sets; True if both servers answered."""
        favorites_ok = await self.favorites.pull()
        saved_ok = await self.saved.pull()
        return favorites_ok and saved_ok

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_session_change(self, session) -> None:
        authenticated = session.is_authenticated
        if authenticated and not self._was_authenticated:
            self.logger.info("Session authenticated, syncing favorites and saved creations")
            self._worker.submit(self.sync)
        self._was_authenticated = authenticated
