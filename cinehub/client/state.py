"""Client-side mirrors of the server-owned watchlist and favorites.

A :class:`CollectionManager` keeps an in-memory copy of one collection for the
current owner identity. Every tracked key carries an :class:`ItemStatus`:

``COMMITTED``
    confirmed by the server and listed in :attr:`CollectionManager.items`.
``PENDING_ADD``
    an add request is in flight. :meth:`CollectionManager.contains` already
    reports the key, but it is not listed until the server confirms it.
``PENDING_REMOVE``
    a remove request is in flight. The key is hidden immediately and is put
    back in place if the server refuses the removal.

Requests can complete in any order, so two counters guard every completion:

* the owner epoch, advanced by :meth:`CollectionManager.set_owner`. A
  completion whose epoch is stale belongs to a previous owner and is dropped.
* the per-key operation token. Only the most recent operation for a key may
  settle it. Earlier completions just record whether the server holds the key.

Tokens also order fetches against mutations. A fetch remembers the last token
issued when it started, and keys issued or settled after that point keep their
local state when the fetched list is applied.

The per-owner snapshot cache is only read when the first fetch for an owner
fails. Until then a freshly selected owner has no items.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Coroutine, Generic, Hashable, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from ..models import (
    CollectionItem,
    CollectionItemCreate,
    CollectionKey,
    FavoriteActor,
    FavoriteActorCreate,
)
from .api import FavoriteActorAPI, WatchlistAPI
from .cache import SnapshotCache
from .errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    RequestRejectedError,
    SyncError,
)

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)
DraftT = TypeVar("DraftT", bound=BaseModel)
KeyT = TypeVar("KeyT", bound=Hashable)

AuthErrorHandler = Callable[[AuthError], None]


class ItemStatus(str, Enum):
    COMMITTED = "committed"
    PENDING_ADD = "pending_add"
    PENDING_REMOVE = "pending_remove"


@dataclass
class TrackedItem:
    """A key's current item, its status and what the server is known to hold."""

    item: Any
    status: ItemStatus
    token: int
    on_server: bool


@dataclass(frozen=True)
class CollectionState(Generic[ItemT]):
    """Read-only snapshot of a manager, handed to views."""

    items: tuple[ItemT, ...]
    is_loading: bool
    error: str | None
    owner: str | None


class CollectionManager(Generic[ItemT, DraftT, KeyT]):
    """Optimistic mirror of one server-side collection for one owner at a time."""

    collection_name = "collection"
    snapshot_name: str | None = None
    item_model: type[BaseModel]

    def __init__(
        self,
        api: Any,
        *,
        cache: SnapshotCache | None = None,
        on_auth_error: AuthErrorHandler | None = None,
    ):
        self._api = api
        self._cache = cache
        self._on_auth_error = on_auth_error
        self._owner: str | None = None
        self._entries: dict[KeyT, TrackedItem] = {}
        self._error: str | None = None
        self._loading = 0
        self._epoch = 0
        self._last_token = 0
        self._touched: dict[KeyT, int] = {}
        self._fetch_seq = 0
        self._applied_fetch_seq = 0
        self._synced = False
        self._tasks: set[asyncio.Task[Any]] = set()

    # -- read side ------------------------------------------------------------

    @property
    def owner(self) -> str | None:
        return self._owner

    @property
    def items(self) -> list[ItemT]:
        return [
            entry.item
            for entry in self._entries.values()
            if entry.status is ItemStatus.COMMITTED
        ]

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def state(self) -> CollectionState[ItemT]:
        return CollectionState(
            items=tuple(self.items),
            is_loading=self.is_loading,
            error=self._error,
            owner=self._owner,
        )

    def status_of(self, key: Any) -> ItemStatus | None:
        entry = self._entries.get(self.normalize_key(key))
        return entry.status if entry is not None else None

    def contains(self, key: Any) -> bool:
        entry = self._entries.get(self.normalize_key(key))
        return entry is not None and entry.status is not ItemStatus.PENDING_REMOVE

    # -- keys and messages ------------------------------------------------------

    def normalize_key(self, key: Any) -> KeyT:
        return key

    def key_of(self, item: ItemT | DraftT) -> KeyT:
        return item.key  # type: ignore[attr-defined]

    @property
    def fetch_error_message(self) -> str:
        return f"Failed to fetch {self.collection_name}"

    @property
    def add_error_message(self) -> str:
        return f"Failed to add to {self.collection_name}"

    @property
    def remove_error_message(self) -> str:
        return f"Failed to remove from {self.collection_name}"

    # -- owner lifecycle --------------------------------------------------------

    def set_owner(self, identity: str | None) -> asyncio.Task[bool] | None:
        """Switch the owner and schedule a full fetch for a signed-in identity.

        The previous owner's items are dropped before this method returns, so
        nothing from another identity is ever visible. Must be called from
        within a running event loop when ``identity`` is not ``None``.
        """

        if identity != self._owner:
            self._epoch += 1
            self._owner = identity
            self._entries = {}
            self._touched = {}
            self._error = None
            self._loading = 0
            self._applied_fetch_seq = self._fetch_seq
            self._synced = False
        if identity is None:
            return None
        return self._schedule(self.fetch_all)

    async def wait_idle(self) -> None:
        """Wait for fetches scheduled by :meth:`set_owner` to complete."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -- synchronization --------------------------------------------------------

    async def fetch_all(self) -> bool:
        """Replace the committed items with the server's current collection.

        If the very first fetch for an owner fails, the owner's cached
        snapshot (when there is one) is shown instead, with ``error`` set.
        """

        if self._owner is None:
            return False
        epoch = self._epoch
        self._fetch_seq += 1
        seq = self._fetch_seq
        issued = self._last_token
        self._loading += 1
        self._error = None
        try:
            items = await self._api.list_items()
        except SyncError as exc:
            if epoch != self._epoch:
                return False
            logger.warning("Fetching %s failed: %s", self.collection_name, exc.message)
            self._error = self.fetch_error_message
            if not self._synced:
                self._hydrate(self._owner)
            self._notify_auth_error(exc)
            return False
        finally:
            self._finish_loading(epoch)

        if epoch != self._epoch:
            logger.debug("Discarding %s fetch issued for a previous owner", self.collection_name)
            return False
        if seq < self._applied_fetch_seq:
            logger.debug("Discarding out-of-order %s fetch", self.collection_name)
            return False
        self._applied_fetch_seq = seq
        self._apply_snapshot(items, issued)
        self._persist()
        return True

    async def add(self, draft: DraftT) -> bool:
        """Add ``draft`` on the server and list it once confirmed."""

        key = self.key_of(draft)
        entry = self._entries.get(key)
        if entry is not None and entry.status is ItemStatus.COMMITTED:
            return True
        if self._owner is None:
            self._error = self.add_error_message
            return False

        epoch = self._epoch
        token = self._touch(key)
        if entry is None:
            self._entries[key] = TrackedItem(
                item=draft, status=ItemStatus.PENDING_ADD, token=token, on_server=False
            )
        else:
            entry.status = ItemStatus.PENDING_ADD
            entry.token = token
        self._loading += 1
        self._error = None
        try:
            confirmed = await self._api.add_item(draft)
        except SyncError as exc:
            if epoch != self._epoch:
                return False
            self._touch(key)
            current = self._entries.get(key)
            if current is not None and current.token == token:
                self._settle(key, current)
            if isinstance(exc, (ConflictError, RequestRejectedError)) and exc.message:
                self._error = exc.message
            else:
                self._error = self.add_error_message
            logger.warning("Adding %s to %s failed: %s", key, self.collection_name, exc.message)
            self._notify_auth_error(exc)
            return False
        finally:
            self._finish_loading(epoch)

        if epoch != self._epoch:
            return False
        self._touch(key)
        current = self._entries.get(key)
        if current is not None:
            current.item = confirmed
            current.on_server = True
            if current.token == token:
                current.status = ItemStatus.COMMITTED
        self._persist()
        return True

    async def remove(self, key: Any) -> bool:
        """Hide ``key`` immediately, then confirm the removal with the server."""

        key = self.normalize_key(key)
        if self._owner is None:
            return False
        epoch = self._epoch
        token = self._touch(key)
        entry = self._entries.get(key)
        if entry is not None:
            entry.status = ItemStatus.PENDING_REMOVE
            entry.token = token
        self._error = None
        self._persist()
        try:
            await self._api.remove_item(key)
        except NotFoundError:
            pass
        except SyncError as exc:
            if epoch != self._epoch:
                return False
            self._touch(key)
            current = self._entries.get(key)
            if current is not None and current.token == token:
                self._settle(key, current)
            self._error = self.remove_error_message
            logger.warning(
                "Removing %s from %s failed: %s", key, self.collection_name, exc.message
            )
            self._persist()
            self._notify_auth_error(exc)
            return False

        if epoch != self._epoch:
            return False
        self._touch(key)
        current = self._entries.get(key)
        if current is not None:
            current.on_server = False
            if current.token == token:
                del self._entries[key]
        self._persist()
        return True

    # -- internals --------------------------------------------------------------

    def _touch(self, key: KeyT) -> int:
        self._last_token += 1
        self._touched[key] = self._last_token
        return self._last_token

    def _finish_loading(self, epoch: int) -> None:
        if epoch == self._epoch and self._loading > 0:
            self._loading -= 1

    def _settle(self, key: KeyT, entry: TrackedItem) -> None:
        """Resolve an entry whose latest operation failed to what the server holds.

        The entry never left the mapping, so a restored item keeps its
        original position and cannot be duplicated.
        """

        if entry.on_server:
            entry.status = ItemStatus.COMMITTED
        else:
            del self._entries[key]

    def _apply_snapshot(self, items: Iterable[ItemT], issued: int) -> None:
        """Apply a fetched list requested when ``issued`` was the last token.

        Keys touched by an operation after that point may have changed on the
        server since the list was read, so their local state is kept as is.
        """

        fetched: dict[KeyT, ItemT] = {}
        for item in items:
            fetched.setdefault(self.key_of(item), item)

        entries: dict[KeyT, TrackedItem] = {}
        for key, item in fetched.items():
            current = self._entries.get(key)
            if self._touched.get(key, 0) > issued:
                if current is not None:
                    entries[key] = current
                continue
            if current is not None and current.status is not ItemStatus.COMMITTED:
                current.item = item
                current.on_server = True
                entries[key] = current
            else:
                entries[key] = TrackedItem(
                    item=item, status=ItemStatus.COMMITTED, token=0, on_server=True
                )
        for key, current in self._entries.items():
            if key in entries:
                continue
            if self._touched.get(key, 0) > issued:
                entries[key] = current
                continue
            if current.status is ItemStatus.COMMITTED:
                continue
            current.on_server = False
            entries[key] = current
        self._entries = entries
        self._synced = True
        self._touched = {
            key: token for key, token in self._touched.items() if token > issued
        }

    def _hydrate(self, owner: str) -> None:
        """Show the owner's cached items after a failed first fetch."""

        self._synced = True
        if self._cache is None or self.snapshot_name is None:
            return
        cached = self._cache.load(owner, self.snapshot_name)
        if not cached:
            return
        for raw in cached:
            try:
                item = self.item_model.model_validate(raw)
            except ValidationError:
                logger.debug("Skipping invalid cached %s entry", self.collection_name)
                continue
            key = self.key_of(item)
            # Keys changed since the owner was selected are newer than the cache.
            if key in self._touched:
                continue
            self._entries.setdefault(
                key,
                TrackedItem(item=item, status=ItemStatus.COMMITTED, token=0, on_server=True),
            )

    def _persist(self) -> None:
        if self._cache is None or self.snapshot_name is None or self._owner is None:
            return
        # A partial list must not replace the snapshot before the first sync.
        if not self._synced:
            return
        self._cache.save(
            self._owner,
            self.snapshot_name,
            [item.model_dump(mode="json", by_alias=True) for item in self.items],
        )

    def _notify_auth_error(self, exc: SyncError) -> None:
        if not isinstance(exc, AuthError) or self._on_auth_error is None:
            return
        try:
            self._on_auth_error(exc)
        except Exception:
            logger.exception("Auth error handler for %s failed", self.collection_name)

    def _schedule(
        self, factory: Callable[[], Coroutine[Any, Any, bool]]
    ) -> asyncio.Task[bool]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(factory())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background %s fetch crashed", self.collection_name, exc_info=exc
            )


class WatchlistManager(CollectionManager[CollectionItem, CollectionItemCreate, CollectionKey]):
    """Watchlist mirror keyed by ``(id, media_type)``."""

    collection_name = "watchlist"
    snapshot_name = "watchlist"
    item_model = CollectionItem

    def __init__(
        self,
        api: WatchlistAPI,
        *,
        cache: SnapshotCache | None = None,
        on_auth_error: AuthErrorHandler | None = None,
    ):
        super().__init__(api, cache=cache, on_auth_error=on_auth_error)

    def normalize_key(self, key: Any) -> CollectionKey:
        item_id, media_type = key
        return CollectionKey(int(item_id), str(media_type))

    def is_in_watchlist(self, item_id: int, media_type: str) -> bool:
        return self.contains(CollectionKey(item_id, media_type))


class FavoriteActorManager(CollectionManager[FavoriteActor, FavoriteActorCreate, int]):
    """Favorite people mirror keyed by the external ``actor_id``.

    The server assigns each row's surrogate ``id``, so additions are only
    listed once the confirmed row comes back. Removal is optimistic.
    """

    collection_name = "favorites"
    snapshot_name = "favorites"
    item_model = FavoriteActor

    def __init__(
        self,
        api: FavoriteActorAPI,
        *,
        cache: SnapshotCache | None = None,
        on_auth_error: AuthErrorHandler | None = None,
    ):
        super().__init__(api, cache=cache, on_auth_error=on_auth_error)

    def normalize_key(self, key: Any) -> int:
        return int(key)

    @property
    def actors(self) -> list[FavoriteActor]:
        return self.items

    def is_favorite(self, actor_id: int) -> bool:
        return self.contains(actor_id)
