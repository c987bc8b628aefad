"""Identity tracking and the client session that ties the managers together."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable

import httpx

from ..config import Settings, get_settings
from ..models import UserPublic
from .api import AccountAPI, FavoriteActorAPI, WatchlistAPI
from .cache import SnapshotCache
from .errors import AuthError, SyncError
from .state import CollectionManager, FavoriteActorManager, WatchlistManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A signed-in user as seen by the client."""

    subject: str
    token: str
    user: UserPublic | None = None


IdentityListener = Callable[[Identity | None, Identity | None], None]


class IdentityProvider:
    """Holds the current identity and notifies subscribers when it changes."""

    def __init__(self, identity: Identity | None = None):
        self._identity = identity
        self._listeners: list[IdentityListener] = []

    @property
    def current(self) -> Identity | None:
        return self._identity

    @property
    def token(self) -> str | None:
        return self._identity.token if self._identity is not None else None

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener(previous, current)`` and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_identity(self, identity: Identity | None) -> None:
        previous = self._identity
        if previous == identity:
            return
        self._identity = identity
        for listener in list(self._listeners):
            listener(previous, identity)


class IdentityReconciler:
    """Rebinds every manager to the provider's identity as it changes.

    Managers are switched synchronously inside the change notification, so no
    manager keeps showing the previous owner's items once the new identity is
    visible. Signing out also purges the previous owner's cached snapshots.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        managers: Iterable[CollectionManager],
        *,
        cache: SnapshotCache | None = None,
    ):
        self._managers = tuple(managers)
        self._cache = cache
        self._unsubscribe = provider.subscribe(self._on_change)
        if provider.current is not None:
            self._on_change(None, provider.current)

    def _on_change(self, previous: Identity | None, current: Identity | None) -> None:
        subject = current.subject if current is not None else None
        for manager in self._managers:
            manager.set_owner(subject)
        if current is None and previous is not None and self._cache is not None:
            self._cache.purge(previous.subject)

    def close(self) -> None:
        self._unsubscribe()


class ClientSession:
    """Client-side context: HTTP client, identity, collection managers and cache."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        cache: SnapshotCache | None = None,
        retry_limit: int = 2,
        retry_delay: float = 0.5,
    ):
        self._http_client = http_client
        self.cache = cache
        self.identity = IdentityProvider()

        def token_provider() -> str | None:
            return self.identity.token

        api_options = {
            "token_provider": token_provider,
            "max_retries": retry_limit,
            "retry_delay": retry_delay,
        }
        self.accounts = AccountAPI(http_client, **api_options)
        self.watchlist = WatchlistManager(
            WatchlistAPI(http_client, **api_options),
            cache=cache,
            on_auth_error=self._handle_auth_error,
        )
        self.favorites = FavoriteActorManager(
            FavoriteActorAPI(http_client, **api_options),
            cache=cache,
            on_auth_error=self._handle_auth_error,
        )
        self.reconciler = IdentityReconciler(
            self.identity, (self.watchlist, self.favorites), cache=cache
        )

    @property
    def user(self) -> UserPublic | None:
        current = self.identity.current
        return current.user if current is not None else None

    async def login(self, email: str, password: str) -> UserPublic:
        """Authenticate and switch every manager to the signed-in user.

        Raises :class:`~cinehub.client.errors.SyncError` subclasses when the
        server rejects the credentials or cannot be reached.
        """

        response = await self.accounts.login(email, password)
        self.identity.set_identity(
            Identity(subject=str(response.user.id), token=response.token, user=response.user)
        )
        logger.info("Signed in as user %s", response.user.id)
        return response.user

    async def restore(self, token: str) -> UserPublic | None:
        """Resume a session from a previously issued bearer token.

        Returns ``None`` and stays signed out when the server no longer
        accepts the token. Other failures propagate.
        """

        try:
            user = await self.accounts.me(token)
        except AuthError:
            logger.info("Stored session token was rejected")
            return None
        self.identity.set_identity(Identity(subject=str(user.id), token=token, user=user))
        logger.info("Restored session for user %s", user.id)
        return user

    async def logout(self) -> None:
        current = self.identity.current
        if current is None:
            return
        self.identity.set_identity(None)
        try:
            await self.accounts.logout(current.token)
        except SyncError as exc:
            logger.warning("Server-side logout failed: %s", exc.message)

    async def wait_idle(self) -> None:
        await self.watchlist.wait_idle()
        await self.favorites.wait_idle()

    async def aclose(self) -> None:
        self.reconciler.close()
        await self.watchlist.aclose()
        await self.favorites.aclose()
        await self._http_client.aclose()

    def _handle_auth_error(self, exc: AuthError) -> None:
        if self.identity.current is None:
            return
        logger.warning("Session rejected by the server (%s); signing out", exc.message)
        self.identity.set_identity(None)


@asynccontextmanager
async def open_session(settings: Settings | None = None) -> AsyncIterator[ClientSession]:
    """Build a :class:`ClientSession` from configuration and close it on exit."""

    settings = settings or get_settings()
    cache = (
        SnapshotCache(settings.client_cache_dir)
        if settings.client_cache_dir is not None
        else None
    )
    http_client = httpx.AsyncClient(
        base_url=str(settings.api_base_url),
        timeout=settings.client_timeout_seconds,
    )
    session = ClientSession(
        http_client, cache=cache, retry_limit=settings.client_retry_limit
    )
    try:
        yield session
    finally:
        await session.aclose()
