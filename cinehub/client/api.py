"""HTTP client for the CineHub synchronization API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from ..models import (
    AuthResponse,
    CollectionItem,
    CollectionItemCreate,
    CollectionItemResponse,
    CollectionKey,
    CollectionResponse,
    FavoriteActor,
    FavoriteActorCreate,
    FavoriteActorListResponse,
    UserPublic,
)
from .errors import (
    AuthError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RequestRejectedError,
    SyncError,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class APIClient:
    """Shared request plumbing: auth header, retries and status mapping."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        token_provider: TokenProvider | None = None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self._client = http_client
        self._token_provider = token_provider
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        resolved = token if token is not None else (
            self._token_provider() if self._token_provider else None
        )
        if resolved:
            headers["Authorization"] = f"Bearer {resolved}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        token: str | None = None,
        retry: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and translate failures into :class:`SyncError` subclasses.

        Only idempotent reads pass ``retry=True``; transport errors and 5xx
        responses are then retried with a capped exponential backoff.
        """

        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method, url, headers=self._headers(token), **kwargs
                )
            except httpx.HTTPError as exc:
                attempt += 1
                if retry and attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "Transient error calling %s %s (%s). Retrying in %.1fs",
                        method,
                        url,
                        exc.__class__.__name__,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise NetworkError(f"Request to {url} failed: {exc}") from exc

            if response.status_code >= 500 and retry:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "%s %s returned %s. Retrying in %.1fs",
                        method,
                        url,
                        response.status_code,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
            break

        if response.status_code >= 400:
            raise self._error_for(response)
        return response

    def _backoff(self, attempt: int) -> float:
        return min(self._retry_delay * 2 ** (attempt - 1), 5.0)

    @staticmethod
    def _error_for(response: httpx.Response) -> SyncError:
        message = ""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            detail = payload.get("message") or payload.get("detail") or payload.get("error")
            if isinstance(detail, str):
                message = detail
        if not message:
            message = response.reason_phrase or f"HTTP {response.status_code}"

        status = response.status_code
        if status in (401, 403):
            return AuthError(message, status_code=status)
        if status == 404:
            return NotFoundError(message, status_code=status)
        if status == 409:
            return ConflictError(message, status_code=status)
        if status >= 500:
            return NetworkError(message, status_code=status)
        return RequestRejectedError(message, status_code=status)

    @staticmethod
    def _parse(model: type, response: httpx.Response):
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise NetworkError(
                f"Unexpected response payload from {response.request.url.path}",
                status_code=response.status_code,
            ) from exc


class AccountAPI(APIClient):
    """Login, logout and identity lookups."""

    async def login(self, email: str, password: str) -> AuthResponse:
        response = await self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        return self._parse(AuthResponse, response)

    async def logout(self, token: str) -> None:
        await self._request("POST", "/api/auth/logout", token=token)

    async def me(self, token: str | None = None) -> UserPublic:
        response = await self._request("GET", "/api/auth/me", token=token, retry=True)
        return self._parse(UserPublic, response)


class WatchlistAPI(APIClient):
    """Watchlist list/add/remove scoped to the bearer identity."""

    async def list_items(self) -> list[CollectionItem]:
        response = await self._request("GET", "/api/watchlist", retry=True)
        return self._parse(CollectionResponse, response).items

    async def add_item(self, draft: CollectionItemCreate) -> CollectionItem:
        response = await self._request(
            "POST",
            "/api/watchlist",
            json=draft.model_dump(mode="json", by_alias=True),
        )
        return self._parse(CollectionItemResponse, response).item

    async def remove_item(self, key: CollectionKey) -> None:
        await self._request("DELETE", f"/api/watchlist/{key.media_type}/{key.id}")


class FavoriteActorAPI(APIClient):
    """Favorite actor list/add/remove scoped to the bearer identity."""

    async def list_items(self) -> list[FavoriteActor]:
        response = await self._request("GET", "/api/favorites", retry=True)
        return self._parse(FavoriteActorListResponse, response).items

    async def add_item(self, draft: FavoriteActorCreate) -> FavoriteActor:
        response = await self._request(
            "POST",
            "/api/favorites",
            json=draft.model_dump(mode="json", by_alias=True),
        )
        return self._parse(FavoriteActor, response)

    async def remove_item(self, actor_id: int) -> None:
        await self._request("DELETE", f"/api/favorites/{actor_id}")
