"""Tests for the synchronization API client."""

from __future__ import annotations

import json

import httpx
import pytest

from cinehub.client.api import AccountAPI, FavoriteActorAPI, WatchlistAPI
from cinehub.client.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RequestRejectedError,
)
from cinehub.models import CollectionItemCreate, CollectionKey, FavoriteActorCreate

ITEM = {
    "id": 603,
    "mediaType": "movie",
    "title": "The Matrix",
    "posterPath": None,
    "addedAt": "2024-05-01T12:00:00",
}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://api.example.com"
    )


@pytest.mark.anyio("asyncio")
async def test_list_items_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": [ITEM]})

    async with _client(handler) as http_client:
        api = WatchlistAPI(http_client, token_provider=lambda: "secret")
        items = await api.list_items()

    assert [item.key for item in items] == [CollectionKey(603, "movie")]
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].url.path == "/api/watchlist"


@pytest.mark.anyio("asyncio")
async def test_add_item_posts_camel_case_body() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"item": ITEM})

    async with _client(handler) as http_client:
        api = WatchlistAPI(http_client)
        confirmed = await api.add_item(
            CollectionItemCreate(id=603, media_type="movie", title="The Matrix")
        )

    assert bodies == [
        {"id": 603, "mediaType": "movie", "title": "The Matrix", "posterPath": None}
    ]
    assert confirmed.added_at.year == 2024


@pytest.mark.anyio("asyncio")
async def test_remove_item_targets_media_type_and_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with _client(handler) as http_client:
        await WatchlistAPI(http_client).remove_item(CollectionKey(1399, "tv"))

    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/api/watchlist/tv/1399"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
        (409, ConflictError),
        (400, RequestRejectedError),
        (500, NetworkError),
    ],
)
async def test_error_statuses_map_to_sync_errors(status: int, error_type: type) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"detail": "Nope"})

    async with _client(handler) as http_client:
        api = WatchlistAPI(http_client)
        with pytest.raises(error_type) as excinfo:
            await api.add_item(CollectionItemCreate(id=1, media_type="movie", title="A"))

    assert excinfo.value.message == "Nope"
    assert excinfo.value.status_code == status


@pytest.mark.anyio("asyncio")
async def test_reads_retry_transient_failures() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("connection refused", request=request)
        if attempts == 2:
            return httpx.Response(503, json={"message": "busy"})
        return httpx.Response(200, json={"items": []})

    async with _client(handler) as http_client:
        api = WatchlistAPI(http_client, max_retries=2, retry_delay=0)
        assert await api.list_items() == []

    assert attempts == 3


@pytest.mark.anyio("asyncio")
async def test_reads_give_up_after_retry_limit() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as http_client:
        api = FavoriteActorAPI(http_client, max_retries=1, retry_delay=0)
        with pytest.raises(NetworkError):
            await api.list_items()

    assert attempts == 2


@pytest.mark.anyio("asyncio")
async def test_mutations_are_not_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(502)

    async with _client(handler) as http_client:
        api = FavoriteActorAPI(http_client, max_retries=3, retry_delay=0)
        with pytest.raises(NetworkError):
            await api.add_item(FavoriteActorCreate(actor_id=31, name="Tom Hanks"))

    assert attempts == 1


@pytest.mark.anyio("asyncio")
async def test_unexpected_payload_is_a_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [{"id": "nope"}]})

    async with _client(handler) as http_client:
        with pytest.raises(NetworkError, match="Unexpected response payload"):
            await WatchlistAPI(http_client).list_items()


@pytest.mark.anyio("asyncio")
async def test_login_uses_explicit_token_for_logout() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/api/auth/login":
            return httpx.Response(
                200,
                json={
                    "user": {
                        "id": 7,
                        "email": "ada@example.com",
                        "name": "Ada",
                        "createdAt": "2024-05-01T12:00:00",
                    },
                    "token": "tok-7",
                },
            )
        return httpx.Response(204)

    async with _client(handler) as http_client:
        api = AccountAPI(http_client)
        response = await api.login("ada@example.com", "correct-horse")
        await api.logout(response.token)

    assert response.user.id == 7
    assert seen[1].headers["Authorization"] == "Bearer tok-7"
