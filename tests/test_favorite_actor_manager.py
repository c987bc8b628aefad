"""Behaviour of the favorite actor mirror."""

from __future__ import annotations

import asyncio

import pytest

from cinehub.client.errors import NetworkError, RequestRejectedError
from cinehub.client.state import FavoriteActorManager
from fakes import actor, actor_draft, favorites_api


async def _signed_in(*actors):
    api = favorites_api()
    api.owner = "u1"
    api.seed("u1", *actors)
    manager = FavoriteActorManager(api)
    manager.set_owner("u1")
    await manager.wait_idle()
    return api, manager


@pytest.mark.anyio("asyncio")
async def test_add_stores_server_confirmed_row() -> None:
    api, manager = await _signed_in()

    assert await manager.add(actor_draft(31)) is True

    [stored] = manager.actors
    assert stored.actor_id == 31
    assert stored.id == 1001
    assert manager.is_favorite(31)


@pytest.mark.anyio("asyncio")
async def test_add_failure_leaves_favorites_unchanged() -> None:
    api, manager = await _signed_in(actor(5))
    api.fail("add", RequestRejectedError("name must not be blank", status_code=400))

    assert await manager.add(actor_draft(31)) is False

    assert [item.actor_id for item in manager.actors] == [5]
    assert manager.error == "name must not be blank"


@pytest.mark.anyio("asyncio")
async def test_remove_is_optimistic_and_rolls_back() -> None:
    api, manager = await _signed_in(actor(5), actor(6))
    api.fail("remove", NetworkError("boom"))
    gate = api.hold("remove")

    task = asyncio.create_task(manager.remove(5))
    await asyncio.sleep(0)
    assert [item.actor_id for item in manager.actors] == [6]

    gate.set()
    assert await task is False
    assert [item.actor_id for item in manager.actors] == [5, 6]
    assert manager.error == "Failed to remove from favorites"


@pytest.mark.anyio("asyncio")
async def test_remove_missing_actor_counts_as_success() -> None:
    api, manager = await _signed_in(actor(5))
    api.data["u1"].clear()

    assert await manager.remove("5") is True

    assert manager.actors == []
    assert manager.error is None


@pytest.mark.anyio("asyncio")
async def test_fetch_failure_message_names_favorites() -> None:
    api, manager = await _signed_in(actor(5))
    api.fail("list", NetworkError("boom"))

    await manager.fetch_all()

    assert manager.error == "Failed to fetch favorites"
    assert len(manager.actors) == 1
