import pytest
from pydantic import ValidationError

from cinehub.models import (
    CollectionItem,
    CollectionItemCreate,
    CollectionKey,
    FavoriteActor,
    RegisterRequest,
)


def test_collection_item_accepts_camel_case_payload():
    item = CollectionItem.model_validate(
        {
            "id": 603,
            "mediaType": "movie",
            "title": "  The Matrix ",
            "posterPath": "/matrix.jpg",
            "addedAt": "2024-05-01T12:00:00",
        }
    )

    assert item.key == CollectionKey(603, "movie")
    assert item.title == "The Matrix"
    dumped = item.model_dump(mode="json", by_alias=True)
    assert dumped["mediaType"] == "movie"
    assert dumped["posterPath"] == "/matrix.jpg"


def test_collection_item_rejects_unknown_media_type_and_blank_title():
    with pytest.raises(ValidationError):
        CollectionItemCreate(id=1, media_type="book", title="Dune")
    with pytest.raises(ValidationError):
        CollectionItemCreate(id=1, media_type="movie", title="   ")


def test_favorite_actor_keyed_by_actor_id():
    actor = FavoriteActor.model_validate(
        {"id": 7, "actorId": 31, "name": "Tom Hanks", "addedAt": "2024-05-01T12:00:00"}
    )

    assert actor.key == 31
    assert actor.profile_path is None


def test_register_request_normalises_email():
    request = RegisterRequest(email=" Ada@Example.com ", name="Ada", password="long-enough")

    assert request.email == "ada@example.com"
    with pytest.raises(ValidationError):
        RegisterRequest(email="not-an-email", name="Ada", password="long-enough")
