"""Pydantic models shared by the API routes and the sync client."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MediaType = Literal["movie", "tv"]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _clean_email(value: str) -> str:
    cleaned = value.strip().lower()
    if not EMAIL_RE.match(cleaned):
        raise ValueError("A valid email address is required")
    return cleaned


class CollectionKey(NamedTuple):
    """Identity of a catalog reference within a user's collection."""

    id: int
    media_type: str


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CollectionItemCreate(CamelModel):
    """Body accepted when adding a title to the watchlist."""

    id: int = Field(gt=0)
    media_type: MediaType
    title: str = Field(min_length=1, max_length=255)
    poster_path: str | None = Field(default=None, max_length=255)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title must not be blank")
        return cleaned

    @property
    def key(self) -> CollectionKey:
        return CollectionKey(self.id, self.media_type)


class CollectionItem(CollectionItemCreate):
    """A watchlist entry as confirmed by the server."""

    added_at: datetime


class CollectionResponse(CamelModel):
    items: list[CollectionItem] = Field(default_factory=list)


class CollectionItemResponse(CamelModel):
    item: CollectionItem


class FavoriteActorCreate(CamelModel):
    """Body accepted when favoriting a person."""

    actor_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=255)
    profile_path: str | None = Field(default=None, max_length=255)

    @property
    def key(self) -> int:
        return self.actor_id


class FavoriteActor(FavoriteActorCreate):
    """A favorited person row; ``id`` is assigned by the server."""

    id: int
    added_at: datetime


class FavoriteActorListResponse(CamelModel):
    items: list[FavoriteActor] = Field(default_factory=list)


class WatchHistoryCreate(CamelModel):
    id: int = Field(gt=0)
    media_type: MediaType
    title: str = Field(min_length=1, max_length=255)
    poster_path: str | None = Field(default=None, max_length=255)
    season_number: int | None = Field(default=None, ge=1)
    episode_number: int | None = Field(default=None, ge=1)


class WatchHistoryItem(WatchHistoryCreate):
    history_id: int
    watched_at: datetime


class WatchHistoryUpdate(CamelModel):
    watched_at: datetime


class WatchHistoryResponse(CamelModel):
    items: list[WatchHistoryItem] = Field(default_factory=list)


class RatingCreate(CamelModel):
    id: int = Field(gt=0)
    media_type: MediaType
    rating: int = Field(ge=1, le=5)
    review: str | None = Field(default=None, max_length=5_000)


class Rating(RatingCreate):
    created_at: datetime
    updated_at: datetime


class Review(CamelModel):
    """Public review shown on a title's detail page."""

    author_name: str
    rating: int
    review: str
    created_at: datetime
    updated_at: datetime


class ReviewListResponse(CamelModel):
    reviews: list[Review] = Field(default_factory=list)


class UserPublic(CamelModel):
    id: int
    email: str
    name: str
    role: str = "user"
    created_at: datetime


class RegisterRequest(CamelModel):
    email: str = Field(max_length=255)
    name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _clean_email(value)


class ProfileUpdate(CamelModel):
    """Partial update of the signed-in user's name and email."""

    name: str | None = Field(default=None, min_length=1, max_length=120)
    email: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _clean_email(value)

    @model_validator(mode="after")
    def _require_change(self) -> "ProfileUpdate":
        if self.name is None and self.email is None:
            raise ValueError("Name or email is required")
        return self


class PasswordChange(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def _check_strength(cls, value: str) -> str:
        if not any(char.isupper() for char in value):
            raise ValueError("New password must contain at least one uppercase letter")
        if not any(char.isdigit() for char in value):
            raise ValueError("New password must contain at least one number")
        return value

    @model_validator(mode="after")
    def _check_confirmation(self) -> "PasswordChange":
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirm password do not match")
        return self


class MessageResponse(CamelModel):
    message: str


class LoginRequest(CamelModel):
    email: str
    password: str


class AuthResponse(CamelModel):
    user: UserPublic
    token: str


class MediaSummary(CamelModel):
    """Normalised view of a metadata provider movie or TV record."""

    id: int
    media_type: MediaType
    title: str
    overview: str | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    year: int | None = None
    vote_average: float | None = None


class SearchResponse(CamelModel):
    page: int = 1
    total_pages: int = 0
    results: list[MediaSummary] = Field(default_factory=list)
