"""Server-side persistence for watchlists and favorite actors.

Both collections follow the same contract consumed by the sync client:

* listing returns the owner's rows newest first;
* adding inserts a row and returns the confirmed record, raising
  :class:`DuplicateEntryError` when the owner already holds the key;
* removing deletes the row, raising :class:`KeyError` when nothing matched.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import FavoriteActorEntry, WatchlistEntry
from ..models import (
    CollectionItem,
    CollectionItemCreate,
    CollectionKey,
    FavoriteActor,
    FavoriteActorCreate,
)
from ..utils import utcnow
from .errors import DuplicateEntryError

logger = logging.getLogger(__name__)


class WatchlistService:
    """Reads and mutates the ``watchlist`` table for one owner at a time."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_items(self, user_id: int) -> list[CollectionItem]:
        async with self._session_factory() as session:
            stmt = (
                select(WatchlistEntry)
                .where(WatchlistEntry.user_id == user_id)
                .order_by(WatchlistEntry.added_at.desc(), WatchlistEntry.id.desc())
            )
            rows = (await session.scalars(stmt)).all()
            return [self._to_item(row) for row in rows]

    async def add_item(
        self, user_id: int, payload: CollectionItemCreate
    ) -> CollectionItem:
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(WatchlistEntry.id).where(
                    WatchlistEntry.user_id == user_id,
                    WatchlistEntry.external_id == payload.id,
                    WatchlistEntry.media_type == payload.media_type,
                )
            )
            if existing is not None:
                raise DuplicateEntryError("Item already in watchlist")

            row = WatchlistEntry(
                user_id=user_id,
                external_id=payload.id,
                media_type=payload.media_type,
                title=payload.title,
                poster_path=payload.poster_path,
                added_at=utcnow(),
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEntryError("Item already in watchlist") from exc
            logger.info(
                "User %s added %s %s to watchlist", user_id, payload.media_type, payload.id
            )
            return self._to_item(row)

    async def remove_item(self, user_id: int, key: CollectionKey) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WatchlistEntry).where(
                    WatchlistEntry.user_id == user_id,
                    WatchlistEntry.external_id == key.id,
                    WatchlistEntry.media_type == key.media_type,
                )
            )
            await session.commit()
        if not result.rowcount:
            raise KeyError(f"{key.media_type} {key.id} is not in the watchlist")

    @staticmethod
    def _to_item(row: WatchlistEntry) -> CollectionItem:
        return CollectionItem(
            id=row.external_id,
            media_type=row.media_type,
            title=row.title,
            poster_path=row.poster_path,
            added_at=row.added_at,
        )


class FavoriteActorService:
    """Reads and mutates the ``favorites`` table of favorited people."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_actors(self, user_id: int) -> list[FavoriteActor]:
        async with self._session_factory() as session:
            stmt = (
                select(FavoriteActorEntry)
                .where(FavoriteActorEntry.user_id == user_id)
                .order_by(
                    FavoriteActorEntry.added_at.desc(), FavoriteActorEntry.id.desc()
                )
            )
            rows = (await session.scalars(stmt)).all()
            return [self._to_actor(row) for row in rows]

    async def add_actor(
        self, user_id: int, payload: FavoriteActorCreate
    ) -> FavoriteActor:
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(FavoriteActorEntry.id).where(
                    FavoriteActorEntry.user_id == user_id,
                    FavoriteActorEntry.actor_id == payload.actor_id,
                )
            )
            if existing is not None:
                raise DuplicateEntryError("Actor already in favorites")

            row = FavoriteActorEntry(
                user_id=user_id,
                actor_id=payload.actor_id,
                name=payload.name.strip(),
                profile_path=payload.profile_path,
                added_at=utcnow(),
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEntryError("Actor already in favorites") from exc
            logger.info("User %s favorited actor %s", user_id, payload.actor_id)
            return self._to_actor(row)

    async def remove_actor(self, user_id: int, actor_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(FavoriteActorEntry).where(
                    FavoriteActorEntry.user_id == user_id,
                    FavoriteActorEntry.actor_id == actor_id,
                )
            )
            await session.commit()
        if not result.rowcount:
            raise KeyError(f"Actor {actor_id} is not in favorites")

    @staticmethod
    def _to_actor(row: FavoriteActorEntry) -> FavoriteActor:
        return FavoriteActor(
            id=row.id,
            actor_id=row.actor_id,
            name=row.name,
            profile_path=row.profile_path,
            added_at=row.added_at,
        )
