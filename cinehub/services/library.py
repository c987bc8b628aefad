"""Watch history and rating persistence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import RatingEntry, User, WatchHistoryEntry
from ..models import (
    Rating,
    RatingCreate,
    Review,
    WatchHistoryCreate,
    WatchHistoryItem,
)
from ..utils import utcnow

logger = logging.getLogger(__name__)


class WatchHistoryService:
    """Keeps one row per watched movie or episode, refreshed on re-watch."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_entries(self, user_id: int, *, limit: int = 100) -> list[WatchHistoryItem]:
        async with self._session_factory() as session:
            stmt = (
                select(WatchHistoryEntry)
                .where(WatchHistoryEntry.user_id == user_id)
                .order_by(WatchHistoryEntry.watched_at.desc(), WatchHistoryEntry.id.desc())
                .limit(limit)
            )
            rows = (await session.scalars(stmt)).all()
            return [self._to_item(row) for row in rows]

    async def record(self, user_id: int, payload: WatchHistoryCreate) -> WatchHistoryItem:
        """Insert a viewing or refresh ``watched_at`` of an existing one."""

        if payload.media_type == "movie" and (
            payload.season_number is not None or payload.episode_number is not None
        ):
            raise ValueError("Movies cannot carry season or episode numbers")
        if (payload.season_number is None) != (payload.episode_number is None):
            raise ValueError("Season and episode numbers must be provided together")

        season = payload.season_number or 0
        episode = payload.episode_number or 0
        now = utcnow()
        async with self._session_factory() as session:
            row = await self._find(session, user_id, payload, season, episode)
            if row is None:
                row = WatchHistoryEntry(
                    user_id=user_id,
                    external_id=payload.id,
                    media_type=payload.media_type,
                    season_number=season,
                    episode_number=episode,
                )
                session.add(row)
            self._refresh(row, payload, now)
            try:
                await session.commit()
            except IntegrityError:
                # Another request inserted the same viewing after our lookup.
                await session.rollback()
                row = await self._find(session, user_id, payload, season, episode)
                if row is None:
                    raise
                logger.info("Concurrent history insert for user %s; updating instead", user_id)
                self._refresh(row, payload, now)
                await session.commit()
            return self._to_item(row)

    async def update_watched_at(
        self, user_id: int, history_id: int, watched_at: datetime
    ) -> WatchHistoryItem:
        async with self._session_factory() as session:
            row = await session.get(WatchHistoryEntry, history_id)
            if row is None or row.user_id != user_id:
                raise KeyError("History record not found")
            if watched_at.tzinfo is not None:
                watched_at = watched_at.astimezone(timezone.utc).replace(tzinfo=None)
            row.watched_at = watched_at
            await session.commit()
            return self._to_item(row)

    async def delete(self, user_id: int, history_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WatchHistoryEntry).where(
                    WatchHistoryEntry.id == history_id,
                    WatchHistoryEntry.user_id == user_id,
                )
            )
            await session.commit()
        if not result.rowcount:
            raise KeyError("History record not found")

    async def _find(
        self,
        session: AsyncSession,
        user_id: int,
        payload: WatchHistoryCreate,
        season: int,
        episode: int,
    ) -> WatchHistoryEntry | None:
        return await session.scalar(
            select(WatchHistoryEntry).where(
                WatchHistoryEntry.user_id == user_id,
                WatchHistoryEntry.external_id == payload.id,
                WatchHistoryEntry.media_type == payload.media_type,
                WatchHistoryEntry.season_number == season,
                WatchHistoryEntry.episode_number == episode,
            )
        )

    @staticmethod
    def _refresh(row: WatchHistoryEntry, payload: WatchHistoryCreate, now: datetime) -> None:
        row.title = payload.title
        row.poster_path = payload.poster_path
        row.watched_at = now

    @staticmethod
    def _to_item(row: WatchHistoryEntry) -> WatchHistoryItem:
        return WatchHistoryItem(
            history_id=row.id,
            id=row.external_id,
            media_type=row.media_type,
            title=row.title,
            poster_path=row.poster_path,
            season_number=row.season_number or None,
            episode_number=row.episode_number or None,
            watched_at=row.watched_at,
        )


class RatingService:
    """Stores one rating (and optional review) per user and title."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_rating(
        self, user_id: int, media_type: str, external_id: int
    ) -> Rating | None:
        async with self._session_factory() as session:
            row = await self._find(session, user_id, media_type, external_id)
            return self._to_rating(row) if row is not None else None

    async def upsert_rating(self, user_id: int, payload: RatingCreate) -> Rating:
        review = (payload.review or "").strip() or None
        now = utcnow()
        async with self._session_factory() as session:
            row = await self._find(session, user_id, payload.media_type, payload.id)
            if row is None:
                row = RatingEntry(
                    user_id=user_id,
                    external_id=payload.id,
                    media_type=payload.media_type,
                    created_at=now,
                )
                session.add(row)
            row.rating = payload.rating
            row.review = review
            row.updated_at = now
            try:
                await session.commit()
            except IntegrityError:
                # Another request rated the same title after our lookup.
                await session.rollback()
                row = await self._find(session, user_id, payload.media_type, payload.id)
                if row is None:
                    raise
                row.rating = payload.rating
                row.review = review
                row.updated_at = now
                await session.commit()
            logger.info(
                "User %s rated %s %s with %s",
                user_id,
                payload.media_type,
                payload.id,
                payload.rating,
            )
            return self._to_rating(row)

    async def delete_rating(self, user_id: int, media_type: str, external_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(RatingEntry).where(
                    RatingEntry.user_id == user_id,
                    RatingEntry.media_type == media_type,
                    RatingEntry.external_id == external_id,
                )
            )
            await session.commit()
        if not result.rowcount:
            raise KeyError("Rating not found")

    async def list_reviews(self, media_type: str, external_id: int) -> list[Review]:
        async with self._session_factory() as session:
            stmt = (
                select(RatingEntry, User.name)
                .join(User, User.id == RatingEntry.user_id)
                .where(
                    RatingEntry.media_type == media_type,
                    RatingEntry.external_id == external_id,
                    RatingEntry.review.is_not(None),
                )
                .order_by(RatingEntry.created_at.desc(), RatingEntry.id.desc())
            )
            rows = (await session.execute(stmt)).all()
            return [
                Review(
                    author_name=name,
                    rating=entry.rating,
                    review=entry.review or "",
                    created_at=entry.created_at,
                    updated_at=entry.updated_at,
                )
                for entry, name in rows
            ]

    async def _find(
        self, session: AsyncSession, user_id: int, media_type: str, external_id: int
    ) -> RatingEntry | None:
        return await session.scalar(
            select(RatingEntry).where(
                RatingEntry.user_id == user_id,
                RatingEntry.media_type == media_type,
                RatingEntry.external_id == external_id,
            )
        )

    @staticmethod
    def _to_rating(row: RatingEntry) -> Rating:
        return Rating(
            id=row.external_id,
            media_type=row.media_type,
            rating=row.rating,
            review=row.review,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
