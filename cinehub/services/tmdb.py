"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import MediaSummary, SearchResponse

logger = logging.getLogger(__name__)

MOVIE_LISTS = frozenset({"popular", "top_rated", "now_playing", "upcoming"})
TV_LISTS = frozenset({"popular", "top_rated", "on_the_air", "airing_today"})


class TMDBClient:
    """Read-only client for TMDB search, curated lists and detail lookups."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def search(
        self, query: str, *, media_type: str = "movie", page: int = 1
    ) -> SearchResponse:
        """Return one page of search results normalised to :class:`MediaSummary`."""

        query = query.strip()
        if not query:
            return SearchResponse(page=page)

        endpoint = "/search/movie" if media_type == "movie" else "/search/tv"
        params = {
            "query": query,
            "include_adult": "false",
            "language": "en-US",
            "page": page,
            "api_key": self._settings.tmdb_api_key,
        }
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB search for %s (%s) failed: %s", query, media_type, exc)
            return SearchResponse(page=page)
        if response.status_code >= 400:
            logger.warning(
                "TMDB search for %s (%s) failed: %s", query, media_type, response.text
            )
            return SearchResponse(page=page)

        return self._to_page(response.json(), media_type, page)

    async def list_titles(
        self, media_type: str, list_type: str, *, page: int = 1
    ) -> SearchResponse:
        """Return one page of a curated TMDB list such as ``popular``."""

        allowed = MOVIE_LISTS if media_type == "movie" else TV_LISTS
        if list_type not in allowed:
            raise ValueError(f"Unknown {media_type} list: {list_type}")

        endpoint = f"/{'movie' if media_type == 'movie' else 'tv'}/{list_type}"
        params = {
            "language": "en-US",
            "page": page,
            "api_key": self._settings.tmdb_api_key,
        }
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB %s %s list failed: %s", media_type, list_type, exc)
            return SearchResponse(page=page)
        if response.status_code >= 400:
            logger.warning(
                "TMDB %s %s list failed: %s", media_type, list_type, response.text
            )
            return SearchResponse(page=page)
        return self._to_page(response.json(), media_type, page)

    async def details(self, media_type: str, tmdb_id: int) -> MediaSummary | None:
        """Fetch a single movie or TV show, returning ``None`` when unknown."""

        endpoint = f"/{'movie' if media_type == 'movie' else 'tv'}/{tmdb_id}"
        params = {"api_key": self._settings.tmdb_api_key, "language": "en-US"}
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB details fetch failed for %s %s: %s", media_type, tmdb_id, exc)
            return None
        if response.status_code >= 400:
            logger.debug(
                "TMDB details fetch failed for %s %s: %s",
                media_type,
                tmdb_id,
                response.text,
            )
            return None
        return self._to_summary(response.json(), media_type)

    @classmethod
    def _to_page(cls, data: Any, media_type: str, page: int) -> SearchResponse:
        if not isinstance(data, dict):
            return SearchResponse(page=page)
        results = [
            summary
            for candidate in data.get("results", [])
            if (summary := cls._to_summary(candidate, media_type)) is not None
        ]
        return SearchResponse(
            page=int(data.get("page") or page),
            total_pages=int(data.get("total_pages") or 0),
            results=results,
        )

    @classmethod
    def _to_summary(cls, result: dict[str, Any], media_type: str) -> MediaSummary | None:
        if not isinstance(result, dict) or "id" not in result:
            return None
        title = result.get("title") or result.get("name")
        if not title:
            return None
        vote = result.get("vote_average")
        return MediaSummary(
            id=int(result["id"]),
            media_type="movie" if media_type == "movie" else "tv",
            title=str(title),
            overview=result.get("overview") or None,
            poster_path=result.get("poster_path"),
            backdrop_path=result.get("backdrop_path"),
            year=cls._extract_year(result, media_type),
            vote_average=float(vote) if isinstance(vote, (int, float)) else None,
        )

    @staticmethod
    def _extract_year(result: dict[str, Any], media_type: str) -> int | None:
        date_key = "release_date" if media_type == "movie" else "first_air_date"
        date_value = result.get(date_key)
        if not isinstance(date_value, str) or len(date_value) < 4:
            return None
        try:
            return int(date_value[:4])
        except ValueError:
            return None
