"""Entry point for the CineHub FastAPI application."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .models import (
    AuthResponse,
    CollectionItemCreate,
    CollectionItemResponse,
    CollectionKey,
    CollectionResponse,
    FavoriteActor,
    FavoriteActorCreate,
    FavoriteActorListResponse,
    LoginRequest,
    MediaSummary,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    Rating,
    RatingCreate,
    RegisterRequest,
    ReviewListResponse,
    SearchResponse,
    UserPublic,
    WatchHistoryCreate,
    WatchHistoryItem,
    WatchHistoryResponse,
    WatchHistoryUpdate,
)
from .services.accounts import AccountService
from .services.errors import DuplicateEntryError, InvalidCredentialsError
from .services.library import RatingService, WatchHistoryService
from .services.tmdb import MOVIE_LISTS, TV_LISTS, TMDBClient
from .services.watchlist import FavoriteActorService, WatchlistService
from .utils import parse_bearer_token

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MEDIA_TYPES = {"movie", "tv"}

T = TypeVar("T")

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    database = Database(settings.database_url)
    await database.create_all()

    tmdb: TMDBClient | None = None
    if settings.metadata_enabled:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.tmdb_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        tmdb = TMDBClient(settings, tmdb_http_client)
    else:
        logger.info("TMDB_API_KEY not configured; metadata routes are disabled")

    fastapi_app.state.database = database
    fastapi_app.state.accounts = AccountService(settings, database.session_factory)
    fastapi_app.state.watchlist = WatchlistService(database.session_factory)
    fastapi_app.state.favorites = FavoriteActorService(database.session_factory)
    fastapi_app.state.history = WatchHistoryService(database.session_factory)
    fastapi_app.state.ratings = RatingService(database.session_factory)
    fastapi_app.state.tmdb = tmdb

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and TV catalog with synced watchlists and favorites",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(RequestValidationError)
    async def _validation_error(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"message": message, "errors": jsonable_encoder(errors)},
        )

    @fastapi_app.exception_handler(Exception)
    async def _unhandled(request: Request, _: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    register_routes(fastapi_app)
    return fastapi_app


def _get_state(fastapi_app: FastAPI, name: str, expected: type[T]) -> T:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def _check_media_type(media_type: str) -> str:
    if media_type not in MEDIA_TYPES:
        raise HTTPException(status_code=400, detail="Invalid media type")
    return media_type


def register_routes(fastapi_app: FastAPI) -> None:
    def accounts() -> AccountService:
        return _get_state(fastapi_app, "accounts", AccountService)

    async def _require_user(request: Request) -> UserPublic:
        token = parse_bearer_token(request.headers.get("authorization"))
        if token is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        user = await accounts().resolve_token(token)
        if user is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return user

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # -- accounts -----------------------------------------------------------

    @fastapi_app.post("/api/auth/register", status_code=201, response_model=AuthResponse)
    async def register(payload: RegisterRequest) -> AuthResponse:
        try:
            user, token = await accounts().register(payload)
        except DuplicateEntryError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return AuthResponse(user=user, token=token)

    @fastapi_app.post("/api/auth/login", response_model=AuthResponse)
    async def login(payload: LoginRequest) -> AuthResponse:
        try:
            user, token = await accounts().authenticate(payload.email, payload.password)
        except InvalidCredentialsError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return AuthResponse(user=user, token=token)

    @fastapi_app.post("/api/auth/logout", status_code=204)
    async def logout(request: Request) -> Response:
        token = parse_bearer_token(request.headers.get("authorization"))
        if token is not None:
            await accounts().revoke(token)
        return Response(status_code=204)

    @fastapi_app.get("/api/auth/me", response_model=UserPublic)
    async def me(request: Request) -> UserPublic:
        return await _require_user(request)

    @fastapi_app.put("/api/profile", response_model=UserPublic)
    async def update_profile(request: Request, payload: ProfileUpdate) -> UserPublic:
        user = await _require_user(request)
        try:
            return await accounts().update_profile(user.id, payload)
        except DuplicateEntryError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc

    @fastapi_app.put("/api/profile/password", response_model=MessageResponse)
    async def change_password(request: Request, payload: PasswordChange) -> MessageResponse:
        user = await _require_user(request)
        try:
            await accounts().change_password(
                user.id, payload.current_password, payload.new_password
            )
        except InvalidCredentialsError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        return MessageResponse(message="Password updated successfully")

    # -- watchlist ----------------------------------------------------------

    def watchlist() -> WatchlistService:
        return _get_state(fastapi_app, "watchlist", WatchlistService)

    @fastapi_app.get("/api/watchlist", response_model=CollectionResponse)
    async def list_watchlist(request: Request) -> CollectionResponse:
        user = await _require_user(request)
        items = await watchlist().list_items(user.id)
        return CollectionResponse(items=items)

    @fastapi_app.post(
        "/api/watchlist", status_code=201, response_model=CollectionItemResponse
    )
    async def add_to_watchlist(
        request: Request, payload: CollectionItemCreate
    ) -> CollectionItemResponse:
        user = await _require_user(request)
        try:
            item = await watchlist().add_item(user.id, payload)
        except DuplicateEntryError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return CollectionItemResponse(item=item)

    @fastapi_app.delete("/api/watchlist/{media_type}/{item_id}", status_code=204)
    async def remove_from_watchlist(
        request: Request, media_type: str, item_id: int
    ) -> Response:
        user = await _require_user(request)
        key = CollectionKey(item_id, _check_media_type(media_type))
        try:
            await watchlist().remove_item(user.id, key)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Item not in watchlist") from exc
        return Response(status_code=204)

    # -- favorite actors ----------------------------------------------------

    def favorites() -> FavoriteActorService:
        return _get_state(fastapi_app, "favorites", FavoriteActorService)

    @fastapi_app.get("/api/favorites", response_model=FavoriteActorListResponse)
    async def list_favorites(request: Request) -> FavoriteActorListResponse:
        user = await _require_user(request)
        return FavoriteActorListResponse(items=await favorites().list_actors(user.id))

    @fastapi_app.post("/api/favorites", status_code=201, response_model=FavoriteActor)
    async def add_favorite(request: Request, payload: FavoriteActorCreate) -> FavoriteActor:
        user = await _require_user(request)
        try:
            return await favorites().add_actor(user.id, payload)
        except DuplicateEntryError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @fastapi_app.delete("/api/favorites/{actor_id}", status_code=204)
    async def remove_favorite(request: Request, actor_id: int) -> Response:
        user = await _require_user(request)
        try:
            await favorites().remove_actor(user.id, actor_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Actor not in favorites") from exc
        return Response(status_code=204)

    # -- watch history ------------------------------------------------------

    def history() -> WatchHistoryService:
        return _get_state(fastapi_app, "history", WatchHistoryService)

    @fastapi_app.get("/api/history", response_model=WatchHistoryResponse)
    async def list_history(request: Request) -> WatchHistoryResponse:
        user = await _require_user(request)
        return WatchHistoryResponse(items=await history().list_entries(user.id))

    @fastapi_app.post("/api/history", status_code=201, response_model=WatchHistoryItem)
    async def record_history(
        request: Request, payload: WatchHistoryCreate
    ) -> WatchHistoryItem:
        user = await _require_user(request)
        try:
            return await history().record(user.id, payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @fastapi_app.put("/api/history/{history_id}", response_model=WatchHistoryItem)
    async def update_history(
        request: Request, history_id: int, payload: WatchHistoryUpdate
    ) -> WatchHistoryItem:
        user = await _require_user(request)
        try:
            return await history().update_watched_at(
                user.id, history_id, payload.watched_at
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="History record not found") from exc

    @fastapi_app.delete("/api/history/{history_id}", status_code=204)
    async def delete_history(request: Request, history_id: int) -> Response:
        user = await _require_user(request)
        try:
            await history().delete(user.id, history_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="History record not found") from exc
        return Response(status_code=204)

    # -- ratings and reviews ------------------------------------------------

    def ratings() -> RatingService:
        return _get_state(fastapi_app, "ratings", RatingService)

    @fastapi_app.get("/api/ratings", response_model=Rating | None)
    async def get_rating(
        request: Request,
        media_type: str = Query(alias="mediaType"),
        media_id: int = Query(alias="id"),
    ) -> Rating | None:
        user = await _require_user(request)
        return await ratings().get_rating(user.id, _check_media_type(media_type), media_id)

    @fastapi_app.post("/api/ratings", response_model=Rating)
    async def submit_rating(request: Request, payload: RatingCreate) -> Rating:
        user = await _require_user(request)
        return await ratings().upsert_rating(user.id, payload)

    @fastapi_app.delete("/api/ratings", status_code=204)
    async def delete_rating(
        request: Request,
        media_type: str = Query(alias="mediaType"),
        media_id: int = Query(alias="id"),
    ) -> Response:
        user = await _require_user(request)
        try:
            await ratings().delete_rating(
                user.id, _check_media_type(media_type), media_id
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Rating not found") from exc
        return Response(status_code=204)

    @fastapi_app.get("/api/reviews", response_model=ReviewListResponse)
    async def list_reviews(
        media_type: str = Query(alias="mediaType"),
        media_id: int = Query(alias="id"),
    ) -> ReviewListResponse:
        reviews = await ratings().list_reviews(_check_media_type(media_type), media_id)
        return ReviewListResponse(reviews=reviews)

    # -- metadata -----------------------------------------------------------

    def tmdb() -> TMDBClient:
        client = getattr(fastapi_app.state, "tmdb", None)
        if not isinstance(client, TMDBClient):
            raise HTTPException(status_code=503, detail="Metadata provider is not configured")
        return client

    @fastapi_app.get("/api/search", response_model=SearchResponse)
    async def search(
        query: str,
        media_type: str = Query(default="movie", alias="mediaType"),
        page: int = 1,
    ) -> SearchResponse:
        if page < 1:
            raise HTTPException(status_code=400, detail="page must be positive")
        return await tmdb().search(
            query, media_type=_check_media_type(media_type), page=page
        )

    @fastapi_app.get("/api/movies/{list_type}", response_model=SearchResponse)
    async def movie_list(list_type: str, page: int = 1) -> SearchResponse:
        return await _curated_list("movie", list_type, page)

    @fastapi_app.get("/api/tv", response_model=SearchResponse)
    async def tv_list(
        list_type: str = Query(default="popular", alias="listType"),
        page: int = 1,
    ) -> SearchResponse:
        return await _curated_list("tv", list_type, page)

    async def _curated_list(media_type: str, list_type: str, page: int) -> SearchResponse:
        if page < 1:
            raise HTTPException(status_code=400, detail="page must be positive")
        allowed = MOVIE_LISTS if media_type == "movie" else TV_LISTS
        if list_type not in allowed:
            raise HTTPException(status_code=400, detail="Invalid list type")
        return await tmdb().list_titles(media_type, list_type, page=page)

    @fastapi_app.get("/api/media/{media_type}/{media_id}", response_model=MediaSummary)
    async def media_details(media_type: str, media_id: int) -> MediaSummary:
        summary = await tmdb().details(_check_media_type(media_type), media_id)
        if summary is None:
            raise HTTPException(status_code=404, detail="Title not found")
        return summary


app = create_app()
