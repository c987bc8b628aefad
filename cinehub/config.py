"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineHub", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinehub.db", alias="DATABASE_URL"
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )

    session_ttl_seconds: int = Field(
        default=604_800, alias="SESSION_TTL_SECONDS", ge=300
    )
    cors_origins: tuple[str, ...] = Field(default=("*",), alias="CORS_ORIGINS")

    api_base_url: HttpUrl = Field(
        default="http://localhost:3000", alias="API_BASE_URL"
    )
    client_cache_dir: Path | None = Field(default=None, alias="CLIENT_CACHE_DIR")
    client_retry_limit: int = Field(
        default=2, alias="CLIENT_RETRY_LIMIT", ge=0, le=10
    )
    client_timeout_seconds: float = Field(
        default=15.0, alias="CLIENT_TIMEOUT_SECONDS", gt=0
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: object) -> tuple[str, ...]:
        """Normalise allowed origins from environment values."""

        if value is None:
            return ("*",)
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("CORS_ORIGINS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            origin = entry.rstrip("/")
            if not origin:
                continue
            if origin != "*" and not origin.startswith(("http://", "https://")):
                raise ValueError("CORS origins must start with http:// or https://")
            if origin not in cleaned:
                cleaned.append(origin)
        if not cleaned:
            return ("*",)
        return tuple(cleaned)

    @property
    def metadata_enabled(self) -> bool:
        return bool(self.tmdb_api_key)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
