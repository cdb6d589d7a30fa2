"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="SeenTrack", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_api_url: str = Field(
        default="https://rickandmortyapi.com/api/", alias="CATALOG_API_URL"
    )
    catalog_timeout_seconds: float = Field(
        default=20.0, alias="CATALOG_TIMEOUT", gt=0, le=300
    )
    catalog_retry_limit: int = Field(
        default=3, alias="CATALOG_RETRY_LIMIT", ge=0, le=10
    )

    batch_concurrency: int = Field(
        default=8, alias="BATCH_CONCURRENCY", ge=1, le=100
    )
    view_cache_size: int = Field(
        default=512, alias="VIEW_CACHE_SIZE", ge=1
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./seentrack.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("catalog_api_url", mode="before")
    @classmethod
    def _normalise_catalog_url(cls, value: object) -> str:
        """Ensure relative endpoint paths resolve below the configured base."""

        if value is None:
            raise ValueError("CATALOG_API_URL must not be empty")
        normalized = str(value).strip()
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("CATALOG_API_URL must be an http(s) URL")
        return normalized.rstrip("/") + "/"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
