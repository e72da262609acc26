"""Centralised configuration for the Reviews service.

Values come from environment variables (or a ``.env`` file at the working
directory). ``get_settings()`` caches a single instance per process; tests
build their own ``ReviewsSettings(...)`` instead of touching the cache.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.cache.config import MAX_CACHE_TTL, CacheConfig, clamp_ttl


class ReviewsSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="development", alias="REVIEWS_ENV")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")
    log_dir: str | None = Field(default=None, alias="LOG_DIR")

    # Persistent store
    database_url: str = Field(default="sqlite:///./data/reviews.db", alias="DATABASE_URL")
    store_timeout_seconds: float = Field(default=5.0, gt=0, alias="STORE_TIMEOUT_SECONDS")

    # Key-value store / cache
    cache_backend: str = Field(default="redis", alias="CACHE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    redis_timeout_seconds: float = Field(default=2.0, gt=0, alias="REDIS_TIMEOUT_SECONDS")
    cache_default_ttl: int = Field(default=MAX_CACHE_TTL, alias="CACHE_DEFAULT_TTL")
    cache_prefix: str = Field(default="reviews", alias="CACHE_PREFIX")
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_refresh_threshold: float = Field(default=0.8, gt=0, le=1, alias="CACHE_REFRESH_THRESHOLD")
    cache_scan_batch_size: int = Field(default=500, ge=1, alias="CACHE_SCAN_BATCH_SIZE")

    # Normalization / listing
    normalization_default_rating: float | None = Field(
        default=None, ge=0, le=10, alias="NORMALIZATION_DEFAULT_RATING"
    )
    max_page_limit: int = Field(default=100, ge=1, alias="MAX_PAGE_LIMIT")

    @field_validator("cache_default_ttl")
    @classmethod
    def bound_cache_ttl(cls, value: int) -> int:
        return clamp_ttl(value)

    @field_validator("cache_backend")
    @classmethod
    def known_cache_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("redis", "memory"):
            raise ValueError("CACHE_BACKEND must be 'redis' or 'memory'")
        return value

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            ttl=self.cache_default_ttl,
            key_prefix=self.cache_prefix,
            enabled=self.cache_enabled,
            refresh_threshold=self.cache_refresh_threshold,
            scan_batch_size=self.cache_scan_batch_size,
        )


@lru_cache(maxsize=1)
def get_settings() -> ReviewsSettings:
    return ReviewsSettings()
