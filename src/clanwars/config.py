"""Process configuration for the clan war engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment or a ``.env`` file.

    These are deployment knobs (database, scheduling). Gameplay tunables such as
    cooldowns live in the ``settings`` table and are read through
    :class:`clanwars.services.settings_service.SettingsProvider`.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = Field(default="sqlite:///clanwars.db", description="SQLAlchemy URL")
    DATABASE_ECHO: bool = Field(default=False, description="Log emitted SQL")
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1)
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DATABASE_POOL_RECYCLE: int = Field(default=1800, description="Seconds before recycling")
    DATABASE_POOL_TIMEOUT: int = Field(default=30, ge=1)

    settlement_interval_seconds: float = Field(
        default=300.0,
        description="Seconds between passes of the war settlement job",
        gt=0.0,
    )
    settings_reload_interval_seconds: float = Field(
        default=300.0,
        description="Seconds between reloads of gameplay settings from the database",
        gt=0.0,
    )
    notification_purge_interval_seconds: float = Field(default=86400.0, gt=0.0)
    notification_retention_days: int = Field(default=3, ge=1)
    dispatcher_queue_size: int = Field(
        default=1000,
        description="Maximum pending side-effect jobs before new ones are dropped",
        ge=1,
    )
    transaction_attempts: int = Field(
        default=3,
        description="Attempts for a unit of work that hits a lock or serialization failure",
        ge=1,
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        description="Origins allowed to call the HTTP API",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
