"""
Configuration settings for sqlcmd-pg.

Uses Pydantic Settings to load the standard libpq environment variables
(PGHOST, PGUSER, ...) plus pool, stream, and logging defaults.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="PGHOST")
    db_port: int = Field(5432, alias="PGPORT")
    db_user: str = Field("postgres", alias="PGUSER")
    db_password: str = Field("postgres", alias="PGPASSWORD")
    db_name: str = Field("postgres", alias="PGDATABASE")

    # Pool
    pool_min_size: int = Field(1, alias="POOL_MIN_SIZE")
    pool_max_size: int = Field(10, alias="POOL_MAX_SIZE")
    connect_attempts: int = Field(1, alias="CONNECT_ATTEMPTS")

    # Streaming
    stream_high_water_mark: int = Field(16384, alias="STREAM_HIGH_WATER_MARK")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
