from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from library_api.db.session import is_memory_database
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

# library_api/core/config.py -> BASE_DIR == repository root
BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # Environment
    env: str = Field(default="dev", validation_alias="ENV")

    # Application
    api_name: str = Field(default="library-api", validation_alias="API_NAME")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if v is None:
            return "INFO"
        s = str(v).strip().upper()
        if s not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {v!r}")
        return s

    # Store
    database_url: str = Field(
        default="sqlite+pysqlite:///./data/books.db",
        validation_alias="DATABASE_URL",
    )
    db_busy_timeout_secs: float = Field(
        default=5.0, ge=0, validation_alias="DB_BUSY_TIMEOUT_SECS"
    )
    # None -> the scripts shipped in library_api/db/migrations
    migrations_dir: Path | None = Field(default=None, validation_alias="MIGRATIONS_DIR")

    @field_validator("database_url")
    @classmethod
    def require_sqlite(cls, v: str) -> str:
        try:
            url = make_url(v)
        except ArgumentError as exc:
            raise ValueError(f"DATABASE_URL is not a valid URL: {exc}") from exc
        if url.get_backend_name() != "sqlite":
            raise ValueError("DATABASE_URL must point at a SQLite database")
        # Requests run on a thread pool; an in-memory store is one connection.
        if is_memory_database(url):
            raise ValueError("DATABASE_URL must point at a SQLite file, not an in-memory database")
        return v

    # Rate limiting
    redis_url: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )
    rate_limit_enabled: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
    rate_limit_window_seconds: int = Field(
        default=900, ge=1, validation_alias="RATE_LIMIT_WINDOW_SECONDS"
    )
    rate_limit_max_requests: int = Field(
        default=100, ge=1, validation_alias="RATE_LIMIT_MAX_REQUESTS"
    )

    # OpenTelemetry
    otel_enabled: bool = Field(default=False, validation_alias="OTEL_ENABLED")
    otel_otlp_endpoint: str = Field(
        default="http://localhost:4318/v1/traces",
        validation_alias="OTEL_OTLP_ENDPOINT",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
