import logging
import os
from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_URL_PREFIXES = ("sqlite+aiosqlite://", "sqlite://")
MEMORY_DATABASE = ":memory:"


class ConfigurationError(RuntimeError):
    """Raised when required startup configuration is missing or invalid."""


def sqlite_path_from_url(url: str) -> str:
    """Translate a database URL into a path aiosqlite can open.

    Plain paths and ``:memory:`` pass through unchanged. ``sqlite:///rel.db``
    maps to ``rel.db`` and ``sqlite:////abs/x.db`` to ``/abs/x.db``; a bare
    ``sqlite://`` is an in-memory database.
    """
    for prefix in SQLITE_URL_PREFIXES:
        if url.startswith(prefix):
            rest = url[len(prefix):]
            if rest.startswith("/"):
                rest = rest[1:]
            return rest or MEMORY_DATABASE
    if "://" in url:
        scheme = url.split("://", 1)[0]
        raise ValueError(f"Unsupported database scheme: {scheme}")
    return url


class DatabaseSettings(BaseSettings):
    """Configuration for the database."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DATABASE_", extra="ignore"
    )

    url: str = Field(..., description="Database connection string (DATABASE_URL)")
    pool_size: int = Field(5, ge=1, description="Number of pooled connections")
    pool_timeout: float = Field(30.0, gt=0, description="Seconds to wait for a free connection")

    @field_validator("url")
    @classmethod
    def url_must_be_sqlite(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("DATABASE_URL must not be empty")
        sqlite_path_from_url(v)
        return v

    @property
    def path(self) -> str:
        """Database path resolved from ``url``."""
        return sqlite_path_from_url(self.url)


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(False, description="Enable debug mode for development")
    log_level: str = Field("INFO", description="Logging level")

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @property
    def log_level_value(self) -> int:
        """Return the numeric value of the log level."""
        return logging.getLevelName(self.log_level.upper())


@lru_cache
def get_settings() -> AppSettings:
    """
    Get application settings.
    If the TEST_MODE environment variable is set, it returns an in-memory
    configuration suitable for testing, otherwise loads the configuration
    from the environment and the .env file.

    Raises ConfigurationError when DATABASE_URL is missing or invalid.
    """
    if os.getenv("TEST_MODE"):
        return AppSettings(
            debug=True,
            log_level="DEBUG",
            db=DatabaseSettings(url=MEMORY_DATABASE),
        )
    try:
        return AppSettings()
    except ValidationError as e:
        missing = [err for err in e.errors() if err["type"] == "missing"]
        if missing:
            raise ConfigurationError("DATABASE_URL environment variable is required") from e
        raise ConfigurationError(f"Invalid DATABASE_URL configuration: {e}") from e
