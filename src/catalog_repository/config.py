"""
Library settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class CatalogSettings(BaseSettings):
    """Catalog repository settings; every field can be set as CATALOG_<NAME>."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: str = "catalog.sqlite"

    # Query defaults
    default_per_page: int = Field(default=25, ge=1)
    default_sort: str = "name"

    # Skip (and warn about) ids that vanish between the id query and the
    # re-read; when False the query fails with NotFoundError instead.
    best_effort_hydration: bool = True

    # Level applied to the package logger by configure_logging()
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
        return level


@lru_cache
def get_settings() -> CatalogSettings:
    """Get cached settings instance."""
    return CatalogSettings()
