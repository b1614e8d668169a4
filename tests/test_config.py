# tests/test_config.py

import logging

import pytest
from pydantic import ValidationError

import catalog_repository
from catalog_repository.config import CatalogSettings, get_settings
from catalog_repository.sqlite.extensions import connect


def test_defaults():
    settings = CatalogSettings(_env_file=None)
    assert settings.database_path == "catalog.sqlite"
    assert settings.default_per_page == 25
    assert settings.default_sort == "name"
    assert settings.best_effort_hydration is True
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CATALOG_DEFAULT_PER_PAGE", "50")
    monkeypatch.setenv("CATALOG_BEST_EFFORT_HYDRATION", "false")
    monkeypatch.setenv("CATALOG_LOG_LEVEL", "debug")
    settings = CatalogSettings(_env_file=None)
    assert settings.default_per_page == 50
    assert settings.best_effort_hydration is False
    assert settings.log_level == "DEBUG"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        CatalogSettings(_env_file=None, default_per_page=0)
    with pytest.raises(ValidationError):
        CatalogSettings(_env_file=None, log_level="chatty")


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_package_logger_is_silent_by_default():
    assert any(isinstance(h, logging.NullHandler) for h in catalog_repository.logger.handlers)
    assert catalog_repository.logger.propagate is False


def test_configure_logging_applies_level():
    handler = logging.NullHandler()
    try:
        catalog_repository.configure_logging(
            CatalogSettings(_env_file=None, log_level="WARNING"), handler
        )
        assert catalog_repository.logger.level == logging.WARNING
        assert handler in catalog_repository.logger.handlers
    finally:
        catalog_repository.logger.removeHandler(handler)
        catalog_repository.logger.setLevel(logging.NOTSET)


async def test_connect_defaults_to_configured_database_path(monkeypatch, tmp_path):
    db_file = tmp_path / "catalog.sqlite"
    monkeypatch.setenv("CATALOG_DATABASE_PATH", str(db_file))
    get_settings.cache_clear()
    try:
        conn = await connect()
        try:
            await conn.execute('CREATE TABLE "marker" ("id" INTEGER)')
        finally:
            await conn.close()
    finally:
        get_settings.cache_clear()
    assert db_file.exists()
