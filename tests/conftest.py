# tests/conftest.py
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite
import pytest
import pytest_asyncio

from catalog_repository.base.utils import md5_from_string
from catalog_repository.config import CatalogSettings
from catalog_repository.db_implementations.movie_repository import MovieRepository
from catalog_repository.models.movie import Movie
from catalog_repository.services.movie_service import MovieService
from catalog_repository.sqlite.extensions import connect
from catalog_repository.sqlite.schema import create_schema


# --- Fixtures ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_repo_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest.fixture
def settings():
    """Settings with library defaults, isolated from the environment's .env file."""
    return CatalogSettings(_env_file=None)


@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite database connection for testing."""
    conn = None
    try:
        conn = await connect(":memory:")
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest_asyncio.fixture(scope="function")
async def catalog_db(sqlite_memory_db_conn, logger):
    """An in-memory connection with the catalog schema created."""
    await create_schema(sqlite_memory_db_conn, logger)
    return sqlite_memory_db_conn


@pytest.fixture
def movie_repository(catalog_db, settings):
    return MovieRepository(catalog_db, settings=settings)


@pytest.fixture
def movie_service(movie_repository):
    return MovieService(movie_repository)


# --- Helpers ---


def make_movie(name: str, **fields: Any) -> Movie:
    """A new (unsaved) movie with its checksum derived from the name."""
    return Movie(checksum=md5_from_string(name), name=name, **fields)


async def insert_studio(conn: aiosqlite.Connection, name: str) -> int:
    async with conn.execute('INSERT INTO "studios" ("name") VALUES (?)', (name,)) as cursor:
        return cursor.lastrowid


async def insert_scene(conn: aiosqlite.Connection, title: Optional[str] = None) -> int:
    async with conn.execute('INSERT INTO "scenes" ("title") VALUES (?)', (title,)) as cursor:
        return cursor.lastrowid


async def link_scene(conn: aiosqlite.Connection, movie_id: int, scene_id: int) -> None:
    await conn.execute(
        'INSERT INTO "movies_scenes" ("movie_id", "scene_id") VALUES (?, ?)',
        (movie_id, scene_id),
    )


async def count_rows(conn: aiosqlite.Connection, table: str, where: str = "", params=()) -> int:
    sql = f'SELECT COUNT(*) FROM "{table}"'
    if where:
        sql += f" WHERE {where}"
    async with conn.execute(sql, params) as cursor:
        row = await cursor.fetchone()
    return row[0]


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
