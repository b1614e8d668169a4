# src/catalog_repository/sqlite/schema.py
import logging
from logging import LoggerAdapter

import aiosqlite

from ..base.exceptions import StorageError

logger = logging.getLogger(__name__)

CATALOG_TABLES = ("studios", "scenes", "movies", "movies_scenes", "movies_images")

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS "studios" (
        "id" INTEGER PRIMARY KEY AUTOINCREMENT,
        "name" TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS "scenes" (
        "id" INTEGER PRIMARY KEY AUTOINCREMENT,
        "title" TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS "movies" (
        "id" INTEGER PRIMARY KEY AUTOINCREMENT,
        "checksum" TEXT NOT NULL,
        "name" TEXT NOT NULL,
        "aliases" TEXT,
        "duration" INTEGER,
        "date" TEXT,
        "rating" INTEGER,
        "studio_id" INTEGER REFERENCES "studios"("id") ON DELETE SET NULL,
        "director" TEXT,
        "synopsis" TEXT,
        "url" TEXT,
        "created_at" TEXT NOT NULL,
        "updated_at" TEXT NOT NULL
    )
    """,
    'CREATE UNIQUE INDEX IF NOT EXISTS "index_movies_on_checksum" ON "movies"("checksum")',
    'CREATE UNIQUE INDEX IF NOT EXISTS "index_movies_on_name_unique" ON "movies"("name" COLLATE NOCASE)',
    'CREATE INDEX IF NOT EXISTS "index_movies_on_studio_id" ON "movies"("studio_id")',
    """
    CREATE TABLE IF NOT EXISTS "movies_scenes" (
        "movie_id" INTEGER NOT NULL REFERENCES "movies"("id") ON DELETE CASCADE,
        "scene_id" INTEGER NOT NULL REFERENCES "scenes"("id") ON DELETE CASCADE,
        "scene_index" INTEGER
    )
    """,
    'CREATE INDEX IF NOT EXISTS "index_movies_scenes_on_movie_id" ON "movies_scenes"("movie_id")',
    'CREATE INDEX IF NOT EXISTS "index_movies_scenes_on_scene_id" ON "movies_scenes"("scene_id")',
    """
    CREATE TABLE IF NOT EXISTS "movies_images" (
        "movie_id" INTEGER PRIMARY KEY REFERENCES "movies"("id") ON DELETE CASCADE,
        "front_image" BLOB,
        "back_image" BLOB
    )
    """,
)


async def create_schema(conn: aiosqlite.Connection, log: LoggerAdapter) -> None:
    """Create the catalog tables and indexes if they don't exist. Idempotent."""
    log.info("Attempting to create catalog schema...")
    try:
        for statement in _SCHEMA_STATEMENTS:
            log.debug(f"Schema creation SQL: {' '.join(statement.split())}")
            await conn.execute(statement)
    except aiosqlite.Error as e:
        log.error(f"Failed to create catalog schema: {e}", exc_info=True)
        raise StorageError(f"Failed to create catalog schema: {e}") from e
    log.info("Schema creation/verification complete.")


async def check_schema(conn: aiosqlite.Connection, log: LoggerAdapter) -> bool:
    """Check that every catalog table exists. Non-destructive."""
    log.info("Checking catalog schema...")
    try:
        async with conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            existing = {row[0] for row in await cursor.fetchall()}
    except aiosqlite.Error as e:
        log.error(f"Error during schema check: {e}", exc_info=True)
        raise StorageError(f"Error during schema check: {e}") from e

    missing = [t for t in CATALOG_TABLES if t not in existing]
    if missing:
        log.warning(f"Schema check FAILED: missing tables {missing}.")
        return False
    log.info("Schema check PASSED.")
    return True
