# src/catalog_repository/sqlite/extensions.py
import logging
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from ..base.utils import NATURAL_SORT_FUNCTION, natural_sort_key
from ..config import get_settings

logger = logging.getLogger(__name__)  # Module-level logger


async def register_sqlite_extensions(connection: aiosqlite.Connection) -> None:
    """Register custom functions and pragmas on a connection."""
    await connection.create_function(
        NATURAL_SORT_FUNCTION, 1, natural_sort_key, deterministic=True
    )
    await connection.execute("PRAGMA foreign_keys = ON;")
    # Write-Ahead Logging lets readers run next to the single writer
    try:
        await connection.execute("PRAGMA journal_mode=WAL;")
    except aiosqlite.Error as e:
        logger.debug(f"Could not set PRAGMA journal_mode=WAL: {e}")


async def connect(
    database: Optional[Union[str, Path]] = None,
) -> aiosqlite.Connection:
    """
    Open a connection ready for the catalog repositories.

    ``database`` defaults to ``CatalogSettings.database_path``. The
    connection runs in autocommit mode; transactions are opened
    explicitly by ``TransactionCoordinator``.
    """
    if database is None:
        database = get_settings().database_path
    conn = await aiosqlite.connect(database, isolation_level=None)
    conn.row_factory = aiosqlite.Row  # Set row factory for dict-like access
    try:
        await register_sqlite_extensions(conn)
    except aiosqlite.Error as e:
        logger.error(
            f"Failed to initialize SQLite connection to {database}: {e}",
            exc_info=True,
        )
        await conn.close()
        raise
    return conn
