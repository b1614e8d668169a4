# src/catalog_repository/base/transaction.py

import asyncio
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

import aiosqlite

from .exceptions import StorageError

R = TypeVar("R")


@dataclass
class _ConnectionState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    owner: Optional["asyncio.Task"] = None


# Shared by every coordinator on the same connection
_STATES: "weakref.WeakKeyDictionary[aiosqlite.Connection, _ConnectionState]" = (
    weakref.WeakKeyDictionary()
)


def _state_for(connection: aiosqlite.Connection) -> _ConnectionState:
    state = _STATES.get(connection)
    if state is None:
        state = _STATES[connection] = _ConnectionState()
    return state


class TransactionCoordinator:
    """
    Owns BEGIN/COMMIT/ROLLBACK for one connection.

    Repositories built on the same connection never commit or roll back on
    their own; every multi-table write runs inside ``transaction()`` (or
    ``run()``), which commits when the block finishes and rolls back on any
    other exit, cancellation included. The exception that caused the
    rollback is re-raised as is.

    Scopes on one connection are serialized across tasks, whichever
    coordinator instance opens them: a task waits until the transaction of
    another task has finished. Repository calls made outside any scope are
    not serialized.

    The connection is expected to be in autocommit mode
    (``isolation_level=None``), as returned by ``sqlite.extensions.connect``.
    """

    def __init__(self, connection: aiosqlite.Connection):
        if not isinstance(connection, aiosqlite.Connection):
            raise TypeError("connection must be an instance of aiosqlite.Connection")
        self._conn = connection
        self._state = _state_for(connection)

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    @asynccontextmanager
    async def transaction(
        self, logger: LoggerAdapter
    ) -> AsyncGenerator[aiosqlite.Connection, None]:
        """
        Run the block in one write transaction.

        A block entered by the task that already holds this connection's
        transaction joins it; the outermost scope decides the outcome.
        Blocks entered by other tasks wait for that transaction to end.
        """
        task = asyncio.current_task()
        if task is not None and self._state.owner is task:
            logger.debug("Joining transaction already open in this task.")
            yield self._conn
            return

        if self._state.lock.locked():
            logger.debug("Waiting for the transaction of another task to finish.")
        async with self._state.lock:
            self._state.owner = task
            try:
                if self._conn.in_transaction:
                    # Opened by hand outside any coordinator; its opener commits
                    logger.debug("Joining transaction opened outside the coordinator.")
                    yield self._conn
                    return
                async with self._scope(logger):
                    yield self._conn
            finally:
                self._state.owner = None

    @asynccontextmanager
    async def _scope(self, logger: LoggerAdapter) -> AsyncGenerator[None, None]:
        try:
            await self._conn.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            logger.error(f"Could not begin transaction: {e}", exc_info=True)
            raise StorageError(f"Could not begin transaction: {e}") from e
        logger.debug("Transaction started.")

        try:
            yield
        except BaseException as e:
            logger.warning(f"Rolling back transaction after {type(e).__name__}: {e}")
            await self._rollback(logger)
            raise

        try:
            await self._conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Commit failed, rolling back: {e}", exc_info=True)
            await self._rollback(logger)
            raise StorageError(f"Could not commit transaction: {e}") from e
        logger.debug("Transaction committed.")

    async def run(
        self,
        fn: Callable[[aiosqlite.Connection], Awaitable[R]],
        logger: LoggerAdapter,
    ) -> R:
        """Await ``fn(connection)`` inside one transaction and return its result."""
        async with self.transaction(logger) as conn:
            return await fn(conn)

    async def _rollback(self, logger: LoggerAdapter) -> None:
        if not self._conn.in_transaction:
            return
        try:
            await self._conn.rollback()
            logger.info("Transaction rolled back.")
        except aiosqlite.Error as e:
            # The caller re-raises the error that triggered the rollback.
            logger.error(f"Rollback failed: {e}", exc_info=True)
