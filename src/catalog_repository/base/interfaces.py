# src/catalog_repository/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from catalog_repository.base.assembler import FindFilter
from catalog_repository.base.changeset import Patch
from catalog_repository.base.exceptions import NotFoundError

# Type variable for the entity and its filter type
T = TypeVar("T")
F = TypeVar("F")


class CatalogRepository(Generic[T, F], ABC):
    """
    Base repository interface for cataloged entities.

    Writes (create, update, update_full, destroy) expect to run inside a
    transaction owned by a ``TransactionCoordinator`` on the same connection;
    reads can run anywhere.
    """

    @property
    @abstractmethod
    def entity_type(self) -> Type[T]:
        """The entity type this repository manages."""
        pass

    @property
    @abstractmethod
    def primary_key(self) -> str:
        """The primary key column of the entity table."""
        pass

    # --- Core CRUD Methods ---

    @abstractmethod
    async def create(self, entity: T, logger: LoggerAdapter) -> T:
        """
        Insert a new entity and return it as stored.

        Raises:
            KeyAlreadyExistsError: If a unique column already holds the same value.
            StorageError: If the storage engine rejects the insert.
        """
        pass

    @abstractmethod
    async def update(self, patch: Patch, logger: LoggerAdapter) -> T:
        """
        Apply a partial update and return the row as stored afterwards.

        Only the fields present in the patch are written.

        Raises:
            NotFoundError: If no row has the patch's id.
        """
        pass

    @abstractmethod
    async def update_full(self, entity: T, logger: LoggerAdapter) -> T:
        """
        Overwrite every column of an existing row.

        Raises:
            NotFoundError: If no row has the entity's id.
        """
        pass

    @abstractmethod
    async def find(self, id: int, logger: LoggerAdapter) -> Optional[T]:
        """Return the entity with this id, or None."""
        pass

    @abstractmethod
    async def find_by_name(
        self, name: str, logger: LoggerAdapter, nocase: bool = False
    ) -> Optional[T]:
        """Return the entity whose natural key equals ``name``, or None."""
        pass

    @abstractmethod
    async def query(
        self,
        entity_filter: Optional[F],
        find_filter: Optional[FindFilter],
        logger: LoggerAdapter,
    ) -> Tuple[List[T], int]:
        """
        Filter, sort and paginate.

        Returns:
            The entities of the requested page, in sort order, and the total
            number of entities matching the filter.
        """
        pass

    @abstractmethod
    async def destroy(self, id: int, logger: LoggerAdapter) -> None:
        """Remove the entity and every join-table row referencing it."""
        pass

    @abstractmethod
    async def count(self, logger: LoggerAdapter) -> int:
        pass

    # --- Helper Methods ---

    async def get(self, id: int, logger: LoggerAdapter) -> T:
        """
        Like ``find``, but a missing row is an error.

        Raises:
            NotFoundError: If no entity has this id.
        """
        entity = await self.find(id, logger)
        if entity is None:
            logger.warning(f"{self.entity_type.__name__} with id {id} not found.")
            raise NotFoundError(f"{self.entity_type.__name__} with id {id} not found.")
        return entity

    async def find_many(self, ids: Sequence[int], logger: LoggerAdapter) -> List[T]:
        """
        Fetch entities one id at a time, in the order given.

        Raises:
            NotFoundError: On the first id that has no row; later ids are not read.
        """
        entities = []
        for id in ids:
            entities.append(await self.get(id, logger))
        return entities
