# src/catalog_repository/db_implementations/sqlite_repository.py

import logging
import warnings
from datetime import datetime, timezone
from logging import LoggerAdapter
from typing import (Any, Collection, Dict, Generic, List, Mapping, NoReturn,
                    Optional, Sequence, Tuple, Type, TypeVar)

# --- aiosqlite Driver Import ---
import aiosqlite
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

# --- Framework Imports ---
from catalog_repository.base.assembler import (FindFilter, assemble,
                                               build_pagination, build_sort)
from catalog_repository.base.changeset import Patch
from catalog_repository.base.criteria import (ClauseFragment, MissingTarget,
                                              MultiCriterion, Relation,
                                              build_is_missing_clause,
                                              build_multi_criterion_clause,
                                              build_search_clause,
                                              merge_fragments)
from catalog_repository.base.exceptions import (ConfigurationError,
                                                ConsistencyWarning,
                                                KeyAlreadyExistsError,
                                                NotFoundError,
                                                RepositoryError, StorageError)
from catalog_repository.base.interfaces import CatalogRepository
from catalog_repository.base.query import (Column, QueryFilter, QueryOperator,
                                           SqlParam, bind_params,
                                           compile_expression,
                                           quote_identifier)
from catalog_repository.base.update import compile_set_clause
from catalog_repository.base.utils import prepare_for_storage
from catalog_repository.config import CatalogSettings, get_settings

# --- Type Variables ---
T = TypeVar("T", bound=BaseModel)
F = TypeVar("F")

IS_MISSING_FIELD = "is_missing"


class SqliteRepository(CatalogRepository[T, F], Generic[T, F]):
    """
    SQLite repository for one catalog table, using aiosqlite.

    The repository expects an active `aiosqlite.Connection` (see
    ``sqlite.extensions.connect``) and never commits or rolls back; writes
    that span several tables are grouped by a ``TransactionCoordinator``
    on the same connection.

    Entities are pydantic models whose fields map one to one onto the
    table's columns. Dates and datetimes are stored as ISO 8601 text.

    Filtering is driven by the entity filter's fields:
        - a field holding a ``MultiCriterion`` is matched against the
          relation of the same name;
        - the ``is_missing`` field names a column (or a well-known key in
          ``missing_targets``) that must be NULL.
    """

    # --- Initialization ---
    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        table_name: str,
        entity_type: Type[T],
        primary_key: str = "id",
        name_column: str = "name",
        relations: Optional[Sequence[Relation]] = None,
        search_columns: Optional[Sequence[str]] = None,
        missing_targets: Optional[Mapping[str, MissingTarget]] = None,
        natural_columns: Collection[str] = ("name",),
        sidecar_tables: Optional[Mapping[str, str]] = None,
        settings: Optional[CatalogSettings] = None,
    ):
        """
        Args:
            db_connection: An active aiosqlite.Connection managed externally.
            table_name: The entity table.
            entity_type: The pydantic model for a row.
            primary_key: The INTEGER PRIMARY KEY column.
            name_column: The natural key / display name column.
            relations: Relations the entity filter may reference by name.
            search_columns: Columns matched by ``FindFilter.q``.
            missing_targets: Is-missing keys that don't map to a plain column.
            natural_columns: Columns sorted with the natural-sort function.
            sidecar_tables: Tables keyed by the entity id (table -> key
                column) whose rows are removed on destroy.
            settings: Defaults for page size, sort and hydration policy.
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")
        if not (isinstance(entity_type, type) and issubclass(entity_type, BaseModel)):
            raise TypeError("entity_type must be a pydantic BaseModel subclass")

        self._conn = db_connection
        self._table_name = table_name
        self._entity_type = entity_type
        self._primary_key = primary_key
        self._name_column = name_column
        self._columns: Tuple[str, ...] = tuple(entity_type.model_fields)
        self._relations: Dict[str, Relation] = {r.name: r for r in (relations or ())}
        self._search_columns = [
            Column(table_name, c) for c in (search_columns or (name_column,))
        ]
        self._missing_targets = dict(missing_targets or {})
        self._natural_columns = tuple(natural_columns)
        self._sidecar_tables = dict(sidecar_tables or {})

        settings = settings or get_settings()
        self._default_sort = settings.default_sort
        self._default_per_page = settings.default_per_page
        self._best_effort_hydration = settings.best_effort_hydration

        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{entity_type.__name__}]"
        )
        self._logger.info(
            f"Repository instance created for {entity_type.__name__} using table '{table_name}' "
            f"(PK: '{primary_key}', relations: {sorted(self._relations)})."
        )

    # --- Abstract Property Implementations ---
    @property
    def entity_type(self) -> Type[T]:
        return self._entity_type

    @property
    def primary_key(self) -> str:
        return self._primary_key

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    @property
    def best_effort_hydration(self) -> bool:
        return self._best_effort_hydration

    # --- Low-level statement helpers ---
    async def _fetch_all(
        self, sql: str, params: Sequence[SqlParam], logger: LoggerAdapter, context: str
    ) -> List[aiosqlite.Row]:
        logger.debug(f"Executing SQL: {sql} | Params: {[p.kind.value for p in params]}")
        try:
            async with self._conn.execute(sql, bind_params(params)) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            self._handle_db_error(e, context)

    async def _fetch_one(
        self, sql: str, params: Sequence[SqlParam], logger: LoggerAdapter, context: str
    ) -> Optional[aiosqlite.Row]:
        logger.debug(f"Executing SQL: {sql} | Params: {[p.kind.value for p in params]}")
        try:
            async with self._conn.execute(sql, bind_params(params)) as cursor:
                return await cursor.fetchone()
        except aiosqlite.Error as e:
            self._handle_db_error(e, context)

    async def _execute(
        self, sql: str, params: Sequence[SqlParam], logger: LoggerAdapter, context: str
    ) -> Tuple[int, Optional[int]]:
        """Run a write statement; returns (rowcount, lastrowid)."""
        logger.debug(f"Executing SQL: {sql} | Params: {[p.kind.value for p in params]}")
        try:
            async with self._conn.execute(sql, bind_params(params)) as cursor:
                return cursor.rowcount, cursor.lastrowid
        except aiosqlite.Error as e:
            self._handle_db_error(e, context)

    def _select_sql(self) -> str:
        cols = ", ".join(Column(self._table_name, c).to_sql() for c in self._columns)
        return f"SELECT {cols} FROM {quote_identifier(self._table_name)}"

    # --- Core CRUD Methods ---
    async def create(self, entity: T, logger: LoggerAdapter) -> T:
        """Insert a new row; the primary key and missing timestamps are generated."""
        self.validate_entity(entity)
        db_data = self._serialize_entity(entity)
        if db_data.get(self._primary_key) is None:
            db_data.pop(self._primary_key, None)

        now = datetime.now(timezone.utc).isoformat()
        for stamp in ("created_at", "updated_at"):
            if stamp in self._columns and db_data.get(stamp) is None:
                db_data[stamp] = now

        cols = ", ".join(quote_identifier(k) for k in db_data)
        placeholders = ", ".join(["?"] * len(db_data))
        sql = f"INSERT INTO {quote_identifier(self._table_name)} ({cols}) VALUES ({placeholders})"
        params = [SqlParam.of(v) for v in db_data.values()]

        _, new_id = await self._execute(
            sql, params, logger, f"creating {self._entity_type.__name__}"
        )
        logger.info(
            f"Created {self._entity_type.__name__} with {self._primary_key}={new_id}. "
            f"(Commit handled externally)"
        )
        return await self.get(new_id, logger)

    async def update(self, patch: Patch, logger: LoggerAdapter) -> T:
        update = patch.to_update(self._entity_type)
        if self._primary_key in update:
            raise ConfigurationError(f"The primary key '{self._primary_key}' cannot be patched.")
        set_sql, params = compile_set_clause(update)
        sql = (
            f"UPDATE {quote_identifier(self._table_name)} SET {set_sql} "
            f"WHERE {quote_identifier(self._primary_key)} = ?"
        )
        params.append(SqlParam.of(patch.id))

        rowcount, _ = await self._execute(
            sql, params, logger, f"updating {self._entity_type.__name__} {patch.id}"
        )
        if rowcount == 0:
            logger.warning(f"Update failed: {self._entity_type.__name__} {patch.id} not found.")
            raise NotFoundError(f"{self._entity_type.__name__} with id {patch.id} not found.")
        logger.info(
            f"Updated {self._entity_type.__name__} {patch.id}: fields {update.fields()}"
        )
        return await self.get(patch.id, logger)

    async def update_full(self, entity: T, logger: LoggerAdapter) -> T:
        self.validate_entity(entity)
        entity_id = getattr(entity, self._primary_key, None)
        if entity_id is None:
            raise ConfigurationError(
                f"update_full needs '{self._primary_key}' set on the {self._entity_type.__name__}."
            )
        db_data = self._serialize_entity(entity)
        db_data.pop(self._primary_key, None)

        set_sql = ", ".join(f"{quote_identifier(k)} = ?" for k in db_data)
        sql = (
            f"UPDATE {quote_identifier(self._table_name)} SET {set_sql} "
            f"WHERE {quote_identifier(self._primary_key)} = ?"
        )
        params = [SqlParam.of(v) for v in db_data.values()] + [SqlParam.of(entity_id)]

        rowcount, _ = await self._execute(
            sql, params, logger, f"replacing {self._entity_type.__name__} {entity_id}"
        )
        if rowcount == 0:
            logger.warning(f"Full update failed: {self._entity_type.__name__} {entity_id} not found.")
            raise NotFoundError(f"{self._entity_type.__name__} with id {entity_id} not found.")
        logger.info(f"Replaced {self._entity_type.__name__} {entity_id}.")
        return await self.get(entity_id, logger)

    async def find(self, id: int, logger: LoggerAdapter) -> Optional[T]:
        sql = f"{self._select_sql()} WHERE {quote_identifier(self._primary_key)} = ? LIMIT 1"
        row = await self._fetch_one(
            sql, [SqlParam.of(id)], logger, f"finding {self._entity_type.__name__} {id}"
        )
        if row is None:
            logger.debug(f"{self._entity_type.__name__} with id {id} not found.")
            return None
        return self._deserialize_record(row)

    async def find_by_name(
        self, name: str, logger: LoggerAdapter, nocase: bool = False
    ) -> Optional[T]:
        condition = QueryFilter(
            Column(self._table_name, self._name_column),
            QueryOperator.EQ,
            name,
            collate="NOCASE" if nocase else None,
        )
        where_sql, params = compile_expression(condition)
        sql = f"{self._select_sql()} WHERE {where_sql} LIMIT 1"
        row = await self._fetch_one(sql, params, logger, f"finding by name {name!r}")
        return self._deserialize_record(row) if row is not None else None

    async def find_by_names(
        self, names: Sequence[str], logger: LoggerAdapter, nocase: bool = False
    ) -> List[T]:
        condition = QueryFilter(
            Column(self._table_name, self._name_column),
            QueryOperator.IN,
            list(names),
            collate="NOCASE" if nocase else None,
        )
        where_sql, params = compile_expression(condition)
        sql = f"{self._select_sql()} WHERE {where_sql}"
        rows = await self._fetch_all(sql, params, logger, "finding by names")
        return [self._deserialize_record(r) for r in rows]

    async def count(self, logger: LoggerAdapter) -> int:
        sql = f"SELECT COUNT(*) FROM {quote_identifier(self._table_name)}"
        row = await self._fetch_one(sql, [], logger, f"counting {self._table_name}")
        return row[0]

    async def all(self, logger: LoggerAdapter) -> List[T]:
        """Every row, in the default sort order."""
        sort = build_sort(
            self._table_name,
            None,
            self._columns,
            default_sort=self._default_sort,
            natural_columns=self._natural_columns,
            primary_key=self._primary_key,
        )
        sql = f"{self._select_sql()} {sort.to_sql()}"
        rows = await self._fetch_all(sql, [], logger, f"listing {self._table_name}")
        return [self._deserialize_record(r) for r in rows]

    async def query(
        self,
        entity_filter: Optional[F],
        find_filter: Optional[FindFilter],
        logger: LoggerAdapter,
    ) -> Tuple[List[T], int]:
        find_filter = find_filter or FindFilter()
        fragments = self._filter_fragments(entity_filter)
        fragments.append(
            build_search_clause(self._search_columns, find_filter.q, negate=find_filter.negate_q)
        )
        merged = merge_fragments(fragments)

        sort = build_sort(
            self._table_name,
            find_filter,
            self._columns,
            default_sort=self._default_sort,
            natural_columns=self._natural_columns,
            primary_key=self._primary_key,
        )
        pagination = build_pagination(find_filter, self._default_per_page)
        id_query, count_query = assemble(
            self._table_name,
            merged.joins,
            [merged.where],
            [merged.having],
            sort,
            pagination,
            primary_key=self._primary_key,
        )

        id_rows = await self._fetch_all(
            id_query.sql, id_query.params, logger, f"querying {self._table_name} ids"
        )
        count_row = await self._fetch_one(
            count_query.sql, count_query.params, logger, f"counting {self._table_name} matches"
        )
        total = count_row[0]

        entities: List[T] = []
        for row in id_rows:
            entity_id = row[0]
            entity = await self.find(entity_id, logger)
            if entity is None:
                self._on_hydration_miss(entity_id, logger)
                continue
            entities.append(entity)

        logger.info(
            f"Query on '{self._table_name}' returned {len(entities)} of {total} matching rows."
        )
        return entities, total

    async def destroy(self, id: int, logger: LoggerAdapter) -> None:
        for relation in self._relations.values():
            if relation.is_direct:
                continue
            await self._delete_where(relation.join_table, relation.owner_key, id, logger)
        for table, key in self._sidecar_tables.items():
            await self._delete_where(table, key, id, logger)
        deleted = await self._delete_where(self._table_name, self._primary_key, id, logger)
        logger.info(
            f"Destroyed {self._entity_type.__name__} {id} ({deleted} row(s)). "
            f"(Commit handled externally)"
        )

    # --- Filtering ---
    def _filter_fragments(self, entity_filter: Optional[F]) -> List[ClauseFragment]:
        """One fragment per non-empty criterion of the entity filter."""
        if entity_filter is None:
            return []
        if isinstance(entity_filter, BaseModel):
            names = list(type(entity_filter).model_fields)
        else:
            names = [n for n in vars(entity_filter) if not n.startswith("_")]

        fragments: List[ClauseFragment] = []
        for name in names:
            value = getattr(entity_filter, name)
            if value is None:
                continue
            if name == IS_MISSING_FIELD:
                fragments.append(
                    build_is_missing_clause(
                        self._table_name, value, self._missing_targets, self._columns
                    )
                )
            elif isinstance(value, MultiCriterion):
                fragments.append(
                    build_multi_criterion_clause(
                        self._table_name,
                        self._relations,
                        name,
                        value,
                        primary_key=self._primary_key,
                    )
                )
            else:
                self._logger.debug(f"Ignoring unsupported filter field '{name}'.")
        return fragments

    def _on_hydration_miss(self, entity_id: Any, logger: LoggerAdapter) -> None:
        message = (
            f"{self._entity_type.__name__} {entity_id} matched the filter but could not "
            f"be re-read."
        )
        if not self._best_effort_hydration:
            logger.error(message)
            raise NotFoundError(message)
        logger.warning(f"{message} Skipping it.")
        warnings.warn(message, ConsistencyWarning, stacklevel=3)

    # --- Helpers ---
    async def _delete_where(
        self, table: str, column: str, value: Any, logger: LoggerAdapter
    ) -> int:
        sql = f"DELETE FROM {quote_identifier(table)} WHERE {quote_identifier(column)} = ?"
        rowcount, _ = await self._execute(
            sql, [SqlParam.of(value)], logger, f"deleting from {table} where {column}={value}"
        )
        return rowcount

    def validate_entity(self, entity: T) -> None:
        if not isinstance(entity, self._entity_type):
            raise TypeError(
                f"Expected {self._entity_type.__name__}, got {type(entity).__name__}."
            )

    def _serialize_entity(self, entity: T) -> Dict[str, Any]:
        """Converts the entity into a column -> value dict suitable for SQLite."""
        data = prepare_for_storage(entity)
        if not isinstance(data, dict):
            raise TypeError(
                f"prepare_for_storage did not return a dict for entity: {type(entity).__name__}"
            )
        return {k: v for k, v in data.items() if k in self._columns}

    def _deserialize_record(self, record_data: aiosqlite.Row) -> T:
        """Converts an aiosqlite.Row into an entity; pydantic parses the ISO text columns."""
        try:
            return self._entity_type.model_validate(dict(record_data))
        except PydanticValidationError as e:
            self._logger.error(
                f"Failed to instantiate {self._entity_type.__name__} from DB data: {e}",
                exc_info=True,
            )
            raise StorageError(
                f"Failed to create {self._entity_type.__name__} instance from record"
            ) from e

    def _handle_db_error(self, error: Exception, context: str = "") -> NoReturn:
        """Maps driver errors to repository exceptions. Always raises."""
        if isinstance(error, RepositoryError):
            raise error
        self._logger.error(f"Error during {context}: {error}", exc_info=True)

        if isinstance(error, aiosqlite.IntegrityError) and "UNIQUE constraint failed" in str(error):
            raise KeyAlreadyExistsError(
                f"{self._entity_type.__name__} violates a unique constraint during {context}. "
                f"Detail: {error}"
            ) from error
        if isinstance(error, aiosqlite.Error):
            raise StorageError(
                f"Database error during {context}: {error}"
            ) from error
        raise error
