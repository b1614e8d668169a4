# src/catalog_repository/base/assembler.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Collection, Dict, List, Optional, Sequence, Tuple

from .criteria import Join
from .exceptions import ConfigurationError
from .query import (
    Column,
    CompiledQuery,
    QueryExpression,
    SqlParam,
    and_,
    compile_expression,
    quote_identifier,
)
from .utils import NATURAL_SORT_FUNCTION

log = logging.getLogger(__name__)

RANDOM_SORT = "random"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass
class FindFilter:
    """
    Free-text search, sort and pagination requested by the caller.

    With ``negate_q`` the search keeps the rows that do *not* contain ``q``.
    """

    q: Optional[str] = None
    page: Optional[int] = None
    per_page: Optional[int] = None
    sort: Optional[str] = None
    direction: Optional[SortDirection] = None
    negate_q: bool = False

    def get_sort(self, default: str) -> str:
        return self.sort if self.sort else default

    def get_direction(self) -> SortDirection:
        if self.direction is None:
            return SortDirection.ASC
        if isinstance(self.direction, SortDirection):
            return self.direction
        try:
            return SortDirection(str(self.direction).upper())
        except ValueError:
            log.debug(f"Unknown sort direction {self.direction!r}, using ASC.")
            return SortDirection.ASC


@dataclass(frozen=True)
class Pagination:
    limit: int
    offset: int

    def to_sql(self) -> Tuple[str, List[SqlParam]]:
        return "LIMIT ? OFFSET ?", [SqlParam.of(self.limit), SqlParam.of(self.offset)]


@dataclass(frozen=True)
class SortClause:
    """
    ORDER BY for the id query. ``column=None`` means random order.

    ``natural`` wraps the column in the natural-sort function for both
    directions. ``tie_breaker`` keeps pages stable when sort values repeat.
    """

    column: Optional[Column]
    direction: SortDirection = SortDirection.ASC
    natural: bool = False
    tie_breaker: Optional[Column] = None

    def to_sql(self) -> str:
        if self.column is None:
            return "ORDER BY RANDOM()"
        expr = self.column.to_sql()
        if self.natural:
            expr = f"{NATURAL_SORT_FUNCTION}({expr})"
        parts = [f"{expr} {self.direction.value}"]
        if self.tie_breaker is not None and self.tie_breaker != self.column:
            parts.append(f"{self.tie_breaker.to_sql()} {self.direction.value}")
        return "ORDER BY " + ", ".join(parts)


def build_pagination(
    find_filter: Optional[FindFilter], default_per_page: int = 25
) -> Optional[Pagination]:
    """
    LIMIT/OFFSET for the requested page, or None for "everything".

    A missing page means page 1 and a missing page size means
    ``default_per_page``; a page or page size <= 0 disables pagination.
    """
    find_filter = find_filter or FindFilter()
    page = find_filter.page if find_filter.page is not None else 1
    per_page = find_filter.per_page if find_filter.per_page is not None else default_per_page
    if page <= 0 or per_page <= 0:
        return None
    return Pagination(limit=per_page, offset=(page - 1) * per_page)


def build_sort(
    table: str,
    find_filter: Optional[FindFilter],
    sortable: Collection[str],
    default_sort: str = "name",
    natural_columns: Collection[str] = ("name",),
    primary_key: str = "id",
) -> SortClause:
    """
    Resolve the caller's sort key against the sortable columns.

    Unknown keys fall back to ``default_sort``; natural columns always sort
    through the natural-sort function.
    """
    if default_sort not in sortable:
        raise ConfigurationError(f"Default sort '{default_sort}' is not a sortable column of '{table}'.")

    find_filter = find_filter or FindFilter()
    sort = find_filter.get_sort(default_sort)
    direction = find_filter.get_direction()

    if sort == RANDOM_SORT:
        return SortClause(column=None, direction=direction)
    if sort not in sortable:
        log.debug(f"Unknown sort key '{sort}' for '{table}', falling back to '{default_sort}'.")
        sort = default_sort

    return SortClause(
        column=Column(table, sort),
        direction=direction,
        natural=sort in natural_columns,
        tie_breaker=Column(table, primary_key),
    )


def _unique_joins(joins: Sequence[Join]) -> List[Join]:
    by_alias: Dict[str, Join] = {}
    for join in joins:
        existing = by_alias.get(join.alias)
        if existing is None:
            by_alias[join.alias] = join
        elif existing != join:
            raise ConfigurationError(
                f"Conflicting joins for alias '{join.alias}': {existing!r} vs {join!r}"
            )
    return list(by_alias.values())


def assemble(
    table: str,
    joins: Sequence[Join],
    where_fragments: Sequence[Optional[QueryExpression]],
    having_fragments: Sequence[Optional[QueryExpression]],
    sort_clause: Optional[SortClause],
    pagination: Optional[Pagination],
    primary_key: str = "id",
) -> Tuple[CompiledQuery, CompiledQuery]:
    """
    Build the id query and the count query for one filter state.

    The id query returns the primary key once per row (grouped by it, since
    joins can multiply rows), sorted and paginated. The count query wraps the
    same grouped selection without sort or pagination.
    """
    pk = Column(table, primary_key).to_sql()
    body = f"SELECT {pk} FROM {quote_identifier(table)}"
    params: List[SqlParam] = []

    for join in _unique_joins(joins):
        body += f" {join.to_sql()}"

    where = and_(*where_fragments)
    if where is not None:
        where_sql, where_params = compile_expression(where)
        body += f" WHERE {where_sql}"
        params.extend(where_params)

    body += f" GROUP BY {pk}"

    having = and_(*having_fragments)
    if having is not None:
        having_sql, having_params = compile_expression(having)
        body += f" HAVING {having_sql}"
        params.extend(having_params)

    count_query = CompiledQuery(f"SELECT COUNT(*) FROM ({body}) AS temp", list(params))

    id_sql = body
    id_params = list(params)
    if sort_clause is not None:
        id_sql += f" {sort_clause.to_sql()}"
    if pagination is not None:
        page_sql, page_params = pagination.to_sql()
        id_sql += f" {page_sql}"
        id_params.extend(page_params)

    log.debug(f"Assembled id query: {id_sql} | count query: {count_query.sql}")
    return CompiledQuery(id_sql, id_params), count_query
