# src/catalog_repository/base/criteria.py
"""
Filter criteria and the clause builder.

Each builder turns one criterion into a ``ClauseFragment``: an optional WHERE
expression, an optional HAVING expression and the LEFT JOINs the expressions
reference. Fragments are plain data; nothing here touches a connection, so an
invalid criterion fails while the query is being built, before any SQL runs.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Collection, List, Mapping, Optional, Sequence, Tuple

from .exceptions import ConfigurationError
from .query import (
    Column,
    CountDistinct,
    QueryExists,
    QueryExpression,
    QueryFilter,
    QueryLogical,
    QueryNot,
    QueryOperator,
    and_,
    compile_expression,
    quote_identifier,
    SqlParam,
)

log = logging.getLogger(__name__)


class CriterionModifier(str, Enum):
    """How the candidate values of a multi criterion are matched."""

    INCLUDES = "INCLUDES"  # has any of
    INCLUDES_ALL = "INCLUDES_ALL"  # has all of
    EXCLUDES = "EXCLUDES"  # has none of


@dataclass
class MultiCriterion:
    """A set of related ids to match against one relation."""

    value: List[int] = field(default_factory=list)
    modifier: CriterionModifier = CriterionModifier.INCLUDES


@dataclass(frozen=True)
class Join:
    """A LEFT JOIN ``table AS alias ON left = right``."""

    table: str
    alias: str
    on: Tuple[Column, Column]

    def to_sql(self) -> str:
        left, right = self.on
        return (
            f"LEFT JOIN {quote_identifier(self.table)} AS {quote_identifier(self.alias)} "
            f"ON {left.to_sql()} = {right.to_sql()}"
        )


@dataclass(frozen=True)
class Relation:
    """
    How a filterable relation is reached from the primary table.

    A direct relation stores ``foreign_key`` on the primary table itself. A
    many-to-many relation goes through ``join_table`` (joined as
    ``join_alias``), whose ``owner_key`` points back at the primary table and
    whose ``foreign_key`` holds the related id.
    """

    name: str
    foreign_key: str
    join_table: Optional[str] = None
    join_alias: Optional[str] = None
    owner_key: Optional[str] = None

    @property
    def is_direct(self) -> bool:
        return self.join_table is None

    def join(self, primary_table: str, primary_key: str = "id") -> Join:
        if self.is_direct:
            raise ConfigurationError(f"Relation '{self.name}' does not use a join table.")
        alias = self.join_alias or self.join_table
        return Join(
            self.join_table,
            alias,
            (Column(alias, self.owner_key), Column(primary_table, primary_key)),
        )


@dataclass(frozen=True)
class MissingTarget:
    """The column that must be NULL for an is-missing key, and the join it lives behind."""

    column: Column
    join: Optional[Join] = None


@dataclass
class ClauseFragment:
    where: Optional[QueryExpression] = None
    having: Optional[QueryExpression] = None
    joins: List[Join] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.where is not None or self.having is not None

    def compile_where(self) -> Tuple[str, List[SqlParam]]:
        if self.where is None:
            return "", []
        return compile_expression(self.where)

    def compile_having(self) -> Tuple[str, List[SqlParam]]:
        if self.having is None:
            return "", []
        return compile_expression(self.having)


def build_multi_criterion_clause(
    primary_table: str,
    relations: Mapping[str, Relation],
    relation_name: str,
    criterion: MultiCriterion,
    primary_key: str = "id",
) -> ClauseFragment:
    """
    Build the clause for a multi-valued relation criterion.

    INCLUDES keeps rows related to any of the values. INCLUDES_ALL also adds
    a HAVING clause requiring one distinct match per value, so the id query
    must be grouped by the primary key. EXCLUDES uses a correlated NOT EXISTS,
    which never needs the join and keeps rows that have no relation at all.

    A many-to-many INCLUDES/INCLUDES_ALL fragment requires the relation's
    join (returned in ``joins``).
    """
    relation = relations.get(relation_name)
    if relation is None:
        raise ConfigurationError(
            f"Unknown relation '{relation_name}' for table '{primary_table}'. "
            f"Known relations: {sorted(relations)}"
        )
    if criterion is None or not criterion.value:
        return ClauseFragment()

    try:
        modifier = CriterionModifier(criterion.modifier)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported modifier {criterion.modifier!r} for relation '{relation_name}'."
        ) from None

    values = list(dict.fromkeys(criterion.value))
    fragment = ClauseFragment()

    if modifier is CriterionModifier.EXCLUDES:
        if relation.is_direct:
            alias = "excluded"
            exists = QueryExists(
                table=primary_table,
                alias=alias,
                correlation=(Column(primary_table, primary_key), Column(alias, primary_key)),
                condition=QueryFilter(Column(alias, relation.foreign_key), QueryOperator.IN, values),
            )
        else:
            alias = f"{relation.join_table}_excluded"
            exists = QueryExists(
                table=relation.join_table,
                alias=alias,
                correlation=(Column(primary_table, primary_key), Column(alias, relation.owner_key)),
                condition=QueryFilter(Column(alias, relation.foreign_key), QueryOperator.IN, values),
            )
        fragment.where = QueryNot(exists)
        return fragment

    if relation.is_direct:
        column = Column(primary_table, relation.foreign_key)
    else:
        join = relation.join(primary_table, primary_key)
        fragment.joins.append(join)
        column = Column(join.alias, relation.foreign_key)

    fragment.where = QueryFilter(column, QueryOperator.IN, values)
    if modifier is CriterionModifier.INCLUDES_ALL:
        fragment.having = QueryFilter(CountDistinct(column), QueryOperator.EQ, len(values))
    return fragment


def build_search_clause(
    columns: Sequence[Column], q: Optional[str], negate: bool = False
) -> ClauseFragment:
    """
    Match ``q`` as a substring of any of ``columns`` (case-insensitive LIKE).

    One LIKE per column, each bound to the same ``%q%`` value. A term wrapped
    in double quotes is matched as a phrase with the quotes removed. With
    ``negate`` the columns must all *not* contain the term.
    """
    if q is None:
        return ClauseFragment()
    term = q.strip()
    if len(term) >= 2 and term.startswith('"') and term.endswith('"'):
        term = term[1:-1]
    if not term:
        return ClauseFragment()
    if not columns:
        raise ConfigurationError("Search requires at least one column.")

    pattern = f"%{term}%"
    operator = QueryOperator.NOT_LIKE if negate else QueryOperator.LIKE
    likes: List[QueryExpression] = [QueryFilter(c, operator, pattern) for c in columns]
    if len(likes) == 1:
        return ClauseFragment(where=likes[0])
    return ClauseFragment(where=QueryLogical("and" if negate else "or", likes))


def build_is_missing_clause(
    primary_table: str,
    key: Optional[str],
    targets: Mapping[str, MissingTarget],
    columns: Collection[str],
) -> ClauseFragment:
    """
    Build ``<column> IS NULL`` for an is-missing key.

    Keys in ``targets`` map to a dedicated column, usually behind a LEFT JOIN
    that the fragment carries. Other keys fall back to the primary table's own
    column of that name, provided it is one of ``columns``.
    """
    if not key:
        return ClauseFragment()

    target = targets.get(key)
    if target is None:
        if key not in columns:
            raise ConfigurationError(
                f"Unknown is_missing field '{key}' for table '{primary_table}'."
            )
        target = MissingTarget(Column(primary_table, key))

    fragment = ClauseFragment(where=QueryFilter(target.column, QueryOperator.IS_NULL))
    if target.join is not None:
        fragment.joins.append(target.join)
    return fragment


def merge_fragments(fragments: Sequence[ClauseFragment]) -> ClauseFragment:
    """AND together a list of fragments, keeping every join they need."""
    merged = ClauseFragment()
    merged.where = and_(*(f.where for f in fragments))
    merged.having = and_(*(f.having for f in fragments))
    for f in fragments:
        merged.joins.extend(f.joins)
    return merged
