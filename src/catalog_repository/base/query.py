# src/catalog_repository/base/query.py
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Literal, Optional, Tuple, Union

from .exceptions import ConfigurationError

# --- Setup Logging ---
log = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_identifier(name: str) -> bool:
    return isinstance(name, str) and _IDENTIFIER_RE.match(name) is not None


def quote_identifier(identifier: str) -> str:
    """
    Quote an identifier for SQLite (SQLite uses double quotes for identifiers).

    Only plain identifiers are accepted; anything else is rejected instead of
    being escaped, since identifiers here always come from code or from a
    whitelisted filter key.
    """
    if not is_identifier(identifier):
        raise ConfigurationError(f"Invalid SQL identifier: {identifier!r}")
    return f'"{identifier}"'


# --- Bound Parameters ---
class ParamKind(Enum):
    """Storage classes a bound parameter can take."""

    TEXT = "text"
    INTEGER = "integer"
    REAL = "real"
    BLOB = "blob"
    NULL = "null"


@dataclass(frozen=True)
class SqlParam:
    """A bound SQL parameter tagged with its storage class."""

    kind: ParamKind
    value: Any = None

    @classmethod
    def null(cls) -> "SqlParam":
        return cls(ParamKind.NULL, None)

    @classmethod
    def of(cls, value: Any) -> "SqlParam":
        """Build a parameter from a plain Python value, inferring its kind."""
        if isinstance(value, SqlParam):
            return value
        if value is None:
            return cls.null()
        # bool is an int subclass, check it first
        if isinstance(value, bool):
            return cls(ParamKind.INTEGER, 1 if value else 0)
        if isinstance(value, int):
            return cls(ParamKind.INTEGER, value)
        if isinstance(value, float):
            return cls(ParamKind.REAL, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(ParamKind.BLOB, bytes(value))
        if isinstance(value, str):
            return cls(ParamKind.TEXT, value)
        # datetime is a date subclass, check it first
        if isinstance(value, datetime):
            return cls(ParamKind.TEXT, value.isoformat())
        if isinstance(value, date):
            return cls(ParamKind.TEXT, value.isoformat())
        if isinstance(value, Enum):
            return cls.of(value.value)
        raise ConfigurationError(
            f"Unsupported SQL parameter type: {type(value).__name__}"
        )

    def bind(self) -> Any:
        """The value handed to the driver."""
        if self.kind is ParamKind.NULL:
            return None
        return self.value


def bind_params(params: Iterable[SqlParam]) -> Tuple[Any, ...]:
    return tuple(p.bind() for p in params)


@dataclass
class CompiledQuery:
    """A finished SQL statement and its ordered parameters."""

    sql: str
    params: List[SqlParam] = field(default_factory=list)

    def bound(self) -> Tuple[Any, ...]:
        return bind_params(self.params)


# --- Operands ---
@dataclass(frozen=True)
class Column:
    """A table-qualified column reference."""

    table: str
    name: str

    def to_sql(self) -> str:
        return f"{quote_identifier(self.table)}.{quote_identifier(self.name)}"


@dataclass(frozen=True)
class CountDistinct:
    """COUNT(DISTINCT column), usable inside HAVING expressions."""

    column: Column

    def to_sql(self) -> str:
        return f"COUNT(DISTINCT {self.column.to_sql()})"


Operand = Union[Column, CountDistinct]


# --- Query Operator Enum ---
class QueryOperator(Enum):
    """Enumeration of valid query filter operators."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "ge"
    LTE = "le"
    # Membership
    IN = "in"
    NIN = "nin"
    # String
    LIKE = "like"
    NOT_LIKE = "not_like"
    # Null checks
    IS_NULL = "is_null"
    NOT_NULL = "not_null"


_BINARY_SQL = {
    QueryOperator.EQ: "=",
    QueryOperator.NE: "!=",
    QueryOperator.GT: ">",
    QueryOperator.LT: "<",
    QueryOperator.GTE: ">=",
    QueryOperator.LTE: "<=",
    QueryOperator.LIKE: "LIKE",
    QueryOperator.NOT_LIKE: "NOT LIKE",
}


# --- Structured Query Expression Classes ---
@dataclass
class QueryExpression:
    """Base class for structured query filter expressions."""

    pass


@dataclass
class QueryFilter(QueryExpression):
    """Represents a single filter condition (target <operator> value)."""

    target: Operand
    operator: QueryOperator
    value: Any = None
    collate: Optional[str] = None


@dataclass
class QueryLogical(QueryExpression):
    """Represents a logical combination (AND/OR) of expressions."""

    operator: Literal["and", "or"]
    conditions: List[QueryExpression] = field(default_factory=list)


@dataclass
class QueryNot(QueryExpression):
    """Negates the wrapped expression."""

    condition: QueryExpression


@dataclass
class QueryExists(QueryExpression):
    """
    A correlated EXISTS subquery:
    ``EXISTS (SELECT 1 FROM table AS alias WHERE outer = inner AND condition)``.

    ``correlation`` is ``(outer_column, inner_column)``; the inner column
    should be qualified with ``alias``.
    """

    table: str
    alias: str
    correlation: Tuple[Column, Column]
    condition: Optional[QueryExpression] = None


def and_(*conditions: Optional[QueryExpression]) -> Optional[QueryExpression]:
    """AND together the non-empty conditions; None when nothing remains."""
    present = [c for c in conditions if c is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return QueryLogical("and", present)


def or_(*conditions: Optional[QueryExpression]) -> Optional[QueryExpression]:
    present = [c for c in conditions if c is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return QueryLogical("or", present)


# --- Compiler ---
def compile_expression(expression: QueryExpression) -> Tuple[str, List[SqlParam]]:
    """Recursively translates QueryExpression nodes into a SQLite boolean expression + params."""
    if isinstance(expression, QueryFilter):
        return _compile_filter(expression)

    if isinstance(expression, QueryLogical):
        if expression.operator not in ("and", "or"):
            raise ConfigurationError(
                f"Unsupported logical operator: {expression.operator!r}"
            )
        if not expression.conditions:
            return "1=1", []

        fragments: List[str] = []
        params: List[SqlParam] = []
        for cond in expression.conditions:
            fragment, cond_params = compile_expression(cond)
            fragments.append(f"({fragment})")
            params.extend(cond_params)

        logical_op_sql = f" {expression.operator.upper()} "
        return logical_op_sql.join(fragments), params

    if isinstance(expression, QueryNot):
        fragment, params = compile_expression(expression.condition)
        return f"NOT ({fragment})", params

    if isinstance(expression, QueryExists):
        outer, inner = expression.correlation
        sql = (
            f"EXISTS (SELECT 1 FROM {quote_identifier(expression.table)} "
            f"AS {quote_identifier(expression.alias)} "
            f"WHERE {inner.to_sql()} = {outer.to_sql()}"
        )
        params: List[SqlParam] = []
        if expression.condition is not None:
            fragment, params = compile_expression(expression.condition)
            sql += f" AND ({fragment})"
        return sql + ")", params

    raise ConfigurationError(
        f"Unknown QueryExpression type encountered during translation: {type(expression).__name__}"
    )


def _compile_filter(expression: QueryFilter) -> Tuple[str, List[SqlParam]]:
    op = expression.operator
    if not isinstance(op, QueryOperator):
        try:
            op = QueryOperator(op)
        except ValueError:
            raise ConfigurationError(f"Unsupported query operator: {op!r}") from None

    target_sql = expression.target.to_sql()
    if expression.collate:
        if not is_identifier(expression.collate):
            raise ConfigurationError(f"Invalid collation name: {expression.collate!r}")
        target_sql = f"{target_sql} COLLATE {expression.collate}"

    if op is QueryOperator.IS_NULL:
        return f"{target_sql} IS NULL", []
    if op is QueryOperator.NOT_NULL:
        return f"{target_sql} IS NOT NULL", []

    if op in (QueryOperator.IN, QueryOperator.NIN):
        values = expression.value
        if not isinstance(values, (list, tuple, set, frozenset)):
            raise ConfigurationError(
                f"Value for {op.value} operator must be a list or tuple, got {type(values).__name__}"
            )
        if not values:
            return ("0=1", []) if op is QueryOperator.IN else ("1=1", [])
        placeholders = ", ".join(["?"] * len(values))
        sql_op = "IN" if op is QueryOperator.IN else "NOT IN"
        return f"{target_sql} {sql_op} ({placeholders})", [SqlParam.of(v) for v in values]

    if expression.value is None:
        raise ConfigurationError(
            f"Operator '{op.value}' needs a value; use IS_NULL/NOT_NULL to test for NULL."
        )
    return f"{target_sql} {_BINARY_SQL[op]} ?", [SqlParam.of(expression.value)]
