# src/catalog_repository/base/update.py

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from .query import SqlParam, quote_identifier
from .utils import prepare_for_storage


# --- Update Operation Classes ---
@dataclass
class UpdateOperation:
    field_path: str


@dataclass
class SetOperation(UpdateOperation):
    value: Any


@dataclass
class UnsetOperation(UpdateOperation):
    pass


M = TypeVar("M", bound=BaseModel)


@lru_cache(maxsize=None)
def _adapter_for(model_cls: Type[BaseModel], field_name: str) -> TypeAdapter:
    return TypeAdapter(model_cls.model_fields[field_name].annotation)


class Update(Generic[M]):
    """
    Column-level update builder.

    ``set`` writes a value (``None`` writes NULL), ``unset`` writes NULL.
    Columns that receive no operation are left out of the SET list
    entirely. When a pydantic model is given, field names and values are
    checked against its annotations as operations are added.
    """

    model_cls: Optional[Type[M]]
    _operations: List[UpdateOperation]
    _logger: logging.Logger

    def __init__(self, model_cls: Optional[Type[M]] = None) -> None:
        self.model_cls = model_cls
        self._operations = []
        self._logger = logging.getLogger(__name__)
        if model_cls is not None:
            self._logger.debug(f"Initialized Update builder for model: {model_cls.__name__}")
        else:
            self._logger.debug("Initialized Update builder without model validation")

    def _check_field_conflict(self, field_path: str) -> None:
        """A column may receive at most one operation per UPDATE statement."""
        for op in self._operations:
            if op.field_path == field_path:
                self._logger.warning(
                    f"Field conflict detected: '{field_path}' already has an operation "
                    f"({type(op).__name__})."
                )
                raise ConfigurationError(
                    f"Field '{field_path}' already has an operation. Multiple operations "
                    f"on the same field are not allowed in a single update."
                )

    def _validate(self, field_path: str, value: Any) -> Any:
        if self.model_cls is None:
            return value
        if field_path not in self.model_cls.model_fields:
            raise ConfigurationError(
                f"Field '{field_path}' does not exist in model {self.model_cls.__name__}."
            )
        try:
            return _adapter_for(self.model_cls, field_path).validate_python(value)
        except PydanticValidationError as e:
            if value is None:
                raise ConfigurationError(
                    f"Field '{field_path}' of {self.model_cls.__name__} cannot be set to NULL."
                ) from e
            raise ConfigurationError(
                f"Invalid value for '{field_path}' of {self.model_cls.__name__}: {value!r}"
            ) from e

    # --- Update Methods ---
    def set(self, field: str, value: Any) -> "Update[M]":
        self._check_field_conflict(field)
        validated = self._validate(field, value)
        self._operations.append(
            SetOperation(field_path=field, value=prepare_for_storage(validated))
        )
        return self

    def unset(self, field: str) -> "Update[M]":
        self._check_field_conflict(field)
        self._validate(field, None)
        self._operations.append(UnsetOperation(field_path=field))
        return self

    # --- Build and Utility Methods ---
    def build(self) -> List[UpdateOperation]:
        return list(self._operations)

    def fields(self) -> List[str]:
        return [op.field_path for op in self._operations]

    def as_dict(self) -> Dict[str, Any]:
        """Written columns mapped to their new value (``None`` for NULL)."""
        return {
            op.field_path: op.value if isinstance(op, SetOperation) else None
            for op in self._operations
        }

    def __contains__(self, field: str) -> bool:
        return any(op.field_path == field for op in self._operations)

    def __repr__(self) -> str:
        model_name = self.model_cls.__name__ if self.model_cls else "Anonymous"
        if not self._operations:
            return f"Update<{model_name}>([])"
        ops_repr = ", ".join(repr(op) for op in self._operations)
        return f"Update<{model_name}>([{ops_repr}])"

    def __bool__(self) -> bool:
        return bool(self._operations)

    def __len__(self) -> int:
        return len(self._operations)


def compile_set_clause(update: Update) -> Tuple[str, List[SqlParam]]:
    """Translates an Update into a SQLite SET list and its parameters."""
    set_clauses: List[str] = []
    params: List[SqlParam] = []

    for op in update.build():
        column = quote_identifier(op.field_path)
        if isinstance(op, SetOperation):
            set_clauses.append(f"{column} = ?")
            params.append(SqlParam.of(op.value))
        elif isinstance(op, UnsetOperation):
            set_clauses.append(f"{column} = NULL")
        else:
            raise ConfigurationError(
                f"Unsupported UpdateOperation type encountered during translation: {type(op).__name__}"
            )

    return ", ".join(set_clauses), params
