# src/catalog_repository/base/changeset.py
"""
Partial updates.

An inbound update request names the fields it carries; a field can be
missing, present with ``null``, or present with a value. ``Patch`` keeps that
three-way distinction and is the only thing turned into a SET list, so a
missing field never reaches SQL while an explicit ``null`` clears the column.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Collection, Dict, Iterable, Mapping, Optional, Type

from pydantic import BaseModel

from .update import Update

log = logging.getLogger(__name__)


class _Absent:
    """Marker for "field not mentioned in the request"."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass
class Patch:
    """
    A partial update for one row.

    ``values`` holds only the fields the caller mentioned; ``None`` there
    means "set to NULL". The primary key and ``updated_at`` are always part
    of a patch.
    """

    id: int
    updated_at: datetime
    values: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Any:
        return self.values.get(name, ABSENT)

    def is_present(self, name: str) -> bool:
        return name in self.values

    def set(self, name: str, value: Any) -> "Patch":
        self.values[name] = value
        return self

    def to_update(self, model_cls: Optional[Type[BaseModel]] = None) -> Update:
        """
        Turn the present fields into column operations.

        ``updated_at`` is always written: a non-null value from ``values`` when
        the caller named one, otherwise the patch timestamp.
        """
        update = Update(model_cls)
        for name, value in self.values.items():
            if name == "updated_at":
                continue
            if value is None:
                update.unset(name)
            else:
                update.set(name, value)

        update.set("updated_at", self.values.get("updated_at") or self.updated_at)
        return update


class ChangesetTranslator:
    """Builds a ``Patch`` from request values and the set of fields the request named."""

    def __init__(self, present_fields: Iterable[str]):
        self._present = frozenset(present_fields)

    @classmethod
    def from_input(cls, input_model: BaseModel) -> "ChangesetTranslator":
        """Use the fields explicitly set on a pydantic input model as the presence set."""
        return cls(input_model.model_fields_set)

    @property
    def present_fields(self) -> frozenset:
        return self._present

    def has_field(self, name: str) -> bool:
        return name in self._present

    def value(self, value: Any, name: str) -> Any:
        """``value`` if the request named ``name``, otherwise ABSENT."""
        return value if name in self._present else ABSENT

    def translate(
        self,
        values: Mapping[str, Any],
        entity_id: int,
        updated_at: Optional[datetime] = None,
        fields: Optional[Collection[str]] = None,
    ) -> Patch:
        """
        Copy the named fields out of ``values`` into a new Patch.

        Args:
            values: Field values as received (already validated upstream).
            entity_id: Primary key of the row being patched.
            updated_at: Timestamp for the row; defaults to now.
            fields: Restrict the patch to these field names.
        """
        patch = Patch(id=entity_id, updated_at=updated_at or datetime.now(timezone.utc))
        candidates = fields if fields is not None else values.keys()
        for name in candidates:
            value = self.value(values.get(name), name)
            if value is ABSENT:
                continue
            patch.set(name, value)
        log.debug(f"Translated changeset for id {entity_id}: fields={sorted(patch.values)}")
        return patch
