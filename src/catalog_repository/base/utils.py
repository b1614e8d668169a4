import hashlib
import logging
import re
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Name under which natural_sort_key is registered as a SQLite function.
NATURAL_SORT_FUNCTION = "natural_sort_key"

_DIGITS_RE = re.compile(r"(\d+)")


def natural_sort_key(value: Optional[str]) -> Optional[str]:
    """
    Map a string to a key whose plain (binary) ordering is natural ordering.

    The text is case-folded and every run of digits is replaced by its
    length (four digits) followed by the digits without leading zeros, so
    "Episode 2" sorts before "Episode 10". NULL stays NULL.
    """
    if value is None:
        return None
    parts = _DIGITS_RE.split(str(value).casefold())
    key_parts = []
    for index, part in enumerate(parts):
        # split() with a capturing group puts digit runs at odd positions
        if index % 2:
            digits = part.lstrip("0") or "0"
            key_parts.append(f"{len(digits):04d}{digits}")
        else:
            key_parts.append(part)
    return "".join(key_parts)


def md5_from_string(value: str) -> str:
    """Checksum of a natural key, stored alongside the entity."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and special types to column values.

    It handles:
    - Pydantic BaseModel instances (dumped in python mode so bytes stay bytes)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - datetime/date values (ISO 8601 text, the storage format used for SQLite)
    - Enum members (their value)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready to be bound as SQL parameters
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump())

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, datetime):
        return data.isoformat()

    if isinstance(data, date):
        return data.isoformat()

    if isinstance(data, Enum):
        return data.value

    return data
