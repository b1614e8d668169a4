# src/catalog_repository/models/movie.py

import base64
import datetime as dt
from typing import Optional

from pydantic import BaseModel, field_validator

from catalog_repository.base.criteria import MultiCriterion

# Placeholder cover (1x1 PNG) stored as the front image when only a back
# image exists.
DEFAULT_MOVIE_IMAGE: bytes = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class Movie(BaseModel):
    """A row of the ``movies`` table."""

    id: Optional[int] = None
    checksum: str
    name: str
    aliases: Optional[str] = None
    duration: Optional[int] = None
    date: Optional[dt.date] = None
    rating: Optional[int] = None
    studio_id: Optional[int] = None
    director: Optional[str] = None
    synopsis: Optional[str] = None
    url: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class MovieSlim(BaseModel):
    id: int
    name: str


class MovieFilter(BaseModel):
    """Entity filter for ``MovieRepository.query``."""

    studios: Optional[MultiCriterion] = None
    scenes: Optional[MultiCriterion] = None
    is_missing: Optional[str] = None


# --- Mutation inputs ---
class MovieCreateInput(BaseModel):
    name: str
    aliases: Optional[str] = None
    duration: Optional[int] = None
    date: Optional[dt.date] = None
    rating: Optional[int] = None
    studio_id: Optional[int] = None
    director: Optional[str] = None
    synopsis: Optional[str] = None
    url: Optional[str] = None
    front_image: Optional[bytes] = None
    back_image: Optional[bytes] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value


class MovieUpdateInput(BaseModel):
    """
    Partial update of a movie.

    Only the fields passed when the input is built take part in the update
    (``model_fields_set``); a field passed as ``None`` clears the column.
    """

    id: int
    name: Optional[str] = None
    aliases: Optional[str] = None
    duration: Optional[int] = None
    date: Optional[dt.date] = None
    rating: Optional[int] = None
    studio_id: Optional[int] = None
    director: Optional[str] = None
    synopsis: Optional[str] = None
    url: Optional[str] = None
    front_image: Optional[bytes] = None
    back_image: Optional[bytes] = None


class MovieDestroyInput(BaseModel):
    id: int
