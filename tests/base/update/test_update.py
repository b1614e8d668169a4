# tests/base/update/test_update.py

from datetime import date
from typing import Optional

import pytest
from pydantic import BaseModel

from catalog_repository.base.exceptions import ConfigurationError
from catalog_repository.base.query import ParamKind, bind_params
from catalog_repository.base.update import (
    SetOperation,
    UnsetOperation,
    Update,
    compile_set_clause,
)


class Record(BaseModel):
    id: Optional[int] = None
    name: str
    rating: Optional[int] = None
    released: Optional[date] = None
    cover: Optional[bytes] = None


def test_set_and_unset_build_operations():
    update = Update(Record).set("name", "Alien").unset("rating")
    ops = update.build()
    assert ops == [SetOperation("name", "Alien"), UnsetOperation("rating")]
    assert update.fields() == ["name", "rating"]
    assert update.as_dict() == {"name": "Alien", "rating": None}
    assert "rating" in update and "released" not in update
    assert len(update) == 2 and bool(update)


def test_set_converts_dates_for_storage():
    update = Update(Record).set("released", date(1979, 5, 25))
    assert update.as_dict() == {"released": "1979-05-25"}


def test_set_validates_against_the_model():
    update = Update(Record).set("released", "1979-05-25")
    assert update.as_dict() == {"released": "1979-05-25"}
    with pytest.raises(ConfigurationError):
        Update(Record).set("rating", "not a number")


def test_unknown_field_is_rejected():
    with pytest.raises(ConfigurationError):
        Update(Record).set("nope", 1)


def test_non_nullable_field_cannot_be_unset():
    with pytest.raises(ConfigurationError):
        Update(Record).unset("name")
    with pytest.raises(ConfigurationError):
        Update(Record).set("name", None)


def test_two_operations_on_one_field_conflict():
    with pytest.raises(ConfigurationError):
        Update(Record).set("rating", 1).unset("rating")


def test_without_model_anything_goes():
    update = Update().set("whatever", 3)
    assert update.as_dict() == {"whatever": 3}


def test_compile_set_clause():
    update = Update(Record).set("name", "Alien").unset("rating").set("cover", b"\x89PNG")
    sql, params = compile_set_clause(update)
    assert sql == '"name" = ?, "rating" = NULL, "cover" = ?'
    assert [p.kind for p in params] == [ParamKind.TEXT, ParamKind.BLOB]
    assert bind_params(params) == ("Alien", b"\x89PNG")


def test_compile_set_clause_rejects_bad_column_names():
    with pytest.raises(ConfigurationError):
        compile_set_clause(Update().set("name = 1; --", "x"))


def test_repr_names_the_model():
    assert repr(Update(Record)) == "Update<Record>([])"
