# tests/base/test_changeset.py

from datetime import datetime, timezone
from typing import Optional

import pytest
from pydantic import BaseModel

from catalog_repository.base.changeset import ABSENT, ChangesetTranslator, Patch
from catalog_repository.base.update import compile_set_clause

STAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


class Record(BaseModel):
    name: str
    rating: Optional[int] = None
    director: Optional[str] = None
    updated_at: Optional[datetime] = None


class RecordInput(BaseModel):
    name: Optional[str] = None
    rating: Optional[int] = None
    director: Optional[str] = None


def test_absent_is_a_falsy_singleton():
    assert not ABSENT
    assert type(ABSENT)() is ABSENT
    assert repr(ABSENT) == "ABSENT"


def test_translator_only_copies_present_fields():
    translator = ChangesetTranslator({"rating"})
    patch = translator.translate({"name": "B", "rating": 3}, 1, updated_at=STAMP)
    assert patch.values == {"rating": 3}
    assert patch.get("name") is ABSENT
    assert patch.id == 1 and patch.updated_at == STAMP


def test_present_null_is_kept_as_null():
    translator = ChangesetTranslator({"rating"})
    patch = translator.translate({"rating": None}, 1, updated_at=STAMP)
    assert patch.is_present("rating")
    assert patch.get("rating") is None


def test_from_input_uses_explicitly_set_fields():
    data = RecordInput(rating=None, director="Scott")
    translator = ChangesetTranslator.from_input(data)
    assert translator.present_fields == frozenset({"rating", "director"})
    assert translator.has_field("rating")
    assert not translator.has_field("name")
    assert translator.value(data.name, "name") is ABSENT
    assert translator.value(data.rating, "rating") is None


def test_translate_can_be_restricted_to_fields():
    translator = ChangesetTranslator({"name", "rating"})
    patch = translator.translate({"name": "A", "rating": 2}, 5, fields=["rating"])
    assert patch.values == {"rating": 2}


def test_translate_defaults_updated_at_to_now():
    before = datetime.now(timezone.utc)
    patch = ChangesetTranslator(()).translate({}, 1)
    assert patch.updated_at >= before


def test_patch_set_list_never_mentions_absent_fields():
    translator = ChangesetTranslator({"rating"})
    patch = translator.translate({"name": "B", "rating": None, "director": "X"}, 1, updated_at=STAMP)
    sql, params = compile_set_clause(patch.to_update(Record))
    assert sql == '"rating" = NULL, "updated_at" = ?'
    assert "name" not in sql and "director" not in sql
    assert [p.bind() for p in params] == [STAMP.isoformat()]


def test_patch_to_update_validates_against_model():
    patch = Patch(id=1, updated_at=STAMP, values={"name": None})
    with pytest.raises(ValueError):
        patch.to_update(Record)


def test_patch_keeps_a_caller_supplied_updated_at():
    later = datetime(2031, 1, 1, tzinfo=timezone.utc)
    patch = Patch(id=1, updated_at=STAMP, values={"rating": 3, "updated_at": later})
    sql, params = compile_set_clause(patch.to_update(Record))
    assert sql == '"rating" = ?, "updated_at" = ?'
    assert [p.bind() for p in params] == [3, later.isoformat()]


def test_patch_with_null_updated_at_falls_back_to_its_timestamp():
    patch = Patch(id=1, updated_at=STAMP, values={"updated_at": None})
    assert patch.to_update(Record).as_dict() == {"updated_at": STAMP.isoformat()}
