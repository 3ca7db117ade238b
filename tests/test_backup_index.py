from __future__ import annotations

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from xzchat.core.backup.index import BackupIndex
from xzchat.core.backup.models import BackupKind, BackupRecord
from xzchat.core.errors import BaseNotFoundError, IndexCorruptError, ValidationError


def _rec(rid: str, *, kind: BackupKind = BackupKind.full, at: float = 100.0, based_on=None) -> BackupRecord:
    return BackupRecord(id=rid, kind=kind, created_at=at, path=f"/tmp/{rid}.json.gz", size_bytes=10, based_on=based_on)


def test_missing_index_is_empty(tmp_path):
    idx = BackupIndex.open(str(tmp_path / "index.json"))
    assert len(idx) == 0
    assert idx.list() == []


def test_corrupt_index_is_fatal(tmp_path):
    p = tmp_path / "index.json"
    p.write_text("{ this is not json", encoding="utf-8")
    with pytest.raises(IndexCorruptError):
        BackupIndex.open(str(p))
    # never rewritten
    assert p.read_text(encoding="utf-8") == "{ this is not json"


def test_invalid_record_is_fatal(tmp_path):
    p = tmp_path / "index.json"
    p.write_text(json.dumps({"b1": {"id": "b1", "kind": "incremental", "created_at": 1, "path": "x", "size_bytes": 1}}), encoding="utf-8")
    with pytest.raises(IndexCorruptError):
        BackupIndex.open(str(p))


def test_non_object_index_is_fatal(tmp_path):
    p = tmp_path / "index.json"
    p.write_text("[]", encoding="utf-8")
    with pytest.raises(IndexCorruptError):
        BackupIndex.open(str(p))


def test_save_and_reload(tmp_path):
    p = str(tmp_path / "index.json")
    idx = BackupIndex.open(p)
    idx.insert(_rec("f1"))
    idx.insert(_rec("i1", kind=BackupKind.incremental, at=200.0, based_on="f1"))
    idx.save()

    again = BackupIndex.open(p)
    assert again.get("i1") == _rec("i1", kind=BackupKind.incremental, at=200.0, based_on="f1")
    assert [r.id for r in again.dependents("f1")] == ["i1"]


def test_insert_rejects_duplicates_and_forward_references(tmp_path):
    idx = BackupIndex.open(str(tmp_path / "index.json"))
    idx.insert(_rec("f1"))
    with pytest.raises(ValidationError):
        idx.insert(_rec("f1"))
    with pytest.raises(BaseNotFoundError):
        idx.insert(_rec("i1", kind=BackupKind.incremental, based_on="nope"))


def test_list_filters_are_inclusive(tmp_path):
    idx = BackupIndex.open(str(tmp_path / "index.json"))
    idx.insert(_rec("a", at=100.0))
    idx.insert(_rec("b", at=200.0))
    idx.insert(_rec("c", kind=BackupKind.incremental, at=300.0, based_on="b"))
    assert {r.id for r in idx.list(kind=BackupKind.full)} == {"a", "b"}
    assert {r.id for r in idx.list(date_from=200.0)} == {"b", "c"}
    assert {r.id for r in idx.list(date_to=200.0)} == {"a", "b"}
    assert {r.id for r in idx.list(date_from=150.0, date_to=250.0)} == {"b"}


def test_remove(tmp_path):
    idx = BackupIndex.open(str(tmp_path / "index.json"))
    idx.insert(_rec("a"))
    assert idx.remove("a") is not None
    assert idx.remove("a") is None
    assert "a" not in idx


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kind": BackupKind.incremental},
        {"kind": BackupKind.full, "based_on": "x"},
        {"kind": BackupKind.imported, "based_on": "x"},
        {"kind": BackupKind.incremental, "based_on": "self"},
    ],
)
def test_record_enforces_chain_pointer_per_kind(kwargs):
    with pytest.raises(PydanticValidationError):
        BackupRecord(id="self", created_at=1.0, path="p", size_bytes=0, **kwargs)
