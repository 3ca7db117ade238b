from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from xzchat.core.backup.models import BackupKind, BackupRecord
from xzchat.core.config.io import atomic_write_json, read_json_file
from xzchat.core.errors import BaseNotFoundError, IndexCorruptError, ValidationError


class BackupIndex:
    """
    Durable id -> BackupRecord map stored as index.json.

    Instances are short-lived: load, mutate, save within one operation.
    """

    def __init__(self, path: str):
        self.path = path
        self._records: Dict[str, BackupRecord] = {}

    @classmethod
    def open(cls, path: str) -> "BackupIndex":
        idx = cls(path)
        idx.load()
        return idx

    def load(self) -> "BackupIndex":
        rr = read_json_file(self.path)
        if rr.error == "missing":
            self._records = {}
            return self
        if not rr.ok:
            raise IndexCorruptError(self.path, error=rr.error)
        records: Dict[str, BackupRecord] = {}
        for key, raw in rr.data.items():
            try:
                rec = BackupRecord.model_validate(raw)
            except PydanticValidationError as e:
                raise IndexCorruptError(self.path, backup_id=key, error=str(e.errors()[:3])) from e
            if rec.id != key:
                raise IndexCorruptError(self.path, backup_id=key, error=f"record id mismatch: {rec.id}")
            records[key] = rec
        self._records = records
        return self

    def save(self) -> None:
        data = {rid: rec.model_dump(mode="json") for rid, rec in self._records.items()}
        atomic_write_json(self.path, data)

    def insert(self, record: BackupRecord) -> None:
        if record.id in self._records:
            raise ValidationError(f"Backup id '{record.id}' already exists.", backup_id=record.id)
        if record.based_on is not None and record.based_on not in self._records:
            raise BaseNotFoundError(record.based_on, backup_id=record.id, operation="index.insert")
        self._records[record.id] = record

    def get(self, backup_id: str) -> Optional[BackupRecord]:
        return self._records.get(backup_id)

    def remove(self, backup_id: str) -> Optional[BackupRecord]:
        return self._records.pop(backup_id, None)

    def __contains__(self, backup_id: object) -> bool:
        return backup_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[BackupRecord]:
        return list(self._records.values())

    def list(
        self,
        *,
        kind: Optional[BackupKind] = None,
        date_from: Optional[float] = None,
        date_to: Optional[float] = None,
    ) -> List[BackupRecord]:
        out: List[BackupRecord] = []
        for rec in self._records.values():
            if kind is not None and rec.kind != kind:
                continue
            if date_from is not None and rec.created_at < date_from:
                continue
            if date_to is not None and rec.created_at > date_to:
                continue
            out.append(rec)
        return out

    def dependents(self, backup_id: str) -> List[BackupRecord]:
        return [r for r in self._records.values() if r.based_on == backup_id]
