from __future__ import annotations

import os
from typing import Callable, List

from xzchat.core.backup.hasher import digest_matches
from xzchat.core.backup.models import BackupPayload, BackupRecord, VerifyResult
from xzchat.core.errors import CorruptPayloadError


def verify_record(record: BackupRecord, decode_file: Callable[[BackupRecord], BackupPayload]) -> VerifyResult:
    errors: List[str] = []
    if not os.path.isfile(record.path):
        return VerifyResult(backup_id=record.id, ok=False, errors=[f"missing payload file: {os.path.basename(record.path)}"])

    size = os.path.getsize(record.path)
    if size != record.size_bytes:
        errors.append(f"size mismatch: expected {record.size_bytes}, found {size}")
    if not digest_matches(record.path, record.sha256):
        errors.append("sha256 mismatch")

    try:
        payload = decode_file(record)
        if payload.backup_id != record.id:
            errors.append(f"payload belongs to {payload.backup_id}")
        if payload.based_on != record.based_on:
            errors.append("payload chain pointer does not match index")
    except CorruptPayloadError as e:
        errors.append(f"decode failed: {e.user_message}")

    return VerifyResult(backup_id=record.id, ok=(len(errors) == 0), errors=errors)
