from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Any
    error: Optional[str] = None


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        os.makedirs(d, exist_ok=True)


def read_json_file(path: str, *, require_object: bool = True) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        if require_object and not isinstance(obj, dict):
            return ReadResult(ok=False, data={}, error="not_object")
        return ReadResult(ok=True, data=obj)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except (OSError, UnicodeDecodeError) as e:
        return ReadResult(ok=False, data={}, error=str(e))


def atomic_write_bytes(path: str, data: bytes) -> None:
    ensure_dirs(os.path.dirname(path) or ".")
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def atomic_write_json(path: str, data: Any) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
    atomic_write_bytes(path, text.encode("utf-8"))
