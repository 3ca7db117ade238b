from __future__ import annotations

import json
import os
import threading
import time
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional

from xzchat.core.errors import ConfigError, XzchatError
from xzchat.core.events import redact


@dataclass
class ErrorReporterConfig:
    include_tracebacks: bool = False


class ErrorReporter:
    def __init__(self, *, path: str = os.path.join("logs", "errors.jsonl"), cfg: Optional[ErrorReporterConfig] = None):
        self.path = path
        self.cfg = cfg or ErrorReporterConfig()
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    def report_exception(self, exc: BaseException, *, trace_id: str, subsystem: str, context: Optional[Dict[str, Any]] = None) -> XzchatError:
        xe = normalize_exception(exc, subsystem=subsystem, context=context or {})
        self.write_error(xe, trace_id=trace_id, subsystem=subsystem, internal_exc=exc)
        return xe

    def write_error(self, err: XzchatError, *, trace_id: str, subsystem: str, internal_exc: Optional[BaseException] = None) -> None:
        entry: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": trace_id,
            "subsystem": subsystem,
            "error_code": err.code,
            "severity": err.severity.value,
            "recoverable": bool(err.recoverable),
            "user_message": err.user_message,
            "safe_context": redact(err.context or {}),
        }
        if self.cfg.include_tracebacks and internal_exc is not None:
            entry["internal_context"] = {
                "traceback": "".join(traceback.format_exception(type(internal_exc), internal_exc, internal_exc.__traceback__, limit=30))
            }
        line = json.dumps(entry, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def tail(self, n: int = 20) -> list[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            lines = f.readlines()
        return [json.loads(x) for x in lines[-max(1, int(n)) :] if x.strip()]


def normalize_exception(exc: BaseException, *, subsystem: str, context: Dict[str, Any]) -> XzchatError:
    # Passthrough
    if isinstance(exc, XzchatError):
        return exc

    msg = str(exc)
    ctx = dict(context or {})

    if subsystem == "config":
        return ConfigError("Configuration error.", error=msg, **ctx)
    if isinstance(exc, PermissionError):
        return XzchatError(code="permission_denied", user_message="Permission denied while accessing backup files.", context={"error": msg, **ctx})
    if isinstance(exc, OSError):
        return XzchatError(code="io_error", user_message="A file could not be read or written.", context={"error": msg, **ctx})

    # Generic safe error
    return XzchatError(code="unknown_error", user_message="Something went wrong.", context=ctx)
