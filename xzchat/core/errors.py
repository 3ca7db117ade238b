from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from xzchat.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class XzchatError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ConfigError(XzchatError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class ValidationError(XzchatError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Backup engine ----
class CollectionError(XzchatError):
    def __init__(self, domain: str, user_message: Optional[str] = None, **ctx: Any):
        super().__init__(
            "collection_error",
            user_message or f"Could not read data domain '{domain}'.",
            severity=Severity.ERROR,
            recoverable=True,
            context={"domain": domain, **ctx},
        )


class BackupNotFoundError(XzchatError):
    def __init__(self, backup_id: str, **ctx: Any):
        super().__init__(
            "backup_not_found",
            f"Backup '{backup_id}' does not exist.",
            severity=Severity.WARN,
            recoverable=True,
            context={"backup_id": backup_id, **ctx},
        )


class BaseNotFoundError(XzchatError):
    def __init__(self, base_id: str, **ctx: Any):
        super().__init__(
            "base_not_found",
            f"Base backup '{base_id}' does not exist.",
            severity=Severity.WARN,
            recoverable=True,
            context={"base_id": base_id, **ctx},
        )


class ChainTooDeepError(XzchatError):
    def __init__(self, backup_id: str, depth: int, **ctx: Any):
        super().__init__(
            "chain_too_deep",
            f"Backup chain for '{backup_id}' is cyclic or deeper than {depth} links.",
            severity=Severity.ERROR,
            recoverable=False,
            context={"backup_id": backup_id, "max_depth": depth, **ctx},
        )


class CorruptPayloadError(XzchatError):
    def __init__(self, user_message: str = "Backup payload is corrupt or cannot be decrypted.", **ctx: Any):
        super().__init__("corrupt_payload", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class IndexCorruptError(XzchatError):
    def __init__(self, path: str, **ctx: Any):
        super().__init__(
            "index_corrupt",
            f"Backup index '{path}' is corrupt. Repair or remove it manually.",
            severity=Severity.CRITICAL,
            recoverable=False,
            context={"path": path, **ctx},
        )


class PartialRestoreError(XzchatError):
    def __init__(self, backup_id: str, *, restored: List[str], failed: str, pending: List[str], **ctx: Any):
        super().__init__(
            "partial_restore",
            f"Restore of '{backup_id}' stopped at domain '{failed}'. Restored: {', '.join(restored) or 'none'}.",
            severity=Severity.ERROR,
            recoverable=True,
            context={"backup_id": backup_id, "restored": list(restored), "failed": failed, "pending": list(pending), **ctx},
        )

    @property
    def restored(self) -> List[str]:
        return list(self.context.get("restored") or [])

    @property
    def failed(self) -> str:
        return str(self.context.get("failed") or "")

    @property
    def pending(self) -> List[str]:
        return list(self.context.get("pending") or [])


class BackupInUseError(XzchatError):
    def __init__(self, backup_id: str, dependents: List[str], **ctx: Any):
        super().__init__(
            "backup_in_use",
            f"Backup '{backup_id}' is the base of {len(dependents)} other backup(s). Use --cascade to delete them too.",
            severity=Severity.WARN,
            recoverable=True,
            context={"backup_id": backup_id, "dependents": list(dependents), **ctx},
        )


class PassphraseRequiredError(XzchatError):
    def __init__(self, user_message: str = "A backup passphrase is required for encrypted backups.", **ctx: Any):
        super().__init__("passphrase_required", user_message, severity=Severity.WARN, recoverable=True, context=ctx)
