from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


FORMAT_VERSION = "2.6.0"


class Domain(str, Enum):
    SESSIONS = "sessions"
    SNIPPETS = "snippets"
    TODOS = "todos"
    BOOKMARKS = "bookmarks"
    NOTES = "notes"
    TEMPLATES = "templates"
    PERSONAS = "personas"
    WORKFLOWS = "workflows"
    ENV = "env"
    CRON = "cron"
    KEYBINDS = "keybinds"


ALL_DOMAINS: List[Domain] = list(Domain)
DOMAIN_NAMES = frozenset(d.value for d in Domain)

# domain name -> opaque JSON value
Snapshot = Dict[str, Any]
ChangeSet = Dict[str, Any]


def split_known_domains(data: Dict[str, Any]) -> Tuple[Snapshot, List[str]]:
    """
    Returns (known, dropped). Unknown keys are never collected or restored.
    """
    known = {k: v for k, v in data.items() if k in DOMAIN_NAMES}
    dropped = sorted(k for k in data if k not in DOMAIN_NAMES)
    return known, dropped


class BackupKind(str, Enum):
    full = "full"
    incremental = "incremental"
    imported = "imported"


class RestoreMode(str, Enum):
    overwrite = "overwrite"
    merge = "merge"


class BackupRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    kind: BackupKind
    created_at: float
    path: str
    size_bytes: int = Field(ge=0)
    sha256: str = ""
    encrypted: bool = False
    based_on: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _chain_pointer_matches_kind(self) -> "BackupRecord":
        if self.kind == BackupKind.incremental and not self.based_on:
            raise ValueError("incremental backups require based_on")
        if self.kind != BackupKind.incremental and self.based_on is not None:
            raise ValueError(f"{self.kind.value} backups must not set based_on")
        if self.based_on is not None and self.based_on == self.id:
            raise ValueError("a backup cannot be based on itself")
        return self


class BackupPayload(BaseModel):
    """Decoded document stored in every payload file."""

    model_config = ConfigDict(extra="ignore")

    backup_id: str
    kind: BackupKind
    created_at: float
    based_on: Optional[str] = None
    format_version: str = FORMAT_VERSION
    data: Dict[str, Any] = Field(default_factory=dict)


class RestoreResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backup_id: str
    created_at: float
    preview: bool
    mode: Optional[RestoreMode] = None
    summary: Dict[str, int] = Field(default_factory=dict)
    restored: List[str] = Field(default_factory=list)
    chain: List[str] = Field(default_factory=list)  # root first
    pre_restore_backup: Optional[str] = None


class VerifyResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backup_id: str
    ok: bool
    errors: List[str] = Field(default_factory=list)
