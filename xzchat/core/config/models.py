from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xzchat.core.crypto import MAX_SCRYPT_N, MIN_SCRYPT_N


class BackupConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    backup_dir: str = ""  # empty -> <home>/.xzchat-backups
    data_dir: str = ""  # empty -> <home>
    max_chain_depth: int = Field(default=64, ge=1, le=10_000)
    default_keep_days: int = Field(default=30, ge=0)
    compress_level: int = Field(default=6, ge=0, le=9)
    passphrase_env: str = "XZCHAT_BACKUP_PASSPHRASE"
    scrypt_n: int = Field(default=2**15, ge=MIN_SCRYPT_N, le=MAX_SCRYPT_N)
    pre_restore_backup: bool = False

    @field_validator("scrypt_n")
    @classmethod
    def _power_of_two(cls, v: int) -> int:
        if v & (v - 1):
            raise ValueError("scrypt_n must be a power of two")
        return v
