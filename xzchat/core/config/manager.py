from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from xzchat.core.config.io import atomic_write_json, read_json_file
from xzchat.core.config.models import BackupConfigFile
from xzchat.core.config.paths import XzchatFsPaths, default_home
from xzchat.core.errors import ConfigError


class ConfigManager:
    def __init__(self, *, fs: Optional[XzchatFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or XzchatFsPaths(default_home())
        self.logger = logger
        self.read_only = read_only
        self._backup: Optional[BackupConfigFile] = None

    # ---------- public API ----------
    def load_all(self) -> BackupConfigFile:
        rr = read_json_file(self.fs.backup_config)
        if not rr.ok and rr.error != "missing":
            raise ConfigError(f"backup.json unreadable: {rr.error}", path=self.fs.backup_config)
        try:
            cfg = BackupConfigFile.model_validate(rr.data)
        except PydanticValidationError as e:
            raise ConfigError(f"backup.json invalid: {e.errors()[0].get('msg')}", path=self.fs.backup_config) from e
        self._backup = self._resolve_paths(cfg)
        if rr.error == "missing" and not self.read_only:
            # first run: write defaults so users have something to edit
            atomic_write_json(self.fs.backup_config, cfg.model_dump())
            if self.logger:
                self.logger.info(f"Wrote default backup config to {self.fs.backup_config}")
        return self._backup

    def get(self) -> BackupConfigFile:
        if self._backup is None:
            raise ConfigError("Config not loaded.")
        return self._backup

    def save(self, data: Dict[str, Any]) -> BackupConfigFile:
        """
        Validate then write atomically. Invalid data is rejected before touching disk.
        """
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        try:
            cfg = BackupConfigFile.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError(f"backup.json invalid: {e.errors()[0].get('msg')}", path=self.fs.backup_config) from e
        atomic_write_json(self.fs.backup_config, cfg.model_dump())
        return self.load_all()

    def open_paths(self) -> Dict[str, str]:
        cfg = self.get()
        return {
            "config_dir": self.fs.config_dir,
            "logs_dir": self.fs.logs_dir,
            "backup_dir": cfg.backup_dir,
            "data_dir": cfg.data_dir,
        }

    # ---------- internals ----------
    def _resolve_paths(self, cfg: BackupConfigFile) -> BackupConfigFile:
        def _abs(value: str, default: str) -> str:
            if not value:
                return default
            value = os.path.expanduser(value)
            return value if os.path.isabs(value) else os.path.join(self.fs.root, value)

        return cfg.model_copy(
            update={
                "backup_dir": _abs(cfg.backup_dir, self.fs.default_backup_dir),
                "data_dir": _abs(cfg.data_dir, self.fs.default_data_dir),
            }
        )


def get_config(*, root: Optional[str] = None, logger=None, read_only: bool = False) -> ConfigManager:
    cm = ConfigManager(fs=XzchatFsPaths(root or default_home()), logger=logger, read_only=read_only)
    cm.load_all()
    return cm
