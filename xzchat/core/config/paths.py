from __future__ import annotations

import os
from dataclasses import dataclass


def default_home() -> str:
    return os.environ.get("HOME") or os.environ.get("USERPROFILE") or "."


@dataclass(frozen=True)
class XzchatFsPaths:
    root: str = "."

    @property
    def app_dir(self) -> str:
        return os.path.join(self.root, ".xzchat")

    @property
    def config_dir(self) -> str:
        return os.path.join(self.app_dir, "config")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.app_dir, "logs")

    # Files
    @property
    def backup_config(self) -> str:
        return os.path.join(self.config_dir, "backup.json")

    @property
    def ops_log(self) -> str:
        return os.path.join(self.logs_dir, "ops.jsonl")

    @property
    def errors_log(self) -> str:
        return os.path.join(self.logs_dir, "errors.jsonl")

    # Defaults for relative/empty config values
    @property
    def default_backup_dir(self) -> str:
        return os.path.join(self.root, ".xzchat-backups")

    @property
    def default_data_dir(self) -> str:
        return self.root
