from __future__ import annotations

import logging
import os

import pytest

from .helpers.fakes import PASSPHRASE, FakeClock
from xzchat.core.backup.api import BackupManager
from xzchat.core.backup.collector import JsonFileDomainStore
from xzchat.core.config.models import BackupConfigFile
from xzchat.core.crypto import PassphraseProvider


@pytest.fixture(autouse=True)
def _reset_xzchat_logger():
    # the CLI attaches handlers and turns off propagation; keep that out of other tests
    logger = logging.getLogger("xzchat")
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level
    yield
    for h in list(logger.handlers):
        if h not in handlers:
            logger.removeHandler(h)
            h.close()
    logger.propagate = propagate
    logger.setLevel(level)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def backup_cfg(tmp_path):
    """
    Isolated backup dir + data dir under tmp_path. Small scrypt cost keeps tests fast.
    """
    home = tmp_path / "home"
    os.makedirs(home, exist_ok=True)
    return BackupConfigFile(backup_dir=str(tmp_path / "backups"), data_dir=str(home), scrypt_n=2**10)

@pytest.fixture
def store(backup_cfg):
    return JsonFileDomainStore(data_dir=backup_cfg.data_dir)

@pytest.fixture
def manager(backup_cfg, store, clock):
    return BackupManager(
        cfg=backup_cfg,
        store=store,
        clock=clock.time,
        passphrase_provider=PassphraseProvider(env_var="XZCHAT_TEST_UNSET", value=PASSPHRASE),
    )
