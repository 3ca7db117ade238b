from __future__ import annotations

import logging
from typing import Callable, List

from xzchat.core.backup.collector import DomainStore, domains_in
from xzchat.core.backup.diff import apply
from xzchat.core.backup.index import BackupIndex
from xzchat.core.backup.models import BackupKind, BackupPayload, BackupRecord, RestoreMode, Snapshot, split_known_domains
from xzchat.core.errors import BackupNotFoundError, BaseNotFoundError, ChainTooDeepError, PartialRestoreError


log = logging.getLogger(__name__)


def resolve_chain(index: BackupIndex, backup_id: str, *, max_depth: int) -> List[BackupRecord]:
    """
    Walk based_on pointers back to a full/imported root.
    Returns the records root first. A revisited id or more than max_depth hops
    means the index is malformed.
    """
    rec = index.get(backup_id)
    if rec is None:
        raise BackupNotFoundError(backup_id, operation="resolve_chain")
    chain = [rec]
    seen = {rec.id}
    while rec.kind == BackupKind.incremental:
        if len(chain) > max_depth:
            log.error("Backup chain too deep at %s (limit %d)", backup_id, max_depth)
            raise ChainTooDeepError(backup_id, max_depth, at=rec.id)
        parent_id = str(rec.based_on)
        if parent_id in seen:
            log.error("Backup chain cycle at %s via %s", backup_id, parent_id)
            raise ChainTooDeepError(backup_id, max_depth, cycle_at=parent_id)
        parent = index.get(parent_id)
        if parent is None:
            raise BaseNotFoundError(parent_id, backup_id=backup_id, operation="resolve_chain")
        seen.add(parent.id)
        chain.append(parent)
        rec = parent
    chain.reverse()
    return chain


def materialize(chain: List[BackupRecord], read_payload: Callable[[BackupRecord], BackupPayload]) -> Snapshot:
    """
    Full snapshot of the last record in `chain`: the root payload with every
    change set applied in order.
    """
    snapshot: Snapshot = {}
    for rec in chain:
        payload = read_payload(rec)
        data, dropped = split_known_domains(payload.data)
        if dropped:
            log.warning("Ignoring unknown domains in %s: %s", rec.id, ", ".join(dropped))
        snapshot = data if rec.kind != BackupKind.incremental else apply(snapshot, data)
    return snapshot


def apply_restore(store: DomainStore, snapshot: Snapshot, *, mode: RestoreMode, backup_id: str) -> List[str]:
    """
    Persist each domain in order. Not atomic across domains: the first failure
    stops the run and reports what was already written.
    """
    todo = domains_in(snapshot)
    restored: List[str] = []
    for i, d in enumerate(todo):
        try:
            store.persist(d, snapshot[d.value], mode)
        except Exception as e:  # noqa: BLE001 - persistence is foreign code
            pending = [x.value for x in todo[i + 1 :]]
            log.error("Restore of %s failed at domain %s: %s", backup_id, d.value, e)
            raise PartialRestoreError(backup_id, restored=restored, failed=d.value, pending=pending, error=str(e)) from e
        restored.append(d.value)
    return restored
