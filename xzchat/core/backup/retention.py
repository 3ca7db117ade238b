from __future__ import annotations

from typing import Iterable, List, Set

from xzchat.core.backup.index import BackupIndex
from xzchat.core.backup.models import BackupRecord


SECONDS_PER_DAY = 86400


def cutoff_for(now: float, days: float) -> float:
    return float(now) - float(days) * SECONDS_PER_DAY


def select_expired(records: Iterable[BackupRecord], *, now: float, days: float) -> List[BackupRecord]:
    """
    Records strictly older than now - days, oldest first.
    A record created exactly at the cutoff is kept.
    """
    cutoff = cutoff_for(now, days)
    return sorted((r for r in records if r.created_at < cutoff), key=lambda r: (r.created_at, r.id))


def orphaned_by(records: Iterable[BackupRecord], removed_ids: Set[str]) -> List[BackupRecord]:
    """Surviving records whose direct base is in removed_ids."""
    return [r for r in records if r.id not in removed_ids and r.based_on in removed_ids]


def cascade_order(index: BackupIndex, backup_id: str) -> List[str]:
    """
    backup_id and every record that transitively depends on it, deepest first,
    so each delete happens after its own dependents are gone.
    """
    order: List[str] = []
    seen: Set[str] = set()

    def _visit(rid: str) -> None:
        if rid in seen:
            return
        seen.add(rid)
        for child in sorted(index.dependents(rid), key=lambda r: (r.created_at, r.id)):
            _visit(child.id)
        order.append(rid)

    _visit(backup_id)
    return order
