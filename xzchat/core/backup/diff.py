from __future__ import annotations

from typing import Any

from xzchat.core.backup.codec import canonical_json
from xzchat.core.backup.models import ChangeSet, Snapshot


_MISSING = object()


def _same(a: Any, b: Any) -> bool:
    if a is _MISSING or b is _MISSING:
        return a is b
    return canonical_json(a) == canonical_json(b)


def diff(reference: Snapshot, current: Snapshot) -> ChangeSet:
    """
    Domains of `current` whose serialized value differs from `reference`.
    A changed domain carries its whole new value.
    """
    changes: ChangeSet = {}
    for domain, value in current.items():
        if not _same(reference.get(domain, _MISSING), value):
            changes[domain] = value
    return changes


def apply(base: Snapshot, changes: ChangeSet) -> Snapshot:
    out = dict(base)
    out.update(changes)
    return out
