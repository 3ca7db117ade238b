from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol

from xzchat.core.backup.models import ALL_DOMAINS, Domain, RestoreMode, Snapshot
from xzchat.core.config.io import atomic_write_json, read_json_file
from xzchat.core.errors import CollectionError


class DomainStore(Protocol):
    """
    Persistence capability each feature module provides for its data domain.
    The engine only knows domains by name; values are opaque.
    """

    def collect(self, domain: Domain) -> Any: ...

    def persist(self, domain: Domain, value: Any, mode: RestoreMode) -> None: ...


def merge_values(existing: Any, restored: Any) -> Any:
    """
    Shallow merge used by non-overwrite restores.
    - dicts: restored keys win on conflict
    - lists: existing items, then restored items not already present
    - anything else: restored value wins
    """
    if isinstance(existing, dict) and isinstance(restored, dict):
        return {**existing, **restored}
    if isinstance(existing, list) and isinstance(restored, list):
        out = list(existing)
        seen = {json.dumps(x, sort_keys=True) for x in existing}
        for item in restored:
            k = json.dumps(item, sort_keys=True)
            if k not in seen:
                seen.add(k)
                out.append(item)
        return out
    return restored


@dataclass(frozen=True)
class JsonFileDomainStore:
    """
    One JSON file per domain: <data_dir>/.xzchat-<domain>.json
    """

    data_dir: str

    def path_for(self, domain: Domain) -> str:
        return os.path.join(self.data_dir, f".xzchat-{Domain(domain).value}.json")

    def collect(self, domain: Domain) -> Any:
        path = self.path_for(domain)
        rr = read_json_file(path, require_object=False)
        if rr.ok:
            return rr.data
        if rr.error == "missing":
            return {}
        raise ValueError(f"{os.path.basename(path)}: {rr.error}")

    def persist(self, domain: Domain, value: Any, mode: RestoreMode) -> None:
        if mode == RestoreMode.merge:
            value = merge_values(self.collect(domain), value)
        atomic_write_json(self.path_for(domain), value)


def collect_snapshot(store: DomainStore, *, domains: Optional[Iterable[Domain]] = None) -> Snapshot:
    """
    Read every domain. Any failure aborts the whole collection.
    """
    snap: Snapshot = {}
    for d in list(domains or ALL_DOMAINS):
        try:
            snap[d.value] = store.collect(d)
        except Exception as e:  # noqa: BLE001 - collectors are foreign code
            raise CollectionError(d.value, error=str(e)) from e
    return snap


def item_count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (dict, list, tuple)):
        return len(value)
    return 1


def summarize(snapshot: Snapshot) -> dict:
    return {d.value: item_count(snapshot.get(d.value)) for d in ALL_DOMAINS if d.value in snapshot}


def domains_in(snapshot: Snapshot) -> List[Domain]:
    return [d for d in ALL_DOMAINS if d.value in snapshot]
