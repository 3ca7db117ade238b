from __future__ import annotations

import json
import logging
import os
import secrets
import shutil
import string
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from xzchat.core.backup import codec
from xzchat.core.backup.collector import DomainStore, JsonFileDomainStore, collect_snapshot, summarize
from xzchat.core.backup.diff import diff
from xzchat.core.backup.hasher import payload_digest
from xzchat.core.backup.index import BackupIndex
from xzchat.core.backup.models import (
    BackupKind,
    BackupPayload,
    BackupRecord,
    RestoreMode,
    RestoreResult,
    Snapshot,
    VerifyResult,
    split_known_domains,
)
from xzchat.core.backup.restorer import apply_restore, materialize, resolve_chain
from xzchat.core.backup.retention import cascade_order, orphaned_by, select_expired
from xzchat.core.backup.verifier import verify_record
from xzchat.core.config.io import atomic_write_bytes, atomic_write_json
from xzchat.core.config.models import BackupConfigFile
from xzchat.core.crypto import PassphraseProvider, best_effort_restrict_permissions
from xzchat.core.errors import (
    BackupInUseError,
    BackupNotFoundError,
    BaseNotFoundError,
    ChainTooDeepError,
    ConfigError,
    CorruptPayloadError,
    ValidationError,
    XzchatError,
)
from xzchat.core.ops_log import OpsLogger


_ID_ALPHABET = string.ascii_lowercase + string.digits
EXPORT_FORMATS = ("json", "gzip")


class BackupManager:
    """
    Full/incremental snapshots of the xzchat data domains.

    Every public method loads the index from disk, works on it, and saves it
    before returning. Nothing is cached between calls.
    """

    def __init__(
        self,
        *,
        cfg: BackupConfigFile,
        store: Optional[DomainStore] = None,
        logger: Optional[logging.Logger] = None,
        ops_log: Optional[OpsLogger] = None,
        clock: Callable[[], float] = time.time,
        passphrase_provider: Optional[PassphraseProvider] = None,
    ):
        if not cfg.backup_dir:
            raise ConfigError("backup_dir is not configured.")
        self.cfg = cfg
        self.store: DomainStore = store if store is not None else JsonFileDomainStore(data_dir=cfg.data_dir or ".")
        self.logger = logger or logging.getLogger(__name__)
        self.ops_log = ops_log
        self._clock = clock
        self.passphrase_provider = passphrase_provider or PassphraseProvider(env_var=cfg.passphrase_env)

    @property
    def backup_dir(self) -> str:
        return self.cfg.backup_dir

    @property
    def index_path(self) -> str:
        return os.path.join(self.backup_dir, "index.json")

    # ---- create ----
    def create_backup(self, *, encrypt: bool = False, keep_days: Optional[int] = None, description: Optional[str] = None) -> BackupRecord:
        self._require_enabled()
        if keep_days is not None and keep_days < 0:
            raise ValidationError("Retention days must be zero or positive.", days=keep_days)
        index = self._open_index()
        current = collect_snapshot(self.store)

        backup_id = self._new_id(index)
        created_at = float(self._clock())
        payload = BackupPayload(backup_id=backup_id, kind=BackupKind.full, created_at=created_at, data=current)
        path, size, digest = self._write_payload(payload, encrypt=encrypt)
        record = BackupRecord(
            id=backup_id,
            kind=BackupKind.full,
            created_at=created_at,
            path=path,
            size_bytes=size,
            sha256=digest,
            encrypted=bool(encrypt),
            description=description or "Full backup",
        )
        self._register(index, record)
        self.logger.info("Full backup %s created (%d bytes, encrypted=%s)", backup_id, size, bool(encrypt))
        self._ops("backup.create", "success", backup_id, {"kind": "full", "size_bytes": size, "encrypted": bool(encrypt)})

        # 0 means keep everything
        if keep_days:
            self.clean_old_backups(keep_days)
        return record

    def create_incremental_backup(self, base_id: str, *, description: Optional[str] = None) -> BackupRecord:
        self._require_enabled()
        index = self._open_index()
        base = index.get(base_id)
        if base is None:
            raise BaseNotFoundError(base_id, operation="create_incremental_backup")

        base_chain = resolve_chain(index, base_id, max_depth=self.cfg.max_chain_depth)
        # the new record sits len(base_chain) hops from its root
        if len(base_chain) > self.cfg.max_chain_depth:
            raise ChainTooDeepError(base_id, self.cfg.max_chain_depth, operation="create_incremental_backup")
        base_snapshot = materialize(base_chain, self._read_payload)
        current = collect_snapshot(self.store)
        changes = diff(base_snapshot, current)

        backup_id = self._new_id(index)
        created_at = float(self._clock())
        payload = BackupPayload(
            backup_id=backup_id,
            kind=BackupKind.incremental,
            created_at=created_at,
            based_on=base_id,
            data=changes,
        )
        path, size, digest = self._write_payload(payload, encrypt=base.encrypted)
        record = BackupRecord(
            id=backup_id,
            kind=BackupKind.incremental,
            created_at=created_at,
            path=path,
            size_bytes=size,
            sha256=digest,
            encrypted=base.encrypted,
            based_on=base_id,
            description=description,
        )
        self._register(index, record)
        self.logger.info("Incremental backup %s created on %s (changed: %s)", backup_id, base_id, ", ".join(sorted(changes)) or "none")
        self._ops("backup.incremental", "success", backup_id, {"based_on": base_id, "changed": sorted(changes), "size_bytes": size})
        return record

    # ---- restore ----
    def restore_backup(self, backup_id: str, *, preview: bool = False, overwrite: bool = False) -> RestoreResult:
        index = self._open_index()
        rec = index.get(backup_id)
        if rec is None:
            raise BackupNotFoundError(backup_id, operation="restore_backup")

        chain = resolve_chain(index, backup_id, max_depth=self.cfg.max_chain_depth)
        snapshot = materialize(chain, self._read_payload)
        summary = summarize(snapshot)
        chain_ids = [r.id for r in chain]
        if preview:
            return RestoreResult(backup_id=rec.id, created_at=rec.created_at, preview=True, summary=summary, chain=chain_ids)

        pre_restore: Optional[str] = None
        if self.cfg.pre_restore_backup:
            pre_restore = self.create_backup(description=f"Pre-restore safety backup before {backup_id}").id

        mode = RestoreMode.overwrite if overwrite else RestoreMode.merge
        try:
            restored = apply_restore(self.store, snapshot, mode=mode, backup_id=backup_id)
        except XzchatError as e:
            self._ops("backup.restore", "partial", backup_id, e.context)
            raise
        self.logger.info("Restored %s (%s): %s", backup_id, mode.value, ", ".join(restored))
        self._ops("backup.restore", "success", backup_id, {"mode": mode.value, "restored": restored, "chain": chain_ids})
        return RestoreResult(
            backup_id=rec.id,
            created_at=rec.created_at,
            preview=False,
            mode=mode,
            summary=summary,
            restored=restored,
            chain=chain_ids,
            pre_restore_backup=pre_restore,
        )

    def load_snapshot(self, backup_id: str) -> Snapshot:
        """Fully resolved snapshot of a backup, without touching live data."""
        index = self._open_index()
        if backup_id not in index:
            raise BackupNotFoundError(backup_id, operation="load_snapshot")
        return self._materialize(index, backup_id)

    # ---- listing ----
    def list_backups(
        self,
        *,
        kind: Union[BackupKind, str, None] = None,
        date_from: Optional[float] = None,
        date_to: Optional[float] = None,
    ) -> List[BackupRecord]:
        if kind is not None and not isinstance(kind, BackupKind):
            try:
                kind = BackupKind(str(kind))
            except ValueError as e:
                raise ValidationError(f"Unknown backup type '{kind}'.", kind=str(kind)) from e
        index = self._open_index()
        out = index.list(kind=kind, date_from=date_from, date_to=date_to)
        return sorted(out, key=lambda r: (r.created_at, r.id), reverse=True)

    def get_backup(self, backup_id: str) -> BackupRecord:
        rec = self._open_index().get(backup_id)
        if rec is None:
            raise BackupNotFoundError(backup_id, operation="get_backup")
        return rec

    # ---- delete / retention ----
    def delete_backup(self, backup_id: str, *, cascade: bool = False) -> List[str]:
        index = self._open_index()
        if backup_id not in index:
            raise BackupNotFoundError(backup_id, operation="delete_backup")
        dependents = [r.id for r in index.dependents(backup_id)]
        if dependents and not cascade:
            raise BackupInUseError(backup_id, dependents)

        order = cascade_order(index, backup_id) if cascade else [backup_id]
        for rid in order:
            self._delete_one(index, rid)
        self.logger.info("Deleted backups: %s", ", ".join(order))
        self._ops("backup.delete", "success", backup_id, {"deleted": order, "cascade": bool(cascade)})
        return order

    def clean_old_backups(self, days: Optional[float] = None) -> List[str]:
        days = self.cfg.default_keep_days if days is None else days
        if days < 0:
            raise ValidationError("Retention days must be zero or positive.", days=days)
        index = self._open_index()
        now = float(self._clock())
        expired = select_expired(index.records(), now=now, days=days)
        removed: List[str] = []
        for rec in expired:
            self._delete_one(index, rec.id)
            removed.append(rec.id)

        orphans = orphaned_by(index.records(), set(removed))
        if orphans:
            # known limitation: cleanup does not follow chains
            self.logger.warning(
                "Retention removed the base of %d surviving incremental backup(s); they can no longer be restored: %s",
                len(orphans),
                ", ".join(r.id for r in orphans),
            )
        if removed:
            self.logger.info("Retention (%s days) removed %d backup(s)", days, len(removed))
        self._ops("backup.clean", "success", "retention", {"days": days, "removed": removed, "orphaned": [r.id for r in orphans]})
        return removed

    # ---- export / import ----
    def export_backup(self, backup_id: str, target_path: str, fmt: str = "json") -> str:
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"Unsupported export format: {fmt}", format=fmt)
        index = self._open_index()
        rec = index.get(backup_id)
        if rec is None:
            raise BackupNotFoundError(backup_id, operation="export_backup")

        if fmt == "gzip" and rec.kind != BackupKind.incremental:
            self._read_payload(rec)  # refuse to export a payload that does not decode
            os.makedirs(os.path.dirname(os.path.abspath(target_path)), exist_ok=True)
            shutil.copyfile(rec.path, target_path)
        else:
            snapshot = self._materialize(index, backup_id)
            payload = BackupPayload(backup_id=rec.id, kind=rec.kind, created_at=rec.created_at, data=snapshot)
            if fmt == "json":
                atomic_write_json(target_path, payload.model_dump(mode="json"))
            else:
                atomic_write_bytes(target_path, self._encode(payload, encrypt=rec.encrypted))
        self.logger.info("Exported %s to %s (%s)", backup_id, target_path, fmt)
        self._ops("backup.export", "success", backup_id, {"format": fmt, "target": os.path.basename(target_path)})
        return target_path

    def import_backup(self, source_path: str, *, encrypt: bool = False, decrypt: bool = False) -> BackupRecord:
        data = self._read_import_source(source_path, decrypt=decrypt)
        known, dropped = split_known_domains(data)
        if dropped:
            self.logger.warning("Import %s: ignoring unknown domains %s", source_path, ", ".join(dropped))
        if not known and dropped:
            raise CorruptPayloadError("Import file contains no known data domains.", source=os.path.basename(source_path))

        index = self._open_index()
        backup_id = self._new_id(index)
        created_at = float(self._clock())
        payload = BackupPayload(backup_id=backup_id, kind=BackupKind.imported, created_at=created_at, data=known)
        path, size, digest = self._write_payload(payload, encrypt=encrypt)
        record = BackupRecord(
            id=backup_id,
            kind=BackupKind.imported,
            created_at=created_at,
            path=path,
            size_bytes=size,
            sha256=digest,
            encrypted=bool(encrypt),
            description=f"Imported from {os.path.basename(source_path)}",
        )
        self._register(index, record)
        self.logger.info("Imported %s as %s", source_path, backup_id)
        self._ops("backup.import", "success", backup_id, {"source": os.path.basename(source_path), "encrypted": bool(encrypt)})
        return record

    # ---- verify ----
    def verify_backup(self, backup_id: str) -> VerifyResult:
        rec = self.get_backup(backup_id)
        res = verify_record(rec, self._read_payload)
        self._ops("backup.verify", "success" if res.ok else "failed", backup_id, {"errors": res.errors[:5]})
        return res

    # ---- helpers ----
    def _require_enabled(self) -> None:
        if not self.cfg.enabled:
            raise ValidationError("Backups disabled by config.")

    def _open_index(self) -> BackupIndex:
        return BackupIndex.open(self.index_path)

    def _new_id(self, index: BackupIndex) -> str:
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            bid = f"backup-{int(self._clock() * 1000)}-{suffix}"
            if bid not in index:
                return bid

    def _passphrase(self) -> Optional[str]:
        return self.passphrase_provider.get()

    def _encode(self, payload: BackupPayload, *, encrypt: bool) -> bytes:
        return codec.encode(
            payload,
            encrypt=encrypt,
            passphrase=self._passphrase() if encrypt else None,
            compress_level=self.cfg.compress_level,
            scrypt_n=self.cfg.scrypt_n,
        )

    def _write_payload(self, payload: BackupPayload, *, encrypt: bool) -> Tuple[str, int, str]:
        blob = self._encode(payload, encrypt=encrypt)
        path = os.path.join(self.backup_dir, f"{payload.backup_id}.json.gz")
        atomic_write_bytes(path, blob)
        best_effort_restrict_permissions(path)
        return path, len(blob), payload_digest(blob)

    def _register(self, index: BackupIndex, record: BackupRecord) -> None:
        # the payload is only kept if the index accepted it
        try:
            index.insert(record)
            index.save()
        except Exception:
            try:
                os.remove(record.path)
            except OSError:
                pass
            raise

    def _read_payload(self, record: BackupRecord) -> BackupPayload:
        try:
            with open(record.path, "rb") as f:
                blob = f.read()
        except OSError as e:
            raise CorruptPayloadError("Backup payload file is missing or unreadable.", backup_id=record.id, error=str(e)) from e
        try:
            return codec.decode(blob, encrypted=record.encrypted, passphrase=self._passphrase() if record.encrypted else None)
        except CorruptPayloadError as e:
            e.context.setdefault("backup_id", record.id)
            raise

    def _materialize(self, index: BackupIndex, backup_id: str) -> Snapshot:
        chain = resolve_chain(index, backup_id, max_depth=self.cfg.max_chain_depth)
        return materialize(chain, self._read_payload)

    def _delete_one(self, index: BackupIndex, backup_id: str) -> None:
        # file first, then index: a crash leaves an entry without a file, never a file without an entry
        rec = index.get(backup_id)
        if rec is None:
            return
        try:
            os.remove(rec.path)
        except FileNotFoundError:
            self.logger.warning("Payload for %s was already missing: %s", backup_id, rec.path)
        index.remove(backup_id)
        index.save()

    def _read_import_source(self, source_path: str, *, decrypt: bool) -> Dict[str, Any]:
        """
        A payload document (domains under `data`) or a bare domain mapping,
        from either a JSON file or a gzip/encrypted container.
        """
        if source_path.endswith(".gz"):
            try:
                with open(source_path, "rb") as f:
                    blob = f.read()
            except OSError as e:
                raise CorruptPayloadError("Import file is missing or unreadable.", source=source_path, error=str(e)) from e
            doc = codec.decode_document(blob, encrypted=decrypt, passphrase=self._passphrase() if decrypt else None)
        else:
            try:
                with open(source_path, "r", encoding="utf-8") as f:
                    doc = json.load(f)
            except (OSError, ValueError) as e:
                raise CorruptPayloadError("Import file is missing or not valid JSON.", source=source_path, error=str(e)) from e
        if not isinstance(doc, dict):
            raise CorruptPayloadError("Import file must contain a JSON object.", source=source_path)
        data = doc.get("data") if isinstance(doc.get("data"), dict) else doc
        return dict(data)

    def _ops(self, event: str, outcome: str, trace_id: str, details: Dict[str, Any]) -> None:
        if self.ops_log is None:
            return
        try:
            self.ops_log.log(trace_id=trace_id, event=event, outcome=outcome, details=details)
        except OSError as e:
            self.logger.warning("ops log write failed: %s", e)
