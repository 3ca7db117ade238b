from __future__ import annotations

import argparse
import calendar
import getpass
import sys
import time
import uuid
from typing import List, Optional

from xzchat.core.backup.api import BackupManager
from xzchat.core.backup.models import BackupKind, BackupRecord
from xzchat.core.config.manager import get_config
from xzchat.core.crypto import PassphraseProvider
from xzchat.core.error_reporter import ErrorReporter
from xzchat.core.errors import ValidationError, XzchatError
from xzchat.core.logger import setup_logging
from xzchat.core.ops_log import OpsLogger


def format_size(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.2f} KB"
    return f"{n / (1024 * 1024):.2f} MB"


def format_ts(ts: float) -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(ts))


def parse_day(value: str, *, end_of_day: bool = False) -> float:
    """YYYY-MM-DD (UTC) -> epoch seconds; end_of_day makes the bound cover the whole day."""
    try:
        st = time.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}' (expected YYYY-MM-DD).", value=value) from e
    start = float(calendar.timegm(st))
    return start + 86400 - 0.001 if end_of_day else start


def _describe(rec: BackupRecord) -> List[str]:
    lines = [
        f"* {rec.id}",
        f"  type: {rec.kind.value}",
        f"  time: {format_ts(rec.created_at)}",
        f"  size: {format_size(rec.size_bytes)}",
    ]
    if rec.based_on:
        lines.append(f"  based on: {rec.based_on}")
    if rec.description:
        lines.append(f"  description: {rec.description}")
    if rec.encrypted:
        lines.append("  encrypted")
    return lines


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="xzchat", description="xzchat data backup & restore")
    ap.add_argument("--home", default=None, help="Home directory holding xzchat data (defaults to $HOME).")
    ap.add_argument("--ask-passphrase", action="store_true", help="Prompt for the backup passphrase instead of reading the environment.")
    ap.add_argument("--verbose", action="store_true")
    top = ap.add_subparsers(dest="command", required=True)
    backup = top.add_parser("backup", help="Create, restore and manage backups.")
    sub = backup.add_subparsers(dest="action", required=True)

    p = sub.add_parser("create", help="Create a full backup.")
    p.add_argument("--encrypt", action="store_true")
    p.add_argument("--keep", type=int, default=None, metavar="N", help="Delete backups older than N days afterwards (0 keeps everything).")
    p.add_argument("--desc", nargs="+", default=None, metavar="TEXT")

    p = sub.add_parser("incremental", help="Create an incremental backup on top of an existing one.")
    p.add_argument("base_id")

    p = sub.add_parser("restore", help="Restore a backup (merge by default).")
    p.add_argument("backup_id")
    p.add_argument("--preview", action="store_true")
    p.add_argument("--overwrite", action="store_true")

    p = sub.add_parser("list", help="List backups, newest first.")
    p.add_argument("--type", dest="kind", choices=[k.value for k in BackupKind], default=None)
    p.add_argument("--from", dest="date_from", default=None, metavar="YYYY-MM-DD")
    p.add_argument("--to", dest="date_to", default=None, metavar="YYYY-MM-DD")

    p = sub.add_parser("delete", help="Delete a backup.")
    p.add_argument("backup_id")
    p.add_argument("--cascade", action="store_true", help="Also delete backups that depend on it.")

    p = sub.add_parser("export", help="Export a backup to a standalone file.")
    p.add_argument("backup_id")
    p.add_argument("path")
    p.add_argument("--gzip", action="store_true")

    p = sub.add_parser("import", help="Import a backup file.")
    p.add_argument("path")
    p.add_argument("--encrypt", action="store_true")
    p.add_argument("--decrypt", action="store_true")

    p = sub.add_parser("clean", help="Delete backups older than N days.")
    p.add_argument("days", nargs="?", type=int, default=None)

    p = sub.add_parser("verify", help="Check a stored backup payload.")
    p.add_argument("backup_id")
    return ap


def run_backup(mgr: BackupManager, args: argparse.Namespace) -> List[str]:
    action = args.action
    if action == "create":
        rec = mgr.create_backup(encrypt=args.encrypt, keep_days=args.keep, description=" ".join(args.desc) if args.desc else None)
        return ["Backup created.", ""] + _describe(rec)
    if action == "incremental":
        rec = mgr.create_incremental_backup(args.base_id)
        return ["Incremental backup created.", ""] + _describe(rec)
    if action == "restore":
        res = mgr.restore_backup(args.backup_id, preview=args.preview, overwrite=args.overwrite)
        head = "Backup preview" if res.preview else f"Backup restored ({res.mode.value if res.mode else ''})"
        out = [head, f"id: {res.backup_id}", f"time: {format_ts(res.created_at)}", ""]
        out += [f"  {k}: {v} item(s)" for k, v in res.summary.items()]
        if res.pre_restore_backup:
            out.append(f"safety backup: {res.pre_restore_backup}")
        return out
    if action == "list":
        items = mgr.list_backups(
            kind=args.kind,
            date_from=parse_day(args.date_from) if args.date_from else None,
            date_to=parse_day(args.date_to, end_of_day=True) if args.date_to else None,
        )
        if not items:
            return ["No backups."]
        out: List[str] = []
        for rec in items:
            out += _describe(rec) + [""]
        out.append(f"{len(items)} backup(s)")
        return out
    if action == "delete":
        deleted = mgr.delete_backup(args.backup_id, cascade=args.cascade)
        return [f"Deleted: {', '.join(deleted)}"]
    if action == "export":
        target = mgr.export_backup(args.backup_id, args.path, "gzip" if args.gzip else "json")
        return [f"Exported to: {target}"]
    if action == "import":
        rec = mgr.import_backup(args.path, encrypt=args.encrypt, decrypt=args.decrypt)
        return [f"Imported as: {rec.id}"]
    if action == "clean":
        removed = mgr.clean_old_backups(args.days)
        days = mgr.cfg.default_keep_days if args.days is None else args.days
        return [f"Removed {len(removed)} backup(s) older than {days} day(s)."]
    if action == "verify":
        res = mgr.verify_backup(args.backup_id)
        return ["Backup OK." if res.ok else "Backup FAILED verification:"] + [f"  - {e}" for e in res.errors]
    raise ValidationError(f"Unknown backup action: {action}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cm = get_config(root=args.home)
    except XzchatError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1
    cfg = cm.get()
    logger = setup_logging(cm.fs.logs_dir, verbose=args.verbose)
    reporter = ErrorReporter(path=cm.fs.errors_log)

    passphrase = getpass.getpass("Backup passphrase: ") if args.ask_passphrase else None
    mgr = BackupManager(
        cfg=cfg,
        logger=logger.getChild("backup"),
        ops_log=OpsLogger(path=cm.fs.ops_log),
        passphrase_provider=PassphraseProvider(env_var=cfg.passphrase_env, value=passphrase),
    )
    trace_id = uuid.uuid4().hex[:12]
    try:
        lines = run_backup(mgr, args)
    except XzchatError as e:
        reporter.write_error(e, trace_id=trace_id, subsystem="backup")
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1
    except OSError as e:
        err = reporter.report_exception(e, trace_id=trace_id, subsystem="backup", context={"action": args.action})
        print(f"Error: {err.user_message}", file=sys.stderr)
        return 1
    print("\n".join(lines))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
