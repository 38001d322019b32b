#!/usr/bin/env python3
import shlex
from pathlib import Path

from cloudman.shell import output, run

DEFAULT_DUMP = Path.home() / "backups" / "nextcloud_db_backup.sql"


def backup_all(dest: Path = DEFAULT_DUMP) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    run(f"sudo -u postgres pg_dumpall > {shlex.quote(str(dest))}", check=True)
    return dest


def restore_all(src: Path = DEFAULT_DUMP) -> None:
    if not src.exists():
        raise FileNotFoundError(f"no dump at {src}")
    run(f"sudo -u postgres psql < {shlex.quote(str(src))}", check=True)


def status() -> str:
    return run(["systemctl", "status", "postgresql", "--no-pager"]).text()


def user_count(db_name: str) -> str:
    out = output(["sudo", "-u", "postgres", "psql", "-t", "-d", db_name, "-c", "SELECT COUNT(*) FROM oc_users;"])
    return out.strip() or "N/A"
