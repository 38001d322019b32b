#!/usr/bin/env python3
import re
import shlex
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from cloudman import settings
from cloudman.shell import run
from cloudman.store import ConfigStore

log = logging.getLogger(settings.LOGGER_NAME)

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"
TIMESTAMP_RE = re.compile(r"(\d{8}T\d{6})")
USERS_COPY_RE = re.compile(r"COPY public\.oc_users.*?FROM stdin;\n(.*?)\n\\\.", re.DOTALL)

DEFAULT_DB = "nextcloud_db"
DEFAULT_DB_USER = "ncadmin"


class BackupError(Exception):
    def __init__(self, message: str, target: str = ""):
        super().__init__(message)
        self.target = target


@dataclass(frozen=True)
class Target:
    name: str
    source: str
    suffix: str = ".tar.gz"


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_backup_timestamp(stamp: str) -> str:
    """20240105T093000 -> '5th Jan 09:30:00 | 2024'."""
    try:
        dt = datetime.strptime(stamp, TIMESTAMP_FORMAT)
    except (TypeError, ValueError):
        return "Invalid timestamp"
    return f"{_ordinal(dt.day)} {dt.strftime('%b')} {dt.strftime('%H:%M:%S')} | {dt.year}"


def user_count_from_dump(dump: Path) -> str:
    """Rows in the oc_users COPY block of a plain SQL dump, or 'N/A'."""
    try:
        content = dump.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return "N/A"
    m = USERS_COPY_RE.search(content)
    if not m:
        return "0"
    return str(len([line for line in m.group(1).splitlines() if line.strip()]))


class BackupManager:
    def __init__(self, store: ConfigStore):
        self.store = store
        self.backup_dir = Path(str(store.get("BACKUP", settings.BACKUP)))
        ncpath = str(store.get("NCPATH", settings.NCPATH))
        self.db_name = str(store.get("NCDB", DEFAULT_DB))
        self.db_user = str(store.get("NCDBUSER", DEFAULT_DB_USER))
        self.targets: Dict[str, Target] = {
            "postgresql": Target("postgresql", self.db_name, ".sql"),
            "nextcloud": Target("nextcloud", ncpath),
            "redis": Target("redis", "/etc/redis"),
            "apache": Target("apache", "/etc/apache2"),
            "php": Target("php", "/etc/php"),
        }

    def ensure_backup_dir(self) -> Path:
        if not self.backup_dir.exists():
            print(f"Creating backup directory {self.backup_dir}...")
            run(["sudo", "mkdir", "-p", str(self.backup_dir)], check=True)
        return self.backup_dir

    def _target(self, name: str) -> Target:
        try:
            return self.targets[name]
        except KeyError as exc:
            raise BackupError(f"unknown backup target '{name}'", name) from exc

    def archive_path(self, name: str, stamp: Optional[str] = None) -> Path:
        target = self._target(name)
        return self.backup_dir / f"{target.name}_backup_{stamp or timestamp()}{target.suffix}"

    def backup(self, name: str) -> Path:
        target = self._target(name)
        self.ensure_backup_dir()
        dest = self.archive_path(name)
        if name == "postgresql":
            cmd = f"sudo -u postgres pg_dump {shlex.quote(target.source)} | sudo tee {shlex.quote(str(dest))} > /dev/null"
            run(cmd, check=True)
        else:
            run(["sudo", "tar", "-czf", str(dest), "-C", str(Path(target.source).parent), Path(target.source).name],
                check=True)
        log.info("backup of %s written to %s", name, dest)
        self.store.set(f"last_backup_{name}", dest.name)
        return dest

    def list_backups(self, name: Optional[str] = None) -> List[Path]:
        if not self.backup_dir.exists():
            return []
        names = [name] if name else list(self.targets)
        found: List[Path] = []
        for n in names:
            target = self._target(n)
            found.extend(self.backup_dir.glob(f"{target.name}_backup_*{target.suffix}"))
        return sorted(found, key=lambda p: (p.name.split("_backup_")[0], self.stamp_of(p)))

    @staticmethod
    def stamp_of(path: Path) -> str:
        m = TIMESTAMP_RE.search(path.name)
        return m.group(1) if m else ""

    def latest(self, name: str) -> Path:
        backups = self.list_backups(name)
        if not backups:
            raise BackupError(f"no {name} backup found in {self.backup_dir}", name)
        return backups[-1]

    def restore(self, name: str, archive: Optional[Path] = None) -> Path:
        target = self._target(name)
        archive = archive or self.latest(name)
        if name == "postgresql":
            db = shlex.quote(target.source)
            run(["sudo", "-u", "postgres", "psql", "-c", f'DROP DATABASE IF EXISTS "{target.source}";'], check=True)
            run(["sudo", "-u", "postgres", "psql", "-c",
                 f'CREATE DATABASE "{target.source}" OWNER "{self.db_user}";'], check=True)
            run(f"sudo -u postgres psql {db} < {shlex.quote(str(archive))}", check=True)
        else:
            run(["sudo", "tar", "-xzf", str(archive), "-C", str(Path(target.source).parent)], check=True)
        log.info("restored %s from %s", name, archive)
        return archive
