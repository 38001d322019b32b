#!/usr/bin/env python3
import time
import shutil
import logging
from pathlib import Path
from typing import Callable, List, Optional

import requests

from cloudman import settings
from cloudman.nextcloud import Nextcloud, OCCError
from cloudman.shell import CommandError, processes_running, run

log = logging.getLogger(settings.LOGGER_NAME)

PACKAGE_MANAGERS = ["apt", "apt-get", "dpkg"]


class DownloadError(Exception):
    def __init__(self, message: str, url: str = "", attempts: int = 0):
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class UpdateError(Exception):
    pass


def download_file(
    url: str,
    directory: Path,
    filename: str,
    max_retries: int = 10,
    delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """
    Fetch ``url/filename`` into ``directory``, replacing any earlier copy.
    Retries up to ``max_retries`` times with a fixed delay between attempts.
    """
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / filename
    if target.exists():
        target.unlink()

    full_url = f"{url.rstrip('/')}/{filename}"
    last_exc: Optional[Exception] = None
    for attempt in range(1, max_retries + 1):
        print(f"Attempting to download {full_url}...")
        try:
            with requests.get(full_url, stream=True, timeout=60) as r:
                r.raise_for_status()
                with open(target, "wb") as fh:
                    for chunk in r.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            fh.write(chunk)
            print(f"File downloaded successfully to {target}")
            log.info("downloaded %s to %s (attempt %d)", full_url, target, attempt)
            return target
        except (requests.RequestException, OSError) as exc:
            last_exc = exc
            log.warning("download of %s failed (attempt %d of %d): %s", full_url, attempt, max_retries, exc)
            print(f"Failed to download {full_url} (Attempt {attempt} of {max_retries})")
            if target.exists():
                target.unlink()
            if attempt < max_retries:
                print(f"Retrying in {delay:.0f} seconds...")
                sleep(delay)
    raise DownloadError(f"Failed to download {full_url} after {max_retries} attempts: {last_exc}",
                        url=full_url, attempts=max_retries)


def free_space_gb(path: str) -> float:
    return shutil.disk_usage(path).free / (1024 ** 3)


class Updater:
    # pylint: disable=too-many-instance-attributes
    """
    Manual Nextcloud update in discrete steps:
      check_processes -> check_free_space -> maintenance on -> backup
      -> download -> extract -> upgrade -> cleanup -> maintenance off
    """
    def __init__(
        self,
        nc: Nextcloud,
        backup_dir: str = settings.BACKUP,
        download_dir: Optional[Path] = None,
        min_free_gb: float = 50.0,
    ):
        self.nc = nc
        self.backup_dir = backup_dir
        self.download_dir = download_dir or Path.home()
        self.min_free_gb = min_free_gb

    @property
    def archive(self) -> Path:
        return self.download_dir / "nextcloud-latest.zip"

    def check_processes(self) -> None:
        busy = processes_running(PACKAGE_MANAGERS)
        if busy:
            raise UpdateError(f"Package manager processes are running ({', '.join(busy)}). Wait for them to finish.")

    def check_free_space(self, path: str = "/") -> float:
        free = free_space_gb(path)
        if free < self.min_free_gb:
            raise UpdateError(f"Not enough disk space for backup: {free:.1f} GB free, "
                              f"at least {self.min_free_gb:.0f} GB required.")
        return free

    def backup_config_and_apps(self) -> List[str]:
        Path(self.backup_dir).mkdir(parents=True, exist_ok=True)
        done = []
        for sub in ("config", "apps"):
            run(["rsync", "-Aax", f"{self.nc.ncpath}/{sub}", self.backup_dir], check=True)
            done.append(f"{self.nc.ncpath}/{sub}")
        return done

    def download_release(self, sleep: Callable[[float], None] = time.sleep) -> Path:
        path = download_file(settings.RELEASE_URL, self.download_dir, settings.RELEASE_FILE, sleep=sleep)
        path.replace(self.archive)
        return self.archive

    def extract_release(self) -> None:
        if not self.archive.exists():
            raise UpdateError(f"{self.archive} not found; download the release first.")
        run(["sudo", "-u", settings.WEB_USER, "unzip", "-o", str(self.archive), "-d",
             str(Path(self.nc.ncpath).parent)], check=True)

    def upgrade(self) -> str:
        return self.nc.upgrade()

    def cleanup(self) -> bool:
        if self.archive.exists():
            self.archive.unlink()
            return True
        return False

    def run_full_update(self, sleep: Callable[[float], None] = time.sleep) -> None:
        self.check_processes()
        self.check_free_space()
        print("Enabling maintenance mode...")
        self.nc.set_maintenance(True)
        try:
            print("Backing up config and apps...")
            self.backup_config_and_apps()
            print("Downloading the latest release...")
            self.download_release(sleep=sleep)
            print("Extracting...")
            self.extract_release()
            print("Running occ upgrade...")
            self.upgrade()
            self.cleanup()
        except (CommandError, OCCError, DownloadError, UpdateError, OSError) as exc:
            log.error("full update failed: %s", exc)
            try:
                self.nc.set_maintenance(False)
            except OCCError as off_exc:
                print(f"(warning) could not disable maintenance mode: {off_exc}")
            raise
        print("Disabling maintenance mode...")
        self.nc.set_maintenance(False)
        log.info("full update completed")
