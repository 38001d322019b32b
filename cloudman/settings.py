#!/usr/bin/env python3
import os
import logging
from pathlib import Path

# State lives under the directory the console is started from
PROJECT_ROOT = Path.cwd()

CONFIG_DIR = PROJECT_ROOT / ".cloudman"
LOGS_DIR = CONFIG_DIR / "logs"
LOG_FILE = LOGS_DIR / "cloudman.log"

VARIABLES_PATH = Path(os.environ.get("CLOUDMAN_VARIABLES", "./variables.json"))

# ---------------------------
# Nextcloud stack defaults
# ---------------------------

SCRIPTS = "/var/scripts"
HTML = "/var/www"
NCPATH = os.environ.get("CLOUDMAN_NCPATH", f"{HTML}/nextcloud")
POOLNAME = "ncdata"
NCDATA = f"/mnt/{POOLNAME}"
BACKUP = "/mnt/NCBACKUP"
VMLOGS = "/var/log/nextcloud"
INTERFACES = "/etc/netplan/nextcloud.yaml"

WEB_USER = "www-data"
RELEASE_URL = "https://download.nextcloud.com/server/releases"
RELEASE_FILE = "latest.zip"
WANIP_URL = "https://api64.ipify.org"

INTERNET_DNS = "9.9.9.9"
DNS1 = "9.9.9.9"
DNS2 = "149.112.112.112"
NONO_PORTS = [22, 25, 53, 80, 443, 1024, 3012, 3306, 5178, 5179, 5432, 7867, 7983,
              8983, 10000, 8081, 8443, 9443, 9000, 9980, 9090, 9200, 9600, 1234]

# How long the app update summary on the welcome screen is trusted
APP_UPDATE_INTERVAL_MS = 60 * 60 * 1000

LOGGER_NAME = "cloudman"


def setup_logging(log_file: Path = LOG_FILE) -> logging.Logger:
    """Send the console's own log to a file; the operator sees print() output only."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as exc:
        print(f"(warning) could not open log file {log_file}: {exc}")
        logger.addHandler(logging.NullHandler())
        return logger
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"))
    logger.addHandler(fh)
    return logger
