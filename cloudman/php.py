#!/usr/bin/env python3
import re
import logging
from typing import Optional

from cloudman import settings
from cloudman.nextcloud import Nextcloud
from cloudman.shell import CommandError, check_interactive, output, run
from cloudman.store import ConfigStore

log = logging.getLogger(settings.LOGGER_NAME)

VERSION_RE = re.compile(r"^PHP\s+((\d+)\.(\d+)\.\d+)", re.MULTILINE)


def parse_version(php_v: str) -> Optional[str]:
    m = VERSION_RE.search(php_v)
    return f"{m.group(2)}.{m.group(3)}" if m else None


def identify(store: ConfigStore) -> str:
    """Detect the PHP minor version and remember it as PHPVER."""
    ver = parse_version(output(["php", "-v"]))
    if not ver:
        raise CommandError("could not detect the installed PHP version")
    store.set("PHPVER", ver)
    return ver


def fpm_unit(store: ConfigStore) -> str:
    ver = store.get("PHPVER", None) or identify(store)
    return f"php{ver}-fpm"


def restart_fpm(store: ConfigStore) -> str:
    unit = fpm_unit(store)
    run(["sudo", "systemctl", "restart", unit], check=True)
    return unit


def tail_log(store: ConfigStore, lines: int = 100) -> str:
    log_file = f"/var/log/{fpm_unit(store)}.log"
    return run(["sudo", "tail", "-n", str(lines), log_file], check=True).text()


# Apache modules Nextcloud needs with PHP-FPM behind it
APACHE_MODULES = ["rewrite", "headers", "proxy", "proxy_fcgi", "ssl"]


def repair(store: ConfigStore, nc: Nextcloud) -> str:
    """Reinstall Apache and re-attach PHP-FPM; the site stays in maintenance mode on failure."""
    unit = fpm_unit(store)
    nc.set_maintenance(True)
    run(["sudo", "systemctl", "stop", "apache2.service"], check=True)
    check_interactive("sudo apt-get purge -y 'apache2*' && sudo apt-get autoremove -y && sudo apt-get clean")
    check_interactive(["sudo", "apt-get", "install", "-y", "apache2"])
    run(["sudo", "a2enmod", *APACHE_MODULES], check=True)
    run(["sudo", "a2enconf", unit], check=True)
    run(["sudo", "systemctl", "restart", "apache2", unit], check=True)
    nc.set_maintenance(False)
    log.info("apache2 reinstalled and attached to %s", unit)
    return unit


def remove(store: ConfigStore, nc: Nextcloud) -> None:
    nc.set_maintenance(True)
    run(["sudo", "systemctl", "stop", "apache2.service"], check=True)
    check_interactive("sudo apt-get purge -y 'php*' && sudo apt-get autoremove -y")
    run(["sudo", "rm", "-rf", "/etc/php"], check=True)
    run(["sudo", "systemctl", "start", "apache2.service"], check=True)
    store.delete("PHPVER")
    log.warning("PHP removed; Nextcloud stays in maintenance mode until PHP is reinstalled")
