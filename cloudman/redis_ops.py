#!/usr/bin/env python3
import re
import logging
from typing import List

from cloudman import settings
from cloudman.nextcloud import Nextcloud, OCCError
from cloudman.shell import CommandError, check_interactive, have_cmd, output, run, service_state
from cloudman.store import ConfigStore
from cloudman.sysinfo import gen_passwd

log = logging.getLogger(settings.LOGGER_NAME)

REDIS_SERVICE = "redis-server"
REDIS_CONF = "/etc/redis/redis.conf"
REDIS_SOCK = "/var/run/redis/redis-server.sock"

# occ system keys that point Nextcloud at Redis
MEMCACHE_KEYS: List[List[str]] = [
    ["memcache.local"],
    ["memcache.distributed"],
    ["filelocking.enabled"],
    ["memcache.locking"],
    ["redis", "password"],
    ["redis"],
]


def php_version() -> str:
    m = re.search(r"^PHP\s+(\d+\.\d+)", output(["php", "-v"]), re.MULTILINE)
    return m.group(1) if m else "unknown"


def redis_conf_edits(sock: str, password: str) -> List[List[str]]:
    """sed invocations that switch redis.conf to a password-protected unix socket."""
    return [
        ["sudo", "sed", "-i", f"s|^#\\? *unixsocket .*|unixsocket {sock}|", REDIS_CONF],
        ["sudo", "sed", "-i", "s|^#\\? *unixsocketperm .*|unixsocketperm 777|", REDIS_CONF],
        ["sudo", "sed", "-i", "s|^port .*|port 0|", REDIS_CONF],
        ["sudo", "sed", "-i", f"s|^#\\? *requirepass .*|requirepass {password}|", REDIS_CONF],
    ]


class RedisManager:
    def __init__(self, store: ConfigStore, nc: Nextcloud):
        self.store = store
        self.nc = nc

    def installed(self) -> bool:
        return have_cmd(REDIS_SERVICE)

    def status(self) -> str:
        return service_state(REDIS_SERVICE)

    def delete_nextcloud_config(self) -> List[str]:
        """Drop memcache/redis keys; missing keys are not an error."""
        removed = []
        for keys in MEMCACHE_KEYS:
            try:
                self.nc.config_system_delete(*keys)
                removed.append(" ".join(keys))
            except OCCError as exc:
                log.info("occ key %s not removed: %s", " ".join(keys), exc)
        return removed

    def install(self) -> None:
        self.delete_nextcloud_config()
        if self.installed():
            print("Redis is already installed.")
        else:
            check_interactive("sudo apt-get update && sudo apt-get install -y redis-server")
            check_interactive(["sudo", "systemctl", "enable", "--now", REDIS_SERVICE])
            print("Redis installation complete.")
        self.install_php_module()

    def install_php_module(self) -> None:
        if "redis" in output(["php", "-m"]).split():
            print("PHP Redis module is already installed.")
            return
        ver = php_version()
        check_interactive(["sudo", "apt-get", "install", "-y", f"php{ver}-redis"])
        run(["sudo", "phpenmod", "-v", "ALL", "redis"], check=True)

    def remove(self) -> None:
        self.delete_nextcloud_config()
        check_interactive(["sudo", "apt-get", "purge", "-y", REDIS_SERVICE])
        check_interactive(["sudo", "apt-get", "autoremove", "-y"])
        self.store.delete("REDIS_PASS")

    def configure_for_nextcloud(self, password: str = "") -> str:
        password = password or gen_passwd(32, "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")
        for cmd in redis_conf_edits(REDIS_SOCK, password):
            run(cmd, check=True)
        self.restart()

        self.nc.config_system_set("redis", "host", value=REDIS_SOCK)
        self.nc.config_system_set("redis", "port", value="0", value_type="integer")
        self.nc.config_system_set("redis", "dbindex", value="0", value_type="integer")
        self.nc.config_system_set("redis", "timeout", value="0.5", value_type="float")
        self.nc.config_system_set("redis", "password", value=password)
        self.nc.config_system_set("memcache.local", value="\\OC\\Memcache\\Redis")
        self.nc.config_system_set("memcache.distributed", value="\\OC\\Memcache\\Redis")
        self.nc.config_system_set("memcache.locking", value="\\OC\\Memcache\\Redis")
        self.nc.config_system_set("filelocking.enabled", value="true", value_type="boolean")

        self.store.set("REDIS_PASS", password)
        self.store.set("REDIS_SOCK", REDIS_SOCK)
        log.info("redis configured for nextcloud on %s", REDIS_SOCK)
        return password

    def restart(self) -> None:
        run(["sudo", "systemctl", "restart", REDIS_SERVICE], check=True)

    def ping(self) -> str:
        password = self.store.get("REDIS_PASS", "")
        cmd = ["redis-cli", "-s", REDIS_SOCK]
        if password:
            cmd += ["-a", str(password), "--no-auth-warning"]
        try:
            return run(cmd + ["ping"], check=True, timeout=5).text()
        except CommandError as exc:
            return f"no answer ({exc})"
