#!/usr/bin/env python3
import re
import json
import logging
from dataclasses import dataclass, field
from json import JSONDecodeError
from typing import Any, Dict, List, Optional, Tuple

from cloudman import settings
from cloudman.shell import CommandResult, check_interactive, occ, run

log = logging.getLogger(settings.LOGGER_NAME)

APP_UPDATE_RE = re.compile(r"Update for (\S+?) to version (\d+(?:\.\d+)+) is available")
CORE_UPDATE_RE = re.compile(r"Nextcloud\s+(\d+(?:\.\d+)+)\s+is available")
APP_LINE_RE = re.compile(r"^\s*-\s+([^:\s]+)(?::\s*(\S+))?\s*$")

LOGROTATE_CONF = "/etc/logrotate.d/nextcloud.log.conf"
USER_FLOWS_MIN_VERSION = (18, 0, 4)


class OCCError(Exception):
    def __init__(self, message: str, returncode: int = 1, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


@dataclass
class AppList:
    enabled: Dict[str, str] = field(default_factory=dict)
    disabled: Dict[str, str] = field(default_factory=dict)

    def names(self) -> List[str]:
        return sorted(set(self.enabled) | set(self.disabled))


@dataclass
class UpdateSummary:
    app_updates: Dict[str, str] = field(default_factory=dict)
    core_version: Optional[str] = None

    def describe(self) -> str:
        parts = []
        if self.core_version:
            parts.append(f"Nextcloud {self.core_version} available")
        if self.app_updates:
            parts.append(f"{len(self.app_updates)} app update(s) available")
        return "; ".join(parts) if parts else "No app updates available"


def parse_app_list(text: str) -> AppList:
    apps = AppList()
    section: Optional[Dict[str, str]] = None
    for line in text.splitlines():
        head = line.strip().rstrip(":").lower()
        if head == "enabled":
            section = apps.enabled
            continue
        if head == "disabled":
            section = apps.disabled
            continue
        m = APP_LINE_RE.match(line)
        if m and section is not None:
            section[m.group(1)] = m.group(2) or ""
    return apps


def parse_update_check(text: str) -> UpdateSummary:
    summary = UpdateSummary()
    for name, version in APP_UPDATE_RE.findall(text):
        summary.app_updates[name] = version
    core = CORE_UPDATE_RE.search(text)
    if core:
        summary.core_version = core.group(1)
    return summary


def version_tuple(version: str) -> Tuple[int, ...]:
    """'28.0.3' -> (28, 0, 3); anything unparsable sorts first."""
    parts = re.findall(r"\d+", version or "")
    return tuple(int(p) for p in parts) if parts else (0,)


def render_logrotate(log_dir: str = "/var/log") -> str:
    blocks = []
    for name in ("nextcloud.log", "audit.log"):
        blocks.append(f"{log_dir}/{name} {{\n    daily\n    rotate 10\n    copytruncate\n}}\n")
    return "".join(blocks)


class Nextcloud:
    """Thin wrapper over `occ`, run as the web server user."""

    def __init__(self, ncpath: str = settings.NCPATH):
        self.ncpath = ncpath

    def _occ(self, *args: str) -> CommandResult:
        result = run(occ(*args, ncpath=self.ncpath))
        if not result.ok:
            raise OCCError(f"occ {' '.join(args)} failed (exit {result.rc}): {result.text()}",
                           result.rc, result.text())
        return result

    def command(self, *args: str) -> str:
        return self._occ(*args).text()

    # --------------------------
    # Status / maintenance
    # --------------------------
    def status(self) -> Dict[str, Any]:
        out = self._occ("status", "--output=json").out
        try:
            data = json.loads(out)
        except JSONDecodeError as exc:
            raise OCCError(f"unexpected occ status output: {out[:200]}") from exc
        return data if isinstance(data, dict) else {}

    def version(self) -> str:
        return str(self.status().get("versionstring", ""))

    def maintenance_enabled(self) -> bool:
        text = self._occ("maintenance:mode").text().lower()
        return "currently enabled" in text or "enabled: true" in text

    def set_maintenance(self, on: bool) -> str:
        return self._occ("maintenance:mode", "--on" if on else "--off").text()

    def repair(self) -> str:
        return self._occ("maintenance:repair").text()

    def upgrade(self) -> str:
        return self._occ("upgrade").text()

    # --------------------------
    # Apps
    # --------------------------
    def list_apps(self) -> AppList:
        return parse_app_list(self._occ("app:list").out)

    def enable_app(self, app_id: str) -> str:
        return self._occ("app:enable", app_id).text()

    def disable_app(self, app_id: str) -> str:
        return self._occ("app:disable", app_id).text()

    def remove_app(self, app_id: str) -> str:
        return self._occ("app:remove", app_id).text()

    def update_app(self, app_id: Optional[str] = None) -> str:
        return self._occ("app:update", app_id or "--all").text()

    def update_check(self) -> UpdateSummary:
        return parse_update_check(self._occ("update:check").out)

    def app_update_status(self) -> str:
        """Producer for the welcome screen's app update line."""
        return self.update_check().describe()

    # --------------------------
    # System config
    # --------------------------
    def config_system_set(self, *keys: str, value: str, value_type: Optional[str] = None) -> str:
        args = ["config:system:set", *keys, f"--value={value}"]
        if value_type:
            args.append(f"--type={value_type}")
        return self._occ(*args).text()

    def config_system_delete(self, *keys: str) -> str:
        return self._occ("config:system:delete", *keys).text()

    def config_app_set(self, app: str, key: str, value: str) -> str:
        return self._occ("config:app:set", app, key, f"--value={value}").text()

    # --------------------------
    # Settings actions
    # --------------------------
    def set_share_folder(self, folder: str = "/Shared") -> str:
        return self.config_system_set("share_folder", value=folder)

    def update_mimetypes(self) -> str:
        js = self._occ("maintenance:mimetype:update-js").text()
        db = self._occ("maintenance:mimetype:update-db").text()
        return "\n".join(x for x in (js, db) if x)

    def enable_logrotate(self, conf: str = LOGROTATE_CONF, log_dir: str = "/var/log") -> str:
        """Switch off Nextcloud's size-based rotation and install a daily logrotate rule instead."""
        self.config_system_set("log_rotate_size", value="0", value_type="integer")
        run(["sudo", "tee", conf], check=True, input_text=render_logrotate(log_dir))
        log.info("logrotate rule written to %s", conf)
        return f"Logs in {log_dir} are now rotated daily by logrotate ({conf})."

    def disable_user_flows(self) -> str:
        ver = self.version()
        if version_tuple(ver) < USER_FLOWS_MIN_VERSION:
            raise OCCError(f"user flows can only be disabled on Nextcloud 18.0.4 and above (found {ver or 'unknown'})")
        return self.config_app_set("workflowengine", "user_scope_disabled", "yes")

    def disable_workspaces(self) -> str:
        if "text" not in self.list_apps().enabled:
            raise OCCError("the text app is not enabled")
        return self.config_app_set("text", "workspace_available", "0")

    # --------------------------
    # Add-on scripts
    # --------------------------
    def configure_cookie_lifetime(self) -> str:
        check_interactive(["bash", f"{settings.SCRIPTS}/addons/cookielifetime.sh"])
        return ""

    def check_zero_byte_files(self) -> str:
        check_interactive(["bash", f"{settings.SCRIPTS}/addons/0-byte-files.sh"])
        return ""
