#!/usr/bin/env python3
import re
import secrets
import string
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from cloudman import settings
from cloudman.shell import output
from cloudman.store import ConfigStore

log = logging.getLogger(settings.LOGGER_NAME)

DEFAULT_CHARSET = string.ascii_letters + string.digits + "@#*"


def default_route(route_output: str) -> Dict[str, str]:
    """Gateway and interface from `ip route` output."""
    for line in route_output.splitlines():
        parts = line.split()
        if len(parts) >= 5 and parts[0] == "default" and parts[1] == "via":
            iface = parts[parts.index("dev") + 1] if "dev" in parts else ""
            return {"GATEWAY": parts[2], "IFACE": iface}
    return {"GATEWAY": "", "IFACE": ""}


def up_interfaces(link_output: str) -> List[str]:
    """Names of interfaces in state UP from `ip -o link show`."""
    names = []
    for line in link_output.splitlines():
        parts = line.split()
        if "state" not in parts or len(parts) < 2:
            continue
        state_at = parts.index("state") + 1
        if state_at < len(parts) and parts[state_at] == "UP":
            names.append(parts[1].rstrip(":").split("@")[0])
    return names


def first_repo(sources: str) -> str:
    for line in sources.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "deb" and parts[1].startswith("http"):
            return parts[1]
    return ""


def keyboard_layout(localectl_output: str) -> str:
    m = re.search(r"Layout:\s*(\S+)", localectl_output)
    return m.group(1) if m else ""


def wan_ipv4(timeout: float = 5.0) -> str:
    try:
        r = requests.get(settings.WANIP_URL, timeout=timeout)
    except requests.RequestException as exc:
        log.warning("WAN address lookup failed: %s", exc)
        return ""
    if not r.ok:
        log.warning("WAN address lookup returned HTTP %s", r.status_code)
        return ""
    return r.text.strip()


def _read(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return ""


def detect_facts(include_wan: bool = True) -> Dict[str, Any]:
    route = default_route(output(["ip", "route"]))
    up = [name for name in up_interfaces(output(["ip", "-o", "link", "show"])) if name != route["IFACE"]]
    addresses = output(["hostname", "-I"]).split()
    facts: Dict[str, Any] = {
        "SCRIPTS": settings.SCRIPTS,
        "HTML": settings.HTML,
        "NCPATH": settings.NCPATH,
        "POOLNAME": settings.POOLNAME,
        "NCDATA": settings.NCDATA,
        "BACKUP": settings.BACKUP,
        "NC_APPS_PATH": f"{settings.NCPATH}/apps",
        "VMLOGS": settings.VMLOGS,
        "INTERFACES": settings.INTERFACES,
        "PSQLVER": output(["psql", "--version"]),
        "DISTRO": output(["lsb_release", "-sr"]),
        "CODENAME": output(["lsb_release", "-sc"]),
        "KEYBOARD_LAYOUT": keyboard_layout(output(["localectl", "status"])),
        "SYSVENDOR": _read("/sys/devices/virtual/dmi/id/sys_vendor"),
        "IFACE": route["IFACE"],
        "IFACE2": up[0] if up else "",
        "GATEWAY": route["GATEWAY"],
        "REPO": first_repo(_read("/etc/apt/sources.list")),
        "ADDRESS": addresses[0] if addresses else "",
        "WANIP4": wan_ipv4() if include_wan else "",
        "INTERNET_DNS": settings.INTERNET_DNS,
        "DNS1": settings.DNS1,
        "DNS2": settings.DNS2,
        "NONO_PORTS": list(settings.NONO_PORTS),
    }
    return facts


def refresh_facts(store: ConfigStore, include_wan: bool = True) -> Dict[str, Any]:
    facts = detect_facts(include_wan=include_wan)
    store.update(facts)
    log.info("system facts refreshed (%d keys)", len(facts))
    return facts


def gen_passwd(length: int = 16, charset: Optional[str] = None) -> str:
    chars = charset or DEFAULT_CHARSET
    return "".join(secrets.choice(chars) for _ in range(length))
