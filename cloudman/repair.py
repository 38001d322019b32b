#!/usr/bin/env python3
import json
from json import JSONDecodeError
from typing import Any, Dict, List, Sequence

from cloudman.shell import check_interactive, run
from cloudman.store import ConfigStore

DEPENDENCIES = ["curl", "whiptail", "lshw", "net-tools", "bash-completion", "cron"]


def is_installed(package: str) -> bool:
    result = run(["dpkg-query", "-W", "-f=${Status}", package])
    return result.ok and "ok installed" in result.out


def install_dependencies(packages: Sequence[str] = DEPENDENCIES) -> Dict[str, str]:
    done: Dict[str, str] = {}
    for dep in packages:
        if is_installed(dep):
            done[dep] = "already installed"
            continue
        print(f"Installing {dep}...")
        check_interactive(["sudo", "apt-get", "install", "-y", dep])
        done[dep] = "installed"
    return done


def parse_updates(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object, e.g. {\"DISTRO\": \"22.04\"}")
    return data


def merge_variables(store: ConfigStore, raw: str) -> List[str]:
    """Merge operator-entered JSON into the store; returns the keys written."""
    updates = parse_updates(raw)
    store.update(updates)
    return sorted(updates)
