#!/usr/bin/env python3
from typing import List

from cloudman.shell import CommandResult, run


def _names(fmt: str, all_containers: bool = True) -> List[str]:
    cmd = ["docker", "ps", "--format", fmt]
    if all_containers:
        cmd.insert(2, "-a")
    return [line.strip() for line in run(cmd, check=True).out.splitlines() if line.strip()]


def list_containers() -> str:
    return run(["docker", "ps", "-a"], check=True).text()


def list_images() -> str:
    return run(["docker", "images"], check=True).text()


def list_networks() -> str:
    return run(["docker", "network", "ls"], check=True).text()


def container_names(running_only: bool = False) -> List[str]:
    return _names("{{.Names}}", all_containers=not running_only)


def image_names() -> List[str]:
    out = run(["docker", "images", "--format", "{{.Repository}}:{{.Tag}}"], check=True).out
    return [line.strip() for line in out.splitlines() if line.strip() and "<none>" not in line]


def start_container(name: str) -> CommandResult:
    return run(["docker", "start", name], check=True)


def stop_container(name: str) -> CommandResult:
    return run(["docker", "stop", name], check=True)


def remove_container(name: str) -> CommandResult:
    return run(["docker", "rm", name], check=True)


def remove_image(name: str, force: bool = False) -> CommandResult:
    cmd = ["docker", "rmi", name]
    if force:
        cmd.insert(2, "--force")
    return run(cmd, check=True)
