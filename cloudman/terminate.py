#!/usr/bin/env python3
from typing import List

from cloudman.shell import processes_running

CRITICAL_PROCESSES = ["apt", "apt-get", "dpkg", "unattended-upgrades", "unattended-upgr"]


def running_critical() -> List[str]:
    """Package manager activity that an abrupt exit could leave half done."""
    return processes_running(CRITICAL_PROCESSES)
