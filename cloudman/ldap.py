#!/usr/bin/env python3
import re
from typing import List

from cloudman.nextcloud import Nextcloud

LDAP_APP = "user_ldap"
CONFIG_ID_RE = re.compile(r"\|\s*Configuration\s*\|\s*(s\d+)\s*\|")


def enable(nc: Nextcloud) -> str:
    return nc.enable_app(LDAP_APP)


def show_config(nc: Nextcloud) -> str:
    return nc.command("ldap:show-config")


def config_ids(show_config_output: str) -> List[str]:
    return CONFIG_ID_RE.findall(show_config_output)


def test_config(nc: Nextcloud, config_id: str) -> str:
    return nc.command("ldap:test-config", config_id)
