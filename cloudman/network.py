#!/usr/bin/env python3
import re
import ipaddress
from typing import Dict, List, Sequence

from cloudman.shell import CommandError, have_cmd, output, run

FQDN_RE = re.compile(r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))+$")
WEB_PORTS = ("80/tcp", "443/tcp")


def valid_fqdn(name: str) -> bool:
    return bool(FQDN_RE.match(name or ""))


def current_fqdn() -> str:
    return output(["hostname", "--fqdn"])


def update_fqdn(new_fqdn: str) -> None:
    if not valid_fqdn(new_fqdn):
        raise CommandError(f"'{new_fqdn}' is not a valid FQDN")
    run(["sudo", "tee", "/etc/hostname"], check=True, input_text=new_fqdn + "\n")
    run(["sudo", "sed", "-i", f"s/^127\\.0\\.1\\.1.*/127.0.1.1 {new_fqdn}/", "/etc/hosts"], check=True)
    run(["sudo", "hostnamectl", "set-hostname", new_fqdn])


def parse_dns_servers(text: str) -> List[str]:
    servers: List[str] = []
    for line in text.splitlines():
        if "DNS Servers:" in line:
            servers.extend(line.split(":", 1)[1].split())
    return list(dict.fromkeys(servers))


def current_dns() -> List[str]:
    cmd = ["resolvectl", "status"] if have_cmd("resolvectl") else ["systemd-resolve", "--status"]
    return parse_dns_servers(output(cmd))


def validate_dns(servers: Sequence[str]) -> List[str]:
    clean = []
    for server in servers:
        try:
            clean.append(str(ipaddress.ip_address(server.strip())))
        except ValueError as exc:
            raise CommandError(f"'{server}' is not an IP address") from exc
    if not clean:
        raise CommandError("at least one DNS server is required")
    return clean


def update_dns(servers: Sequence[str], netplan_file: str) -> List[str]:
    clean = validate_dns(servers)
    line = f"        addresses: [{', '.join(clean)}]"
    run(["sudo", "sed", "-i", f"/nameservers:/{{n;s/.*/{line}/}}", netplan_file], check=True)
    run(["sudo", "netplan", "apply"], check=True)
    return clean


def open_web_ports() -> Dict[str, str]:
    if not have_cmd("ufw"):
        raise CommandError("ufw is not installed")
    rules = output(["sudo", "ufw", "status"])
    result = {}
    for port in WEB_PORTS:
        if port in rules:
            result[port] = "already open"
            continue
        run(["sudo", "ufw", "allow", port], check=True)
        result[port] = "opened"
    return result
