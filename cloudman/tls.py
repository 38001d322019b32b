#!/usr/bin/env python3
import socket
import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, List, Optional

import requests
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dh

from cloudman import settings
from cloudman.shell import have_cmd, run, run_interactive

log = logging.getLogger(settings.LOGGER_NAME)

LETSENCRYPT_LIVE = Path("/etc/letsencrypt/live")
DHPARAMS_PATH = Path("/etc/ssl/certs/dhparam.pem")
APACHE_SITES = Path("/etc/apache2/sites-available")


class TLSError(Exception):
    def __init__(self, message: str, domain: str = ""):
        super().__init__(message)
        self.domain = domain


@dataclass
class CertInfo:
    subject: str
    issuer: str
    names: List[str]
    not_before: datetime
    not_after: datetime

    def days_left(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(UTC)
        return (self.not_after - now).days

    def summary(self, now: Optional[datetime] = None) -> str:
        return (
            f"Subject : {self.subject}\n"
            f"Issuer  : {self.issuer}\n"
            f"Names   : {', '.join(self.names) or '-'}\n"
            f"Valid   : {self.not_before:%Y-%m-%d} -> {self.not_after:%Y-%m-%d} "
            f"({self.days_left(now)} days left)"
        )


def cert_path(domain: str) -> Path:
    return LETSENCRYPT_LIVE / domain / "cert.pem"


def read_certificate(pem: bytes) -> CertInfo:
    try:
        cert = x509.load_pem_x509_certificate(pem)
    except ValueError as exc:
        raise TLSError(f"not a PEM certificate: {exc}") from exc
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        names = []
    return CertInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        names=list(names),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
    )


def certificate_info(domain: str) -> CertInfo:
    path = cert_path(domain)
    try:
        return read_certificate(path.read_bytes())
    except OSError as exc:
        raise TLSError(f"could not read {path}: {exc}", domain) from exc


def generate_dhparams(key_size: int = 2048) -> bytes:
    params = dh.generate_parameters(generator=2, key_size=key_size)
    return params.parameter_bytes(serialization.Encoding.PEM, serialization.ParameterFormat.PKCS3)


def write_dhparams(path: Path = DHPARAMS_PATH, key_size: int = 2048, overwrite: bool = False) -> bool:
    """Generate DH params into ``path``; returns False when a file is already there."""
    if path.exists() and not overwrite:
        return False
    pem = generate_dhparams(key_size)
    try:
        path.write_bytes(pem)
    except OSError as exc:
        raise TLSError(f"could not write {path}: {exc}") from exc
    log.info("wrote %d-bit DH parameters to %s", key_size, path)
    return True


def is_port_open(host: str, port: int, timeout: float = 3.0) -> bool:
    """Check if a TCP port is open and accepting connections."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except (OSError, ValueError):
        # ValueError: host names that fail IDNA encoding (empty or over-long labels)
        return False


def check_ports(domain: str, ports: tuple = (80, 443)) -> Dict[int, bool]:
    return {port: is_port_open(domain, port) for port in ports}


def is_reachable(domain: str, timeout: float = 10.0) -> bool:
    try:
        r = requests.get(f"http://{domain}", timeout=timeout, allow_redirects=False)
    except (requests.RequestException, ValueError) as exc:
        log.info("%s not reachable: %s", domain, exc)
        return False
    return r.status_code == 200


def install_certbot() -> None:
    if have_cmd("certbot"):
        return
    if run_interactive(["sudo", "apt-get", "install", "-y", "certbot", "python3-certbot-apache"]) != 0:
        raise TLSError("could not install certbot")


def certbot_command(domain: str, email: str, dry_run: bool = False) -> List[str]:
    cmd = ["sudo", "certbot", "certonly", "--apache", "--agree-tos", "--non-interactive",
           "-m", email, "-d", domain]
    if dry_run:
        cmd.append("--dry-run")
    return cmd


def generate_certificate(domain: str, email: str, dry_run: bool = False) -> None:
    rc = run_interactive(certbot_command(domain, email, dry_run=dry_run))
    if rc != 0:
        raise TLSError(f"certbot {'dry run ' if dry_run else ''}failed for {domain} (exit {rc})", domain)


def activate_site(domain: str, old_conf: str = "") -> None:
    conf = f"{domain}.conf"
    if not (APACHE_SITES / conf).exists():
        raise TLSError(f"{APACHE_SITES / conf} does not exist", domain)
    run(["sudo", "a2ensite", conf], check=True)
    if old_conf:
        run(["sudo", "a2dissite", old_conf], check=True)
    restart_web_server()


def restart_web_server() -> None:
    run(["sudo", "systemctl", "restart", "apache2"], check=True)
