#!/usr/bin/env python3
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from cloudman import settings
from cloudman.shell import check_interactive, run
from cloudman.store import ConfigStore, load_or_exit

log = logging.getLogger(settings.LOGGER_NAME)

MSMTPRC = Path("/etc/msmtprc")
DEFAULT_PORTS = {"SSL": "465", "STARTTLS": "587", "NO-ENCRYPTION": "25"}

# provider -> (server, protocol, port)
PRESETS: Dict[str, tuple] = {
    "mail.de": ("smtp.mail.de", "SSL", "465"),
    "SMTP2GO": ("mail-eu.smtp2go.com", "SSL", "465"),
}

TEST_MAIL = """Congratulations!

Your SMTP relay is working properly. This is a test email.
"""


@dataclass
class SMTPSettings:
    server: str
    port: str
    protocol: str
    username: str = ""
    password: str = ""
    recipient: str = ""

    @classmethod
    def from_preset(cls, provider: str, username: str, password: str, recipient: str) -> "SMTPSettings":
        server, protocol, port = PRESETS[provider]
        return cls(server, port, protocol, username, password, recipient)

    def render(self) -> str:
        lines = [
            "# Set default values for all following accounts.",
            "defaults",
            f"auth            {'on' if self.username else 'off'}",
            "aliases         /etc/aliases",
            f"tls             {'off' if self.protocol == 'NO-ENCRYPTION' else 'on'}",
            f"tls_starttls    {'on' if self.protocol == 'STARTTLS' else 'off'}",
            "tls_trust_file  /etc/ssl/certs/ca-certificates.crt",
            "",
            "# Account to send emails",
            f"account         {self.username or 'default'}",
            f"host            {self.server}",
            f"port            {self.port}",
            f"from            {self.username or 'no-reply@localhost'}",
        ]
        if self.username:
            lines += [f"user            {self.username}", f"password        {self.password}"]
        lines += [
            "",
            f"account default : {self.username or 'default'}",
            "",
            "### DO NOT REMOVE THIS LINE (used in Nextcloud Server)",
            f"# recipient={self.recipient}",
            "",
        ]
        return "\n".join(lines)


class SMTPRelay:
    """msmtp relay for cron and notification mail. Needs an existing variables file."""

    def __init__(self, variables_path: Path = settings.VARIABLES_PATH):
        self.store: ConfigStore = load_or_exit(variables_path)

    def install(self) -> None:
        check_interactive("sudo apt-get update && sudo apt-get install -y msmtp msmtp-mta mailutils")

    def configure(self, smtp: SMTPSettings, path: Path = MSMTPRC) -> None:
        run(["sudo", "tee", str(path)], check=True, input_text=smtp.render())
        run(["sudo", "chmod", "600", str(path)], check=True)
        self.store.update({
            "smtp_server": smtp.server,
            "smtp_port": smtp.port,
            "smtp_protocol": smtp.protocol,
            "smtp_username": smtp.username,
            "smtp_recipient": smtp.recipient,
        })
        self.store.save()
        log.info("smtp relay configured via %s:%s", smtp.server, smtp.port)

    def send_test(self, recipient: str) -> None:
        run(["mail", "-s", "Test email from Cloudman", recipient], check=True, input_text=TEST_MAIL)

    def remove(self) -> None:
        check_interactive(["sudo", "apt-get", "purge", "-y", "msmtp", "msmtp-mta", "mailutils"])
        run(["sudo", "rm", "-f", str(MSMTPRC), "/etc/mail.rc", "/var/log/msmtp"], check=True)
        for key in ("smtp_server", "smtp_port", "smtp_protocol", "smtp_username", "smtp_recipient"):
            self.store.delete(key)
        self.store.save()

    def smtp_values(self) -> Dict[str, str]:
        return {k: v for k, v in self.store.as_dict().items() if k.startswith("smtp_")}
