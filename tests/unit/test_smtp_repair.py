"""Tests for the SMTP relay and the repair helpers."""

import json
import pytest
from unittest.mock import patch

from cloudman import repair, terminate
from cloudman.smtp import SMTPRelay, SMTPSettings
from cloudman.store import ConfigStore


class TestSmtpSettings:
    def test_preset(self):
        smtp = SMTPSettings.from_preset("SMTP2GO", "me@example.com", "pw", "ops@example.com")

        assert smtp.server == "mail-eu.smtp2go.com"
        assert smtp.port == "465"
        assert smtp.protocol == "SSL"

    def test_render_with_auth(self):
        text = SMTPSettings("smtp.example.com", "587", "STARTTLS", "me@example.com", "pw", "ops@example.com").render()

        assert "auth            on" in text
        assert "tls_starttls    on" in text
        assert "password        pw" in text
        assert "# recipient=ops@example.com" in text

    def test_render_without_auth(self):
        text = SMTPSettings("relay.lan", "25", "NO-ENCRYPTION").render()

        assert "auth            off" in text
        assert "tls             off" in text
        assert "password" not in text


class TestSmtpRelay:
    def test_needs_variables_file(self, missing_file):
        with pytest.raises(SystemExit) as info:
            SMTPRelay(missing_file)
        assert info.value.code == 1

    def test_configure_saves_settings(self, variables_file, fake_run, tmp_path):
        relay = SMTPRelay(variables_file)
        smtp = SMTPSettings("smtp.example.com", "465", "SSL", "me@example.com", "pw", "ops@example.com")

        with patch("cloudman.smtp.run", fake_run):
            relay.configure(smtp, tmp_path / "msmtprc")

        saved = json.loads(variables_file.read_text(encoding="utf-8"))
        assert saved["smtp_server"] == "smtp.example.com"
        assert saved["DISTRO"] == "22.04"
        assert "smtp_password" not in saved
        assert relay.smtp_values()["smtp_recipient"] == "ops@example.com"


class TestRepair:
    def test_merge_variables(self):
        store = ConfigStore({"DISTRO": "20.04"})

        keys = repair.merge_variables(store, '{"DISTRO": "22.04", "PHPVER": "8.1"}')

        assert keys == ["DISTRO", "PHPVER"]
        assert store.get("DISTRO") == "22.04"

    @pytest.mark.parametrize("raw", ["{broken", "[1, 2]", '"text"'])
    def test_merge_rejects_bad_input(self, raw):
        with pytest.raises(ValueError):
            repair.merge_variables(ConfigStore(), raw)

    def test_install_skips_present_packages(self):
        with patch("cloudman.repair.is_installed", side_effect=lambda pkg: pkg == "curl"), \
                patch("cloudman.repair.check_interactive") as mock_install:
            done = repair.install_dependencies(["curl", "cron"])

        assert done == {"curl": "already installed", "cron": "installed"}
        mock_install.assert_called_once_with(["sudo", "apt-get", "install", "-y", "cron"])


class TestTerminate:
    def test_running_critical(self):
        with patch("cloudman.terminate.processes_running", return_value=["dpkg"]) as mock_ps:
            assert terminate.running_critical() == ["dpkg"]
        mock_ps.assert_called_once_with(terminate.CRITICAL_PROCESSES)
