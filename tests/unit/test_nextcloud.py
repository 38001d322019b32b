"""Tests for occ output parsing and the Nextcloud wrapper."""

import pytest
from unittest.mock import patch

from cloudman.nextcloud import (
    LOGROTATE_CONF,
    Nextcloud,
    OCCError,
    UpdateSummary,
    parse_app_list,
    parse_update_check,
    render_logrotate,
    version_tuple,
)
from cloudman.shell import CommandResult


class TestParsing:
    def test_parse_app_list(self, sample_app_list):
        apps = parse_app_list(sample_app_list)

        assert apps.enabled == {"activity": "2.19.0", "calendar": "4.6.4", "files": "2.0.0"}
        assert apps.disabled == {"encryption": "2.16.0", "user_ldap": "1.18.0"}
        assert apps.names()[0] == "activity"

    def test_parse_app_list_empty(self):
        apps = parse_app_list("")
        assert apps.enabled == {} and apps.disabled == {}

    def test_parse_update_check(self, sample_update_check):
        summary = parse_update_check(sample_update_check)

        assert summary.app_updates == {"calendar": "4.7.0", "mail": "3.6.1"}
        assert summary.core_version == "28.0.4"

    def test_parse_update_check_nothing(self):
        summary = parse_update_check("Everything up to date\n")

        assert summary.app_updates == {}
        assert summary.core_version is None
        assert summary.describe() == "No app updates available"

    def test_describe(self, sample_update_check):
        assert parse_update_check(sample_update_check).describe() == (
            "Nextcloud 28.0.4 available; 2 app update(s) available"
        )
        assert UpdateSummary({"mail": "3.6.1"}).describe() == "1 app update(s) available"


class TestNextcloud:
    def test_app_update_status(self, fake_run, sample_update_check):
        fake_run.on("update:check", out=sample_update_check)
        with patch("cloudman.nextcloud.run", fake_run):
            status = Nextcloud("/srv/nc").app_update_status()

        assert "2 app update(s)" in status
        assert fake_run.calls == ["sudo -u www-data php /srv/nc/occ update:check"]

    def test_failed_occ_raises(self, fake_run):
        fake_run.on("app:enable", rc=1, err="App not found")
        with patch("cloudman.nextcloud.run", fake_run):
            with pytest.raises(OCCError) as info:
                Nextcloud().enable_app("nope")

        assert "App not found" in str(info.value)

    def test_update_all_apps(self, fake_run):
        with patch("cloudman.nextcloud.run", fake_run):
            Nextcloud("/srv/nc").update_app()

        assert fake_run.calls[-1].endswith("app:update --all")

    def test_maintenance_enabled(self, fake_run):
        fake_run.on("maintenance:mode", out="Maintenance mode is currently enabled\n")
        with patch("cloudman.nextcloud.run", fake_run):
            assert Nextcloud().maintenance_enabled() is True

    def test_status_bad_json(self, fake_run):
        fake_run.on("status", out="<html>")
        with patch("cloudman.nextcloud.run", fake_run):
            with pytest.raises(OCCError):
                Nextcloud().status()

    def test_version(self):
        result = CommandResult(0, '{"installed": true, "versionstring": "28.0.3"}', "")
        with patch("cloudman.nextcloud.run", return_value=result):
            assert Nextcloud().version() == "28.0.3"


class TestSettingsActions:
    def test_render_logrotate(self):
        text = render_logrotate("/var/log")

        assert "/var/log/nextcloud.log {" in text
        assert "/var/log/audit.log {" in text
        assert text.count("daily") == 2
        assert text.count("rotate 10") == 2
        assert text.count("copytruncate") == 2

    def test_enable_logrotate_writes_rule(self, fake_run):
        with patch("cloudman.nextcloud.run", fake_run):
            Nextcloud("/srv/nc").enable_logrotate()

        assert "config:system:set log_rotate_size --value=0 --type=integer" in fake_run.calls[0]
        assert fake_run.calls[1] == f"sudo tee {LOGROTATE_CONF}"
        assert fake_run.inputs[1] == render_logrotate()

    @pytest.mark.parametrize("version,expected", [
        ("28.0.3", (28, 0, 3)),
        ("18.0.4.2", (18, 0, 4, 2)),
        ("", (0,)),
    ])
    def test_version_tuple(self, version, expected):
        assert version_tuple(version) == expected

    def test_user_flows_need_recent_nextcloud(self, fake_run):
        fake_run.on("status", out='{"versionstring": "18.0.3"}')
        with patch("cloudman.nextcloud.run", fake_run):
            with pytest.raises(OCCError):
                Nextcloud().disable_user_flows()

        assert not any("workflowengine" in call for call in fake_run.calls)

    def test_disable_user_flows(self, fake_run):
        fake_run.on("status", out='{"versionstring": "28.0.3"}')
        with patch("cloudman.nextcloud.run", fake_run):
            Nextcloud().disable_user_flows()

        assert fake_run.calls[-1].endswith("config:app:set workflowengine user_scope_disabled --value=yes")

    def test_addon_script(self):
        with patch("cloudman.nextcloud.check_interactive") as mock_run:
            Nextcloud().check_zero_byte_files()
        mock_run.assert_called_once_with(["bash", "/var/scripts/addons/0-byte-files.sh"])
