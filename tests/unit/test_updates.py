"""Tests for the release download and update steps."""

import pytest
import requests
from unittest.mock import patch, MagicMock

from cloudman.nextcloud import Nextcloud, OCCError
from cloudman.updates import DownloadError, Updater, UpdateError, download_file


def response(chunks):
    r = MagicMock()
    r.__enter__.return_value = r
    r.iter_content.return_value = chunks
    return r


class TestDownload:
    @patch("cloudman.updates.requests.get")
    def test_download_writes_file(self, mock_get, tmp_path):
        mock_get.return_value = response([b"PK", b"\x03\x04"])

        path = download_file("https://example.org/releases/", tmp_path, "latest.zip")

        assert path.read_bytes() == b"PK\x03\x04"
        assert mock_get.call_args.args[0] == "https://example.org/releases/latest.zip"

    @patch("cloudman.updates.requests.get")
    def test_download_replaces_old_copy(self, mock_get, tmp_path):
        (tmp_path / "latest.zip").write_bytes(b"old")
        mock_get.return_value = response([b"new"])

        assert download_file("https://example.org", tmp_path, "latest.zip").read_bytes() == b"new"

    @patch("cloudman.updates.requests.get", side_effect=requests.ConnectionError("down"))
    def test_download_gives_up_after_retries(self, mock_get, tmp_path):
        waits = []

        with pytest.raises(DownloadError) as info:
            download_file("https://example.org", tmp_path, "latest.zip", max_retries=3, delay=5, sleep=waits.append)

        assert mock_get.call_count == 3
        assert waits == [5, 5]
        assert info.value.attempts == 3
        assert not (tmp_path / "latest.zip").exists()

    @patch("cloudman.updates.requests.get")
    def test_download_recovers_on_retry(self, mock_get, tmp_path):
        mock_get.side_effect = [requests.Timeout("slow"), response([b"ok"])]

        path = download_file("https://example.org", tmp_path, "latest.zip", sleep=lambda _: None)
        assert path.read_bytes() == b"ok"


class TestUpdater:
    def test_check_free_space(self, tmp_path):
        updater = Updater(Nextcloud(), min_free_gb=0)
        assert updater.check_free_space(str(tmp_path)) >= 0

    def test_check_free_space_too_little(self, tmp_path):
        updater = Updater(Nextcloud(), min_free_gb=10 ** 9)
        with pytest.raises(UpdateError):
            updater.check_free_space(str(tmp_path))

    def test_busy_package_manager(self):
        with patch("cloudman.updates.processes_running", return_value=["dpkg"]):
            with pytest.raises(UpdateError):
                Updater(Nextcloud()).check_processes()

    def test_extract_needs_download(self, tmp_path):
        with pytest.raises(UpdateError):
            Updater(Nextcloud(), download_dir=tmp_path).extract_release()

    def test_cleanup(self, tmp_path):
        updater = Updater(Nextcloud(), download_dir=tmp_path)
        updater.archive.write_bytes(b"zip")

        assert updater.cleanup() is True
        assert updater.cleanup() is False

    def test_failed_update_leaves_maintenance(self, tmp_path):
        nc = MagicMock(spec=Nextcloud)
        nc.ncpath = "/var/www/nextcloud"
        updater = Updater(nc, backup_dir=str(tmp_path), download_dir=tmp_path, min_free_gb=0)

        with patch("cloudman.updates.processes_running", return_value=[]), \
                patch.object(updater, "check_free_space", return_value=100.0), \
                patch.object(updater, "backup_config_and_apps", side_effect=OCCError("rsync broke")):
            with pytest.raises(OCCError):
                updater.run_full_update()

        nc.set_maintenance.assert_any_call(True)
        nc.set_maintenance.assert_called_with(False)
