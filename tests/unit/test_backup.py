"""Tests for backup archives."""

import pytest
from datetime import datetime
from unittest.mock import patch

from cloudman.backup import (
    BackupError,
    BackupManager,
    format_backup_timestamp,
    timestamp,
    user_count_from_dump,
)
from cloudman.store import ConfigStore


@pytest.fixture
def manager(tmp_path):
    return BackupManager(ConfigStore({"BACKUP": str(tmp_path), "NCPATH": "/var/www/nextcloud"}))


class TestTimestamps:
    def test_timestamp_format(self):
        assert timestamp(datetime(2024, 1, 5, 9, 30, 0)) == "20240105T093000"

    @pytest.mark.parametrize("stamp,expected", [
        ("20240105T093000", "5th Jan 09:30:00 | 2024"),
        ("20240101T000001", "1st Jan 00:00:01 | 2024"),
        ("20231122T235959", "22nd Nov 23:59:59 | 2023"),
        ("20230313T120000", "13th Mar 12:00:00 | 2023"),
    ])
    def test_format_backup_timestamp(self, stamp, expected):
        assert format_backup_timestamp(stamp) == expected

    def test_format_invalid_timestamp(self):
        assert format_backup_timestamp("yesterday") == "Invalid timestamp"
        assert format_backup_timestamp("") == "Invalid timestamp"


class TestDumpUsers:
    def test_user_count(self, tmp_path, sample_pg_dump):
        dump = tmp_path / "dump.sql"
        dump.write_text(sample_pg_dump, encoding="utf-8")
        assert user_count_from_dump(dump) == "3"

    def test_user_count_no_users_block(self, tmp_path):
        dump = tmp_path / "dump.sql"
        dump.write_text("-- empty dump\n", encoding="utf-8")
        assert user_count_from_dump(dump) == "0"

    def test_user_count_missing_dump(self, tmp_path):
        assert user_count_from_dump(tmp_path / "missing.sql") == "N/A"


class TestBackupManager:
    def test_archive_path(self, manager, tmp_path):
        assert manager.archive_path("nextcloud", "20240105T093000") == (
            tmp_path / "nextcloud_backup_20240105T093000.tar.gz"
        )
        assert manager.archive_path("postgresql", "20240105T093000").name == (
            "postgresql_backup_20240105T093000.sql"
        )

    def test_unknown_target(self, manager):
        with pytest.raises(BackupError):
            manager.archive_path("mysql")

    def test_list_and_latest(self, manager, tmp_path):
        for name in (
            "nextcloud_backup_20240301T010000.tar.gz",
            "nextcloud_backup_20231201T010000.tar.gz",
            "redis_backup_20240101T010000.tar.gz",
            "unrelated.txt",
        ):
            (tmp_path / name).write_text("", encoding="utf-8")

        assert [p.name for p in manager.list_backups("nextcloud")] == [
            "nextcloud_backup_20231201T010000.tar.gz",
            "nextcloud_backup_20240301T010000.tar.gz",
        ]
        assert len(manager.list_backups()) == 3
        assert manager.latest("nextcloud").name == "nextcloud_backup_20240301T010000.tar.gz"

    def test_latest_without_backups(self, manager):
        with pytest.raises(BackupError):
            manager.latest("php")

    def test_backup_records_last_archive(self, manager, fake_run):
        with patch("cloudman.backup.run", fake_run):
            dest = manager.backup("apache")

        assert fake_run.calls[-1].startswith("sudo tar -czf")
        assert manager.store.get("last_backup_apache") == dest.name

    def test_restore_database(self, manager, fake_run, tmp_path):
        archive = tmp_path / "postgresql_backup_20240105T093000.sql"
        with patch("cloudman.backup.run", fake_run):
            manager.restore("postgresql", archive)

        assert "DROP DATABASE" in fake_run.calls[0]
        assert fake_run.calls[-1].endswith(str(archive))
