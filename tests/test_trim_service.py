"""Tests for the trim service (discovery + retention + deletion)."""
from datetime import datetime, timedelta

import pytest

from worldkeeper.backend.services import trim_service
from worldkeeper.backend.services.retention import Action, RetentionPolicy, RetentionPolicyError
from worldkeeper.backend.services.trim_service import TrimService
from worldkeeper.backend.services.worlds import BackupFolderError

from conftest import write_mcworld, write_world_dir

NOW = datetime(2024, 6, 20, 12, 0, 0)


def _stamp(when):
    return when.strftime("%Y%m%d-%H%M%S")


@pytest.fixture
def populated(backup_dir):
    """Two worlds: Overworld with a mix of ages, Nether with one ancient backup."""
    created = {}
    for when in (
        NOW - timedelta(hours=1),
        datetime(2024, 6, 10, 1, 0),
        datetime(2024, 6, 10, 23, 0),
        NOW - timedelta(days=30),
    ):
        path = write_mcworld(backup_dir, f"Overworld-{_stamp(when)}.mcworld", when, level_name="Overworld")
        created[path.name] = path
    nether = write_world_dir(backup_dir, f"Nether-{_stamp(NOW - timedelta(days=40))}", NOW - timedelta(days=40))
    created[nether.name] = nether
    return created


class TestTrimService:
    def test_plan_does_not_delete(self, backup_dir, populated):
        plan = TrimService(backup_dir).plan(now=NOW)

        assert sorted(plan) == ["Nether", "Overworld"]
        actions = {d.snapshot.location.name: d.action for d in plan["Overworld"]}
        assert actions["Overworld-20240610-010000.mcworld"] is Action.TRIM
        assert actions["Overworld-20240610-230000.mcworld"] is Action.RETAIN
        assert all(path.exists() for path in populated.values())

    def test_trim_deletes_trimmed_backups(self, backup_dir, populated):
        report = TrimService(backup_dir, RetentionPolicy()).trim(now=NOW)

        assert not report.dry_run
        assert sorted(report.deleted) == [
            "Overworld-20240521-120000.mcworld",
            "Overworld-20240610-010000.mcworld",
        ]
        assert report.failures == []
        assert report.trimmed_count == 2
        assert not (backup_dir / "Overworld-20240610-010000.mcworld").exists()
        assert (backup_dir / "Overworld-20240610-230000.mcworld").exists()
        # The only Nether backup survives through the minimum-keep rule.
        assert report.worlds["Nether"].kept == ["Nether-20240511-120000"]
        assert (backup_dir / "Nether-20240511-120000").is_dir()

    def test_dry_run_keeps_files(self, backup_dir, populated):
        report = TrimService(backup_dir, dry_run=True).trim(now=NOW)

        assert report.dry_run
        assert report.trimmed_count == 2
        assert report.deleted == []
        assert all(path.exists() for path in populated.values())

    def test_world_directories_are_removed(self, backup_dir):
        old = write_world_dir(backup_dir, "Nether-20240401-000000", datetime(2024, 4, 1), level_name="Nether")
        write_world_dir(backup_dir, "Nether-20240620-110000", datetime(2024, 6, 20, 11), level_name="Nether")

        report = TrimService(backup_dir).trim(now=NOW)

        assert report.deleted == ["Nether-20240401-000000"]
        assert not old.exists()

    def test_deletion_failure_does_not_stop_the_pass(self, backup_dir, populated, monkeypatch):
        real_remove = trim_service.remove_backup

        def flaky_remove(location):
            if location.name == "Overworld-20240521-120000.mcworld":
                raise PermissionError("in use")
            real_remove(location)

        monkeypatch.setattr(trim_service, "remove_backup", flaky_remove)

        report = TrimService(backup_dir).trim(now=NOW)

        assert report.failures == ["Overworld-20240521-120000.mcworld"]
        assert report.deleted == ["Overworld-20240610-010000.mcworld"]
        assert (backup_dir / "Overworld-20240521-120000.mcworld").exists()

    def test_report_to_dict(self, backup_dir, populated):
        data = TrimService(backup_dir, dry_run=True).trim(now=NOW).to_dict()
        assert data["dry_run"] is True
        assert data["trimmed_count"] == 2
        assert set(data["worlds"]) == {"Nether", "Overworld"}
        assert data["worlds"]["Overworld"]["trimmed"] == [
            "Overworld-20240610-010000.mcworld",
            "Overworld-20240521-120000.mcworld",
        ]

    def test_missing_folder(self, tmp_path):
        with pytest.raises(BackupFolderError):
            TrimService(tmp_path / "missing").trim(now=NOW)

    def test_invalid_policy(self, backup_dir):
        with pytest.raises(RetentionPolicyError):
            TrimService(backup_dir, RetentionPolicy(trim_days=10, keep_days=2))
