"""Tests for the one-shot command line interface."""
from datetime import datetime, timedelta

import pytest

from worldkeeper import cli

from conftest import write_mcworld


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BACKUP_PATH", "WORLDKEEPER_CONFIG", "DRY_RUN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aged_backups(backup_dir):
    now = datetime.now()
    recent = write_mcworld(backup_dir, "Overworld-recent.mcworld", now - timedelta(hours=1), level_name="Overworld")
    old = write_mcworld(backup_dir, "Overworld-old.mcworld", now - timedelta(days=30), level_name="Overworld")
    return recent, old


class TestList:
    def test_empty_folder(self, backup_dir, capsys):
        assert cli.main(["list", "-b", str(backup_dir)]) == 0
        assert "No world backups found" in capsys.readouterr().out

    def test_shows_actions(self, backup_dir, aged_backups, capsys):
        assert cli.main(["list", "-b", str(backup_dir)]) == 0

        out = capsys.readouterr().out
        assert "Overworld (2 backup(s))" in out
        assert "retain" in out and "Overworld-recent.mcworld" in out
        assert "trim" in out and "Overworld-old.mcworld" in out
        assert all(path.exists() for path in aged_backups)


class TestTrim:
    def test_dry_run(self, backup_dir, aged_backups):
        assert cli.main(["trim", "-b", str(backup_dir), "--dry-run"]) == 0
        assert all(path.exists() for path in aged_backups)

    def test_deletes(self, backup_dir, aged_backups):
        recent, old = aged_backups
        assert cli.main(["trim", "-b", str(backup_dir)]) == 0
        assert recent.exists()
        assert not old.exists()

    def test_policy_flags(self, backup_dir, aged_backups):
        assert cli.main(["trim", "-b", str(backup_dir), "--keep-days", "60"]) == 0
        assert all(path.exists() for path in aged_backups)

    def test_invalid_policy(self, backup_dir):
        assert cli.main(["trim", "-b", str(backup_dir), "--trim-days", "10", "--keep-days", "2"]) == 1

    def test_missing_folder(self, tmp_path):
        assert cli.main(["trim", "-b", str(tmp_path / "missing")]) == 1

    def test_no_backup_path(self):
        assert cli.main(["trim"]) == 1


class TestFixOwnership:
    def test_invalid_owner(self, backup_dir, aged_backups):
        assert cli.main(["fix-ownership", "-b", str(backup_dir), "--chown", "minecraft"]) == 1

    def test_uses_config_file(self, tmp_path, backup_dir, aged_backups, monkeypatch):
        calls = []
        monkeypatch.setattr(cli.os, "chown", lambda path, uid, gid: calls.append((uid, gid)), raising=False)
        config = tmp_path / "config.yml"
        config.write_text(f"backupPath: {backup_dir}\nownership: {{chown: '1000:1001'}}\n")

        assert cli.main(["fix-ownership", "--config", str(config)]) == 0
        assert calls == [(1000, 1001), (1000, 1001)]
