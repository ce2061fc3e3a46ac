"""Tests for the trim runner daemon."""
import asyncio
import json
from datetime import datetime, timedelta

import httpx
import pytest

from worldkeeper import runner
from worldkeeper.backend.services import ownership
from worldkeeper.backend.services.ownership import OwnershipConfig
from worldkeeper.backend.services.retention import RetentionPolicy
from worldkeeper.runner import RunnerOptions, build_parser, extract_trim_summary, resolve_options, run_cycle

from conftest import write_mcworld


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RUNNER_INTERVAL", "RUNNER_MODE", "BACKUP_PATH", "WORLDKEEPER_CONFIG", "DRY_RUN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aged_backups(backup_dir):
    now = datetime.now()
    recent = write_mcworld(backup_dir, "Overworld-recent.mcworld", now - timedelta(hours=1), level_name="Overworld")
    old = write_mcworld(backup_dir, "Overworld-old.mcworld", now - timedelta(days=30), level_name="Overworld")
    return recent, old


class TestExtractTrimSummary:
    def test_direct_result(self):
        assert extract_trim_summary({"trimmed_count": 3, "failures": []}) == (3, [])

    def test_failures_become_errors(self):
        trimmed, errors = extract_trim_summary(
            {"trimmed_count": 2, "failures": ["a.mcworld"], "ownership": {"applied": [], "failures": ["b.mcworld"]}}
        )
        assert trimmed == 2
        assert errors == ["Unable to delete a.mcworld", "Unable to fix ownership of b.mcworld"]

    def test_unexpected_shape(self):
        trimmed, errors = extract_trim_summary(["nope"])
        assert trimmed == 0
        assert "Unexpected trim result type" in errors[0]

    def test_bad_count(self):
        assert extract_trim_summary({"trimmed_count": "many"}) == (0, [])


class TestRunCycle:
    def test_direct_mode_trims(self, backup_dir, aged_backups):
        recent, old = aged_backups
        options = RunnerOptions(mode="direct", interval_seconds=60, backup_path=str(backup_dir))

        assert asyncio.run(run_cycle(options)) is True
        assert recent.exists()
        assert not old.exists()

    def test_direct_mode_dry_run(self, backup_dir, aged_backups):
        options = RunnerOptions(mode="direct", interval_seconds=60, backup_path=str(backup_dir), dry_run=True)

        assert asyncio.run(run_cycle(options)) is True
        assert all(path.exists() for path in aged_backups)

    def test_direct_mode_fixes_ownership(self, backup_dir, aged_backups, monkeypatch):
        calls = []
        monkeypatch.setattr(ownership.os, "chown", lambda path, uid, gid: calls.append((uid, gid)), raising=False)
        options = RunnerOptions(
            mode="direct",
            interval_seconds=60,
            backup_path=str(backup_dir),
            ownership=OwnershipConfig(chown="1000:1000"),
        )

        assert asyncio.run(run_cycle(options)) is True
        # Only the surviving backup is left to fix.
        assert calls == [(1000, 1000)]

    def test_missing_folder_is_logged_not_raised(self, tmp_path):
        options = RunnerOptions(mode="direct", interval_seconds=60, backup_path=str(tmp_path / "missing"))
        assert asyncio.run(run_cycle(options)) is False

    def test_api_mode_reports_failures(self, monkeypatch):
        async def fake_api(options):
            return {"trimmed_count": 1, "failures": ["x.mcworld"]}

        monkeypatch.setattr(runner, "run_trim_via_api", fake_api)
        options = RunnerOptions(mode="api", interval_seconds=60, api_url="http://api", api_key="k")

        assert asyncio.run(run_cycle(options)) is False


class TestRunTrimViaApi:
    def test_posts_trim_and_ownership(self, monkeypatch):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/retention/trim":
                return httpx.Response(200, json={"dry_run": True, "trimmed_count": 4, "failures": []})
            return httpx.Response(200, json={"applied": ["a"], "failures": []})

        real_client = httpx.AsyncClient

        def client_factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(runner.httpx, "AsyncClient", client_factory)
        options = RunnerOptions(
            mode="api",
            interval_seconds=60,
            policy=RetentionPolicy(trim_days=2, keep_days=7, min_keep=2),
            ownership=OwnershipConfig(permissions="644"),
            dry_run=True,
            api_url="http://worldkeeper",
            api_key="secret",
        )

        result = asyncio.run(runner.run_trim_via_api(options))

        assert result["trimmed_count"] == 4
        assert result["ownership"] == {"applied": ["a"], "failures": []}
        assert [r.url.path for r in requests] == ["/retention/trim", "/ownership/fix"]
        assert requests[0].headers["X-Admin-Key"] == "secret"
        body = json.loads(requests[0].content)
        assert body == {"dry_run": True, "trim_days": 2, "keep_days": 7, "min_keep": 2}

    def test_http_error_propagates(self, monkeypatch):
        real_client = httpx.AsyncClient

        def client_factory(**kwargs):
            return real_client(transport=httpx.MockTransport(lambda r: httpx.Response(403)), **kwargs)

        monkeypatch.setattr(runner.httpx, "AsyncClient", client_factory)
        options = RunnerOptions(mode="api", interval_seconds=60, api_url="http://worldkeeper", api_key="bad")

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(runner.run_trim_via_api(options))


class TestResolveOptions:
    def test_config_file(self, tmp_path, backup_dir):
        config = tmp_path / "config.yml"
        config.write_text(
            f"backupPath: {backup_dir}\n"
            "trim: {trimDays: 2, keepDays: 9, minKeep: 2}\n"
            "ownership: {chown: '1000:1000'}\n"
            "schedule: {daily: '04:15'}\n"
        )

        options = resolve_options(build_parser().parse_args(["--config", str(config)]))

        assert options.backup_path == str(backup_dir)
        assert options.policy == RetentionPolicy(trim_days=2, keep_days=9, min_keep=2)
        assert options.ownership == OwnershipConfig(chown="1000:1000")
        assert options.interval_seconds == 86400
        assert options.run_at_time == "04:15"

    def test_command_line_overrides(self, tmp_path, backup_dir):
        config = tmp_path / "config.yml"
        config.write_text("backupPath: /does/not/matter\nschedule: {interval: 1d}\n")

        options = resolve_options(
            build_parser().parse_args(["--config", str(config), "-b", str(backup_dir), "--interval", "30m", "--dry-run"])
        )

        assert options.backup_path == str(backup_dir)
        assert options.interval_seconds == 1800
        assert options.run_at_time is None
        assert options.dry_run is True

    def test_defaults(self, backup_dir):
        options = resolve_options(build_parser().parse_args(["-b", str(backup_dir)]))
        assert options.interval_seconds == 3 * 3600
        assert options.policy == RetentionPolicy()
        assert options.ownership is None


class TestMain:
    def test_once(self, backup_dir, aged_backups):
        recent, old = aged_backups
        assert runner.main(["-b", str(backup_dir), "--once"]) == 0
        assert recent.exists()
        assert not old.exists()

    def test_missing_backup_folder(self, tmp_path):
        assert runner.main(["-b", str(tmp_path / "missing"), "--once"]) == 1

    def test_api_mode_requires_key(self, monkeypatch):
        monkeypatch.delenv("ADMIN_API_KEY", raising=False)
        monkeypatch.delenv("ADMIN_API_KEY_FILE", raising=False)
        assert runner.main(["--mode", "api", "--once"]) == 1
