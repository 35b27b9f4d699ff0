"""Tests for the secretsync command line."""
import json
import sys
from pathlib import Path

import pytest

from secretsync.cli.main import main
from secretsync.secrets.domains import github_client, preferences
from secretsync.secrets.workflows import presence_check

from conftest import FakeSecretStore


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_home / ".config" / "secretsync")
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_home / ".config" / "secretsync" / "preferences.json")
    for name in ("SECRETSYNC_SOURCE_REPO", "GCP_PROJECT", "GITHUB_ACTIONS", "CI", "GITHUB_EVENT_PATH"):
        monkeypatch.delenv(name, raising=False)
    return fake_home


@pytest.fixture
def gh(monkeypatch):
    store = FakeSecretStore({"org/svc-a": {}})
    monkeypatch.setattr(github_client, "GitHubClient", lambda *args, **kwargs: store)
    monkeypatch.setattr(presence_check, "GitHubClient", lambda *args, **kwargs: store)
    return store


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["secretsync"] + list(argv))
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


class TestUsage:

    def test_no_command_is_usage_error(self, monkeypatch):
        assert run_cli(monkeypatch) == 2

    def test_version(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["secretsync", "version"])
        main()

        assert capsys.readouterr().out.startswith("secretsync ")


class TestPolicyCommands:

    def test_classify(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["secretsync", "policy", "classify", "KUBE_CONFIG", "GIT_TOKEN", "NEW_ONE"])
        main()

        out = capsys.readouterr().out
        assert "KUBE_CONFIG: provisioning-only" in out
        assert "GIT_TOKEN: syncable" in out
        assert "NEW_ONE: provisioning-only (unclassified, default)" in out

    def test_classify_invalid_name(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "policy", "classify", "api-key") == 2
        assert "Examples of valid names" in capsys.readouterr().err

    def test_show(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["secretsync", "policy", "show"])
        main()

        out = capsys.readouterr().out
        assert "SSH_PRIVATE_KEY: provisioning-only" in out
        assert "(unclassified names: provisioning-only)" in out


class TestSecretsSync:

    def test_sync_reports_each_name(self, monkeypatch, gh, capsys):
        monkeypatch.setenv("SECRETSYNC_SECRETS_CONTEXT", json.dumps({
            "REGISTRY_PASSWORD": "s3cr3t",
            "KUBE_CONFIG": "YXBpVmVyc2lvbjogdjEK",
        }))

        code = run_cli(monkeypatch, "secrets", "sync", "--target-repo", "org/svc-a",
                       "--secrets", "REGISTRY_PASSWORD KUBE_CONFIG")

        out = capsys.readouterr().out
        assert code == 0
        assert "REGISTRY_PASSWORD: synced" in out
        assert "KUBE_CONFIG: skipped (provisioning-only secret, never synced)" in out
        assert "Summary: 1 synced, 1 skipped, 0 warning, 0 failed" in out
        assert gh.repos["org/svc-a"] == {"REGISTRY_PASSWORD": b"s3cr3t"}

    def test_failed_write_exits_1(self, monkeypatch, gh):
        monkeypatch.setenv("SECRETSYNC_SECRETS_CONTEXT", json.dumps({"REGISTRY_PASSWORD": "s3cr3t"}))

        code = run_cli(monkeypatch, "secrets", "sync", "--target-repo", "org/missing",
                       "--secrets", "REGISTRY_PASSWORD")

        assert code == 1

    @pytest.mark.parametrize("argv", [
        ["--target-repo", "", "--secrets", "REGISTRY_PASSWORD"],
        ["--target-repo", "org/svc-a", "--secrets", " , "],
        ["--target-repo", "not-a-repo", "--secrets", "REGISTRY_PASSWORD"],
        ["--target-repo", "org/svc-a", "--secrets", "REGISTRY_PASSWORD bad-name"],
    ])
    def test_invalid_request_writes_nothing(self, monkeypatch, gh, argv):
        monkeypatch.setenv("SECRETSYNC_SECRETS_CONTEXT", json.dumps({"REGISTRY_PASSWORD": "s3cr3t"}))

        assert run_cli(monkeypatch, "secrets", "sync", *argv) == 2
        assert gh.writes == []

    def test_dry_run(self, monkeypatch, gh, capsys):
        monkeypatch.setenv("SECRETSYNC_SECRETS_CONTEXT", json.dumps({"REGISTRY_PASSWORD": "s3cr3t"}))

        code = run_cli(monkeypatch, "secrets", "sync", "--target-repo", "org/svc-a",
                       "--secrets", "REGISTRY_PASSWORD", "--dry-run")

        assert code == 0
        assert "skipped (dry run, would sync)" in capsys.readouterr().out
        assert gh.writes == []

    def test_from_event(self, monkeypatch, gh, tmp_path, capsys):
        event_path = tmp_path / "event.json"
        event_path.write_text(json.dumps({"inputs": {"target_repo": "org/svc-a", "secrets": "REGISTRY_PASSWORD"}}))
        monkeypatch.setenv("GITHUB_EVENT_PATH", str(event_path))
        monkeypatch.setenv("SECRETSYNC_SECRETS_CONTEXT", json.dumps({"REGISTRY_PASSWORD": "s3cr3t"}))

        assert run_cli(monkeypatch, "secrets", "sync", "--from-event") == 0
        assert "REGISTRY_PASSWORD: synced" in capsys.readouterr().out


class TestSecretsCheck:

    def test_missing_in_ci_exits_1(self, monkeypatch, gh, capsys):
        monkeypatch.setenv("GITHUB_REPOSITORY", "org/svc-a")

        assert run_cli(monkeypatch, "secrets", "check", "--ci", "REGISTRY_PASSWORD") == 1
        assert "✗ REGISTRY_PASSWORD missing" in capsys.readouterr().out

    def test_missing_interactive_succeeds(self, monkeypatch, gh, capsys):
        monkeypatch.setenv("GITHUB_REPOSITORY", "org/svc-a")
        monkeypatch.setattr(sys, "argv", ["secretsync", "secrets", "check", "--no-ci", "REGISTRY_PASSWORD"])

        main()

        assert "✗ REGISTRY_PASSWORD missing" in capsys.readouterr().out

    def test_invalid_name(self, monkeypatch, gh):
        assert run_cli(monkeypatch, "secrets", "check", "lower_case") == 2
