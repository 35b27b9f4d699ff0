"""Tests for the gh-backed GitHub client."""
import base64
import json
import subprocess
from unittest import mock

import pytest
from nacl import encoding, public

from secretsync.secrets.domains import github_client
from secretsync.secrets.domains.errors import PlatformError
from secretsync.secrets.domains.github_client import (
    GitHubClient,
    current_repository,
    encrypt_secret,
    failure_reason,
)
from secretsync.secrets.domains.models import RepositoryRef
from secretsync.secrets.workflows.presence_check import check_presence

REPO = RepositoryRef("org", "svc-a")


def completed(stdout=b"", stderr=b"", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def keypair():
    private_key = public.PrivateKey.generate()
    public_b64 = private_key.public_key.encode(encoding.Base64Encoder()).decode("utf-8")
    return private_key, public_b64


class TestEncryption:

    @pytest.mark.parametrize("value", [b"s3cr3t", b"trailing newline\n", b"  padded  ", "ünïcode".encode("utf-8")])
    def test_sealed_value_decrypts_to_same_bytes(self, keypair, value):
        private_key, public_b64 = keypair

        sealed = base64.b64decode(encrypt_secret(public_b64, value))

        assert public.SealedBox(private_key).decrypt(sealed) == value


class TestFailureReason:

    @pytest.mark.parametrize("status,message,expected", [
        (404, "Not Found (HTTP 404)", "target repository not found"),
        (403, "Resource not accessible by integration (HTTP 403)", "not authorized to write secrets"),
        (401, "Bad credentials (HTTP 401)", "not authorized to write secrets"),
        (403, "You have exceeded a secondary rate limit (HTTP 403)", "rate limited"),
        (429, "Too Many Requests (HTTP 429)", "rate limited"),
        (None, "timeout", "timeout"),
        (500, "Server Error (HTTP 500)", "Server Error (HTTP 500)"),
    ])
    def test_reasons(self, status, message, expected):
        assert failure_reason(PlatformError(message, status=status)) == expected


class TestGitHubClient:

    def test_list_secret_names(self):
        client = GitHubClient()
        with mock.patch.object(github_client.subprocess, "run", return_value=completed(b"A\nB\n\n")) as run:
            names = client.list_secret_names(REPO)

        assert names == {"A", "B"}
        args = run.call_args[0][0]
        assert args[:3] == ["gh", "api", "--paginate"]
        assert "repos/org/svc-a/actions/secrets?per_page=100" in args

    def test_list_secret_names_with_token(self):
        client = GitHubClient()
        with mock.patch.object(github_client.subprocess, "run", return_value=completed(b"A\n")) as run:
            client.list_secret_names(REPO, token="tok_abcdefghijkl")

        assert run.call_args[1]["env"]["GH_TOKEN"] == "tok_abcdefghijkl"

    def test_presence_listing_retries_with_dispatch_token(self):
        client = GitHubClient()
        unauthenticated = completed(stderr=b"gh: Bad credentials (HTTP 401)\n", returncode=1)
        with mock.patch.object(github_client.subprocess, "run",
                               side_effect=[unauthenticated, completed(b"A\n")]) as run:
            result = check_presence(["A"], client, REPO, token="tok_abcdefghijkl")

        assert result.present == ["A"]
        ambient_call, token_call = run.call_args_list
        assert ambient_call[1]["env"] is None
        assert token_call[1]["env"]["GH_TOKEN"] == "tok_abcdefghijkl"

    def test_http_error_parsed(self):
        client = GitHubClient()
        stderr = b"gh: Not Found (HTTP 404)\n"
        with mock.patch.object(github_client.subprocess, "run", return_value=completed(stderr=stderr, returncode=1)):
            with pytest.raises(PlatformError) as exc_info:
                client.list_secret_names(REPO)

        assert exc_info.value.status == 404
        assert str(exc_info.value) == "Not Found (HTTP 404)"

    def test_timeout(self):
        client = GitHubClient(timeout=1)
        with mock.patch.object(github_client.subprocess, "run", side_effect=subprocess.TimeoutExpired("gh", 1)):
            with pytest.raises(PlatformError) as exc_info:
                client.list_secret_names(REPO)

        assert str(exc_info.value) == "timeout"

    def test_gh_not_installed(self):
        client = GitHubClient()
        with mock.patch.object(github_client.subprocess, "run", side_effect=FileNotFoundError()):
            with pytest.raises(PlatformError) as exc_info:
                client.list_secret_names(REPO)

        assert "GitHub CLI" in str(exc_info.value)

    def test_write_secret_seals_exact_bytes(self, keypair):
        private_key, public_b64 = keypair
        key_response = json.dumps({"key_id": "kid-1", "key": public_b64}).encode("utf-8")
        client = GitHubClient()

        with mock.patch.object(github_client.subprocess, "run",
                               side_effect=[completed(key_response), completed()]) as run:
            client.write_secret(REPO, "REGISTRY_PASSWORD", b"s3cr3t\n", timeout=5)

        key_call, put_call = run.call_args_list
        assert "repos/org/svc-a/actions/secrets/public-key" in key_call[0][0]
        put_args = put_call[0][0]
        assert put_args[put_args.index("--method") + 1] == "PUT"
        assert "repos/org/svc-a/actions/secrets/REGISTRY_PASSWORD" in put_args
        assert put_call[1]["timeout"] == 5

        body = json.loads(put_call[1]["input"])
        assert body["key_id"] == "kid-1"
        sealed = base64.b64decode(body["encrypted_value"])
        assert public.SealedBox(private_key).decrypt(sealed) == b"s3cr3t\n"

    def test_public_key_fetched_once_per_repository(self, keypair):
        _, public_b64 = keypair
        key_response = json.dumps({"key_id": "kid-1", "key": public_b64}).encode("utf-8")
        client = GitHubClient()

        with mock.patch.object(github_client.subprocess, "run",
                               side_effect=[completed(key_response), completed(), completed()]) as run:
            client.write_secret(REPO, "A", b"1")
            client.write_secret(REPO, "B", b"2")

        assert run.call_count == 3

    def test_public_key_fetched_outside_lock(self, keypair):
        _, public_b64 = keypair
        key_response = json.dumps({"key_id": "kid-1", "key": public_b64}).encode("utf-8")
        client = GitHubClient()
        lock_held = []

        def run(args, **kwargs):
            lock_held.append(client._lock.locked())
            return completed(key_response)

        with mock.patch.object(github_client.subprocess, "run", side_effect=run):
            assert client.public_key(REPO) == ("kid-1", public_b64)

        assert lock_held == [False]

    def test_failed_public_key_fetch_not_cached(self, keypair):
        _, public_b64 = keypair
        key_response = json.dumps({"key_id": "kid-1", "key": public_b64}).encode("utf-8")
        client = GitHubClient()

        with mock.patch.object(github_client.subprocess, "run",
                               side_effect=[subprocess.TimeoutExpired("gh", 1), completed(key_response)]):
            with pytest.raises(PlatformError):
                client.public_key(REPO)
            assert client.public_key(REPO) == ("kid-1", public_b64)

    def test_dispatch_uses_token(self):
        client = GitHubClient()
        with mock.patch.object(github_client.subprocess, "run", return_value=completed()) as run:
            client.dispatch(RepositoryRef("org", "devops"), "propagate-secrets",
                            {"target_repo": "org/svc-a", "secrets": ["B"]}, token="tok")

        kwargs = run.call_args[1]
        assert kwargs["env"]["GH_TOKEN"] == "tok"
        assert json.loads(kwargs["input"]) == {
            "event_type": "propagate-secrets",
            "client_payload": {"target_repo": "org/svc-a", "secrets": ["B"]},
        }
        assert "repos/org/devops/dispatches" in run.call_args[0][0]

    def test_auth_status(self):
        client = GitHubClient()
        with mock.patch.object(github_client.subprocess, "run", return_value=completed(returncode=1)):
            assert not client.auth_status()
        with mock.patch.object(github_client.subprocess, "run", return_value=completed()):
            assert client.auth_status()


class TestCurrentRepository:

    def test_from_github_repository(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REPOSITORY", "org/svc-a")
        client = mock.Mock()

        assert current_repository(client) == REPO
        client.repo_view.assert_not_called()

    def test_from_gh_repo_view(self, monkeypatch):
        monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
        client = mock.Mock()
        client.repo_view.return_value = "org/svc-b"

        assert current_repository(client) == RepositoryRef("org", "svc-b")

    def test_unknown(self, monkeypatch):
        monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
        client = mock.Mock()
        client.repo_view.return_value = None

        assert current_repository(client) is None
