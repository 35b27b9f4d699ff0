"""Shared fixtures: an in-memory stand-in for GitHub repository secret stores."""
import threading

import pytest

from secretsync.secrets.domains.errors import PlatformError


class FakeSecretStore:
    """Repository secret stores keyed by full repository name."""

    def __init__(self, repos=None):
        self.repos = {name: dict(secrets) for name, secrets in (repos or {}).items()}
        self.writes = []
        self.dispatches = []
        self.write_errors = {}
        self.list_error = None
        self.listings = []
        self.ambient_auth = True
        self._lock = threading.Lock()

    def list_secret_names(self, repo, token=None):
        self.listings.append((repo.full_name, token))
        if self.list_error:
            raise self.list_error
        if token is None and not self.ambient_auth:
            raise PlatformError("Bad credentials (HTTP 401)", status=401)
        if repo.full_name not in self.repos:
            raise PlatformError("Not Found (HTTP 404)", status=404)
        return set(self.repos[repo.full_name])

    def write_secret(self, repo, name, value, timeout=None):
        error = self.write_errors.get(name)
        if error:
            raise error
        if repo.full_name not in self.repos:
            raise PlatformError("Not Found (HTTP 404)", status=404)
        with self._lock:
            self.repos[repo.full_name][name] = value
            self.writes.append((repo.full_name, name, value))

    def dispatch(self, repo, event_type, payload, token=None):
        self.dispatches.append((repo.full_name, event_type, payload, token))

    def repo_view(self):
        return None


@pytest.fixture
def store():
    return FakeSecretStore({"org/svc-a": {}, "org/devops": {}})
