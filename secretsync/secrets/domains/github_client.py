"""GitHub repository secret store client.

All calls go through the ``gh`` CLI so authentication stays with ``gh``
(``gh auth login`` locally, ``GH_TOKEN`` in workflows). Secret values are
only ever written, never read: the REST API does not expose them.
"""
import base64
import json
import logging
import os
import re
import subprocess
import threading
from typing import Any, Dict, List, Optional, Set, Tuple

from nacl import encoding, public

from .errors import PlatformError
from .models import RepositoryRef

logger = logging.getLogger(__name__)

_STATUS_PATTERN = re.compile(r"\(HTTP (\d{3})\)")


def encrypt_secret(public_key: str, value: bytes) -> str:
    """
    Seal a secret value with a repository's public key.

    The exact input bytes are sealed; GitHub decrypts back to the same bytes.

    Args:
        public_key: Base64 repository public key from the secrets API
        value: Raw secret bytes

    Returns:
        Base64 ciphertext for the ``encrypted_value`` field
    """
    key = public.PublicKey(public_key.encode("utf-8"), encoding.Base64Encoder())
    sealed = public.SealedBox(key).encrypt(value)
    return base64.b64encode(sealed).decode("utf-8")


def failure_reason(error: PlatformError) -> str:
    """Short, operator-facing reason for a failed secret write."""
    message = str(error)
    if error.status == 404:
        return "target repository not found"
    if error.status in (401, 403) and "rate limit" not in message.lower():
        return "not authorized to write secrets"
    if error.status == 429 or "rate limit" in message.lower():
        return "rate limited"
    return message


class GitHubClient:
    """Wrapper around the ``gh`` CLI for repository secrets and dispatch events."""

    def __init__(self, gh_path: str = "gh", timeout: float = 30, token: Optional[str] = None):
        self.gh_path = gh_path
        self.timeout = timeout
        self.token = token
        self._public_keys: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def _run(
        self,
        args: List[str],
        input: Optional[bytes] = None,
        timeout: Optional[float] = None,
        token: Optional[str] = None,
    ) -> str:
        env = None
        token = token or self.token
        if token:
            env = dict(os.environ, GH_TOKEN=token)
        try:
            result = subprocess.run(
                [self.gh_path] + args,
                input=input,
                capture_output=True,
                timeout=timeout or self.timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise PlatformError("timeout")
        except FileNotFoundError:
            raise PlatformError(f"'{self.gh_path}' not found, install the GitHub CLI")

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", "replace").strip()
            match = _STATUS_PATTERN.search(stderr)
            status = int(match.group(1)) if match else None
            message = stderr.splitlines()[-1] if stderr else f"gh exited with {result.returncode}"
            if message.startswith("gh: "):
                message = message[len("gh: "):]
            raise PlatformError(message, status=status)
        return result.stdout.decode("utf-8", "replace")

    def _api(self, method: str, path: str, body: Optional[Dict[str, Any]] = None, **kwargs) -> str:
        args = ["api", "--method", method, "-H", "Accept: application/vnd.github+json", path]
        data = None
        if body is not None:
            args += ["--input", "-"]
            data = json.dumps(body).encode("utf-8")
        return self._run(args, input=data, **kwargs)

    def auth_status(self) -> bool:
        try:
            self._run(["auth", "status", "--hostname", "github.com"])
        except PlatformError as e:
            logger.debug(f"gh auth status failed: {e}")
            return False
        return True

    def repo_view(self) -> Optional[str]:
        """nameWithOwner of the repository in the current directory, per ``gh``."""
        try:
            output = self._run(["repo", "view", "--json", "nameWithOwner", "-q", ".nameWithOwner"])
        except PlatformError as e:
            logger.warning(f"'gh repo view' failed: {e}")
            return None
        return output.strip() or None

    def list_secret_names(self, repo: RepositoryRef, token: Optional[str] = None) -> Set[str]:
        """Names of the repository's Actions secrets. Values are never returned."""
        output = self._run([
            "api", "--paginate",
            "-H", "Accept: application/vnd.github+json",
            f"repos/{repo.full_name}/actions/secrets?per_page=100",
            "--jq", ".secrets[].name",
        ], token=token)
        return {line.strip() for line in output.splitlines() if line.strip()}

    def public_key(self, repo: RepositoryRef, timeout: Optional[float] = None) -> Tuple[str, str]:
        """
        (key_id, key) used to seal secrets for a repository, cached per client.

        The fetch runs outside the lock. Concurrent first writes may fetch the
        key more than once; the first stored key wins.
        """
        with self._lock:
            cached = self._public_keys.get(repo.full_name)
        if cached:
            return cached

        output = self._api("GET", f"repos/{repo.full_name}/actions/secrets/public-key", timeout=timeout)
        try:
            data = json.loads(output)
            key = (data["key_id"], data["key"])
        except (ValueError, KeyError) as e:
            raise PlatformError(f"unexpected public key response: {e}")

        with self._lock:
            return self._public_keys.setdefault(repo.full_name, key)

    def write_secret(self, repo: RepositoryRef, name: str, value: bytes, timeout: Optional[float] = None) -> None:
        """Create or update one repository secret with the given bytes."""
        key_id, key = self.public_key(repo, timeout=timeout)
        body = {"encrypted_value": encrypt_secret(key, value), "key_id": key_id}
        self._api("PUT", f"repos/{repo.full_name}/actions/secrets/{name}", body=body, timeout=timeout)

    def dispatch(self, repo: RepositoryRef, event_type: str, payload: Dict[str, Any], token: Optional[str] = None) -> None:
        """Send a repository_dispatch event."""
        body = {"event_type": event_type, "client_payload": payload}
        self._api("POST", f"repos/{repo.full_name}/dispatches", body=body, token=token)


def current_repository(client: Optional[GitHubClient] = None) -> Optional[RepositoryRef]:
    """
    Repository the current automation runs in.

    Taken from GITHUB_REPOSITORY when running in Actions, otherwise from
    ``gh repo view`` in the working directory. Never from caller input.
    """
    full_name = os.getenv("GITHUB_REPOSITORY")
    if full_name:
        logger.debug(f"Using GITHUB_REPOSITORY from environment: {full_name}")
    else:
        full_name = (client or GitHubClient()).repo_view()
    if not full_name or "/" not in full_name:
        return None
    return RepositoryRef.parse(full_name)
