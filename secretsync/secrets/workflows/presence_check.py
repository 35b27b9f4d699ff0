"""Workflow for checking that a repository has the secrets its build needs.

Runs inside the target repository's own pipeline. Presence is decided with
the listing API only; secret values are never read.
"""
import os
import logging
import time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from ..domains.config_loader import load_config
from ..domains.errors import PlatformError, PresenceCheckFailure
from ..domains.github_client import GitHubClient, current_repository
from ..domains.models import PresenceResult, RepositoryRef

logger = logging.getLogger(__name__)

TOKEN_VARIABLES = ("PROPAGATE_TRIGGER_TOKEN", "GH_PAT", "GITHUB_TOKEN")
SOURCE_PLACEHOLDER = "<source-org>/<source-repo>"


def is_ci_context(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True when running under GitHub Actions or another CI system."""
    environ = os.environ if environ is None else environ
    for variable in ("GITHUB_ACTIONS", "CI"):
        value = environ.get(variable, "").strip().lower()
        if value and value not in ("false", "0", "no"):
            return True
    return False


def list_secret_names(store, repo: RepositoryRef, token: Optional[str] = None) -> Set[str]:
    """
    List secret names with gh's own authentication, then with ``token``.

    Raises:
        PlatformError: If listing fails and no token is given, or fails with it too
    """
    try:
        return store.list_secret_names(repo)
    except PlatformError as e:
        if not token:
            raise
        logger.info(f"Listing secrets for {repo} failed ({e}), retrying with the dispatch token")
    return store.list_secret_names(repo, token=token)


def check_presence(names: Iterable[str], store, repo: RepositoryRef, token: Optional[str] = None) -> PresenceResult:
    """
    Partition required names into present and missing, keeping their order.

    Each name appears at most once in the result. A listing failure is
    logged and every name counts as missing.
    """
    result = PresenceResult(repo=repo)
    try:
        existing = list_secret_names(store, repo, token)
    except PlatformError as e:
        logger.error(f"Could not list secrets for {repo}: {e}")
        existing = set()

    for name in names:
        if name in result.present or name in result.missing:
            continue
        if name in existing:
            result.present.append(name)
        else:
            result.missing.append(name)
    return result


def render_presence(result: PresenceResult, names: Iterable[str]) -> str:
    lines = []
    for name in dict.fromkeys(names):
        if name in result.present:
            lines.append(f"✓ {name} present")
        else:
            lines.append(f"✗ {name} missing")
    return "\n".join(lines)


def render_remediation(result: PresenceResult, source_repo: Optional[str], workflow: str) -> str:
    """Instructions for getting the missing secrets into the repository."""
    source = source_repo or SOURCE_PLACEHOLDER
    target = result.repo.full_name
    secrets = " ".join(result.missing)
    lines = [
        "",
        f"Missing secrets for {target}: {', '.join(result.missing)}",
        "",
        f"1. Trigger the sync workflow in {source}:",
        f"   https://github.com/{source}/actions/workflows/{workflow}",
        f"   gh workflow run {workflow} --repo {source} -f target_repo={target} -f secrets=\"{secrets}\"",
        "",
        f"2. Or run the sync from {source} with access to its secrets:",
        f"   secretsync secrets sync --target-repo {target} --secrets \"{secrets}\"",
        "",
        "3. Or set them by hand:",
        f"   https://github.com/{target}/settings/secrets/actions",
    ]
    if not source_repo:
        lines += [
            "",
            "Source repository is not configured: set github.source_repo in the config file "
            "or SECRETSYNC_SOURCE_REPO.",
        ]
    return "\n".join(lines)


def mask_token(token: str) -> str:
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}****{token[-4:]}"


def select_dispatch_token(environ: Optional[Mapping[str, str]] = None) -> Tuple[Optional[str], Optional[str]]:
    """(token, variable name) of the first available dispatch token."""
    environ = os.environ if environ is None else environ
    for variable in TOKEN_VARIABLES:
        token = environ.get(variable)
        if token:
            return token, variable
    return None, None


def request_sync(
    store,
    source_repo: RepositoryRef,
    result: PresenceResult,
    event_type: str = "propagate-secrets",
    initial_delay: float = 5,
    poll_interval: float = 2,
    max_attempts: int = 30,
    environ: Optional[Mapping[str, str]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Ask the source repository to sync the missing secrets, then wait for them.

    Sends a repository_dispatch event and polls the target's secret list
    until every missing name appears or the attempts run out. Polling falls
    back to the dispatch token when gh has no usable authentication.

    Returns:
        True if every missing secret is present before the timeout
    """
    token, token_source = select_dispatch_token(environ)
    if not token:
        logger.error(f"No token available for dispatch ({', '.join(TOKEN_VARIABLES)} required)")
        return False

    logger.info(f"Using token from {token_source}: {mask_token(token)}")
    payload = {"target_repo": result.repo.full_name, "secrets": list(result.missing)}
    try:
        store.dispatch(source_repo, event_type, payload, token=token)
    except PlatformError as e:
        logger.error(f"Dispatch request to {source_repo} failed: {e}")
        return False
    print(f"Sync requested from {source_repo}, waiting for secrets to appear...")

    sleep(initial_delay)
    pending = list(result.missing)
    for attempt in range(1, max_attempts + 1):
        sleep(poll_interval)
        try:
            existing = list_secret_names(store, result.repo, token)
        except PlatformError as e:
            logger.warning(f"Could not list secrets for {result.repo}: {e}")
            continue
        pending = [name for name in result.missing if name not in existing]
        if not pending:
            print(f"✓ All secrets synced after {attempt} check(s)")
            return True
        if attempt % 5 == 0:
            print(f"Still waiting... ({len(pending)} secret(s) pending, {attempt}/{max_attempts} checks)")

    print(f"Timed out waiting for: {', '.join(pending)}")
    print(f"Check the workflow logs: https://github.com/{source_repo}/actions")
    return False


def check_and_sync_secrets(
    *names: str,
    ci: Optional[bool] = None,
    request: bool = False,
    config: Optional[Dict[str, Any]] = None,
    store=None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[PresenceResult]:
    """
    Check that the current repository has every required secret.

    Prints one presence line per name and, when any are missing, the
    remediation instructions. In a CI context missing secrets are an error;
    interactively they are only a warning.

    Args:
        names: Required secret names
        ci: Force CI (True) or interactive (False) behaviour; detected when None
        request: Ask the source repository to sync missing secrets and wait
        config: Loaded config (loaded from disk when None)
        store: Secret store client (a GitHubClient when None)

    Returns:
        The presence result, or None if the current repository is unknown

    Raises:
        PresenceCheckFailure: If secrets are missing in a CI context
    """
    config = config if config is not None else load_config()
    store = store or GitHubClient()
    ci = is_ci_context() if ci is None else ci

    repo = current_repository(store)
    if repo is None:
        logger.warning(
            "Could not detect repository name, skipping secret check. "
            "Run inside a GitHub Actions job or a checkout with 'gh' authenticated."
        )
        return None

    print(f"Checking required secrets for {repo}")
    token, _ = select_dispatch_token()
    result = check_presence(names, store, repo, token)
    print(render_presence(result, names))

    if result.complete:
        print("All required secrets are present")
        return result

    github = config["github"]
    print(render_remediation(result, github.get("source_repo"), github["workflow"]))

    if request:
        if not github.get("source_repo"):
            logger.error("Cannot request a sync: source repository is not configured")
        else:
            presence = config["presence"]
            synced = request_sync(
                store,
                RepositoryRef.parse(github["source_repo"]),
                result,
                event_type=github["event_type"],
                initial_delay=presence["initial_delay"],
                poll_interval=presence["poll_interval"],
                max_attempts=presence["max_attempts"],
                sleep=sleep,
            )
            if synced:
                return check_presence(names, store, repo, token)

    if ci:
        raise PresenceCheckFailure(repo, result.missing)

    logger.warning(
        f"Continuing without {len(result.missing)} secret(s): not running in CI, "
        f"values must come from the environment"
    )
    return result
