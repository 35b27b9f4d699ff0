"""Sync invocation: turn operator or event input into a validated SyncRequest.

This is the only way a sync run starts. Validation happens before any
dispatcher work, so a bad request writes nothing.
"""
import json
import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..domains.errors import InputValidationError
from ..domains.models import RepositoryRef, SyncRequest

logger = logging.getLogger(__name__)

SECRET_NAME_PATTERN = re.compile(r"^[A-Z0-9_]+$")
REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?/[A-Za-z0-9._-]+$")
_SEPARATORS = re.compile(r"[\s,]+")


def validate_secret_name(name: str) -> str:
    if not name:
        raise InputValidationError(
            "Secret name cannot be empty",
            hint="Secret names must match: [A-Z0-9_]",
        )
    if not SECRET_NAME_PATTERN.match(name):
        raise InputValidationError(
            f"Invalid secret name '{name}'",
            hint="Allowed characters: uppercase letters, digits, underscores (_)",
        )
    return name


def validate_target_repo(target_repo: Optional[str]) -> RepositoryRef:
    target_repo = (target_repo or "").strip()
    if not target_repo:
        raise InputValidationError(
            "Target repository cannot be empty",
            hint="Pass the repository as org/name, e.g. my-org/svc-a",
        )
    if not REPOSITORY_PATTERN.match(target_repo):
        raise InputValidationError(
            f"Invalid target repository '{target_repo}'",
            hint="Expected the form org/name, e.g. my-org/svc-a",
        )
    return RepositoryRef.parse(target_repo)


def split_secret_names(secrets: Union[str, Iterable[str], None]) -> List[str]:
    """
    Split a whitespace- or comma-delimited list of names.

    Empty entries are dropped and duplicates collapse onto their first
    occurrence, so request order is preserved.
    """
    if secrets is None:
        return []
    if isinstance(secrets, str):
        parts = _SEPARATORS.split(secrets)
    else:
        parts = []
        for item in secrets:
            parts.extend(_SEPARATORS.split(str(item)))

    names: List[str] = []
    for part in parts:
        part = part.strip()
        if part and part not in names:
            names.append(part)
    return names


def build_sync_request(target_repo: Optional[str], secrets: Union[str, Iterable[str], None]) -> SyncRequest:
    """
    Validate sync parameters and build the request.

    Raises:
        InputValidationError: If the target is empty or malformed, the name
            list is empty after trimming, or any name is invalid
    """
    repo = validate_target_repo(target_repo)
    names = split_secret_names(secrets)
    if not names:
        raise InputValidationError(
            "No secret names given",
            hint="Pass one or more names separated by spaces or commas",
        )
    for name in names:
        validate_secret_name(name)
    return SyncRequest(target_repo=repo, requested_names=tuple(names))


def parameters_from_event(event: Dict[str, Any]) -> Tuple[Optional[str], Any]:
    """
    Extract (target_repo, secrets) from a GitHub event payload.

    ``workflow_dispatch`` carries them in ``inputs``; ``repository_dispatch``
    carries them in ``client_payload``.
    """
    for key in ("inputs", "client_payload"):
        section = event.get(key)
        if isinstance(section, dict) and ("target_repo" in section or "secrets" in section):
            return section.get("target_repo"), section.get("secrets")
    return None, None


def request_from_event(event_path: Optional[str] = None) -> SyncRequest:
    """
    Build a sync request from the event that triggered the current workflow.

    Args:
        event_path: Path to the event JSON (default: GITHUB_EVENT_PATH)

    Raises:
        InputValidationError: If the event is missing, unreadable or invalid
    """
    event_path = event_path or os.getenv("GITHUB_EVENT_PATH")
    if not event_path:
        raise InputValidationError(
            "GITHUB_EVENT_PATH is not set",
            hint="--from-event only works inside a GitHub Actions run; use --target-repo and --secrets instead",
        )
    try:
        with open(event_path, 'r') as f:
            event = json.load(f)
    except (OSError, ValueError) as e:
        raise InputValidationError(f"Could not read event payload at {event_path}: {e}")
    if not isinstance(event, dict):
        raise InputValidationError(f"Event payload at {event_path} is not a JSON object")

    target_repo, secrets = parameters_from_event(event)
    logger.info(f"Sync requested from event: target_repo={target_repo} secrets={secrets}")
    return build_sync_request(target_repo, secrets)
