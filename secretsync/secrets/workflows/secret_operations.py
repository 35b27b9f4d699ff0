"""Workflow for resolving secret values from the source catalog."""
import json
import os
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from ..domains.errors import CatalogError
from ..domains.gcp_client import GCPSecretClient
from ..domains.models import Encoding, SecretRecord
from ..domains.policy import RESERVED_NAMES, ProtectionPolicy

logger = logging.getLogger(__name__)

CONTEXT_VARIABLE = "SECRETSYNC_SECRETS_CONTEXT"


class SecretCatalog:
    """
    Secret values visible to the current execution context.

    Backends are tried in order and the first non-empty value wins:

    - ``context``: JSON object in SECRETSYNC_SECRETS_CONTEXT, set by the
      source workflow from ``${{ toJSON(secrets) }}``
    - ``env``: environment variable named after the secret
    - ``gcp``: latest version in GCP Secret Manager

    Empty values count as absent, since Actions expands unknown secrets to "".
    Reserved control variables (the secrets context itself, gh tokens) are
    never resolved.
    Resolved records are cached for the life of the catalog (one process run).
    """

    def __init__(
        self,
        backends: Sequence[str] = ("context", "env"),
        policy: Optional[ProtectionPolicy] = None,
        config: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
        gcp_client: Optional[GCPSecretClient] = None,
    ):
        self.backends = tuple(backends)
        self.policy = policy
        self.config = config or {}
        self.environ = environ
        self._gcp_client = gcp_client
        self._context: Optional[Dict[str, str]] = None
        self._cache: Dict[str, SecretRecord] = {}

    def _getenv(self, name: str) -> Optional[str]:
        if self.environ is not None:
            return self.environ.get(name)
        return os.environ.get(name)

    def _from_context(self, name: str) -> Optional[bytes]:
        if self._context is None:
            raw = self._getenv(CONTEXT_VARIABLE)
            if not raw:
                self._context = {}
            else:
                try:
                    context = json.loads(raw)
                except ValueError as e:
                    raise CatalogError(f"{CONTEXT_VARIABLE} is not valid JSON: {e}")
                if not isinstance(context, dict):
                    raise CatalogError(f"{CONTEXT_VARIABLE} must be a JSON object")
                self._context = context
        value = self._context.get(name)
        if not isinstance(value, str) or not value:
            return None
        return value.encode("utf-8")

    def _from_env(self, name: str) -> Optional[bytes]:
        if self.environ is None and os.supports_bytes_environ:
            return os.environb.get(name.encode("utf-8")) or None
        value = self._getenv(name)
        if not value:
            return None
        return value.encode("utf-8", "surrogateescape")

    def _from_gcp(self, name: str) -> Optional[bytes]:
        if self._gcp_client is None:
            self._gcp_client = GCPSecretClient(self.config)
        project_id = self._gcp_client.get_project_id()
        if not project_id:
            raise CatalogError("GCP backend enabled but no project ID configured (GCP_PROJECT or gcp.project_id)")
        return self._gcp_client.fetch_secret(name, project_id) or None

    def resolve(self, name: str) -> Optional[SecretRecord]:
        """
        Resolve a secret name to its current value.

        Returns:
            The record, or None if no backend has a value for the name

        Raises:
            CatalogError: If a backend is misconfigured or unreachable, or the
                name is one of the reserved control variables
        """
        if name in RESERVED_NAMES:
            raise CatalogError(f"{name} is a reserved control variable and cannot be resolved")
        if name in self._cache:
            return self._cache[name]

        lookups = {"context": self._from_context, "env": self._from_env, "gcp": self._from_gcp}
        for backend in self.backends:
            value = lookups[backend](name)
            if value is None:
                continue
            encoding = self.policy.encoding_of(name) if self.policy else Encoding.OPAQUE
            record = SecretRecord(name=name, value=value, encoding=encoding, source=backend)
            logger.debug(f"Resolved {name} from {backend} ({len(value)} bytes)")
            self._cache[name] = record
            return record

        logger.debug(f"{name} not found in catalog backends: {', '.join(self.backends)}")
        return None
