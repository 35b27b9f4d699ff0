"""Protection policy: which secret names may leave the source repository.

The table is explicit and human-reviewed. Names are never classified by
looking at their values. Add every new secret name here (or to the
``policy`` section of the config file) when it is introduced.
"""
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import ConfigError
from .models import Encoding, ProtectionClass

logger = logging.getLogger(__name__)

# Cluster, host and repository-write credentials.
PROVISIONING_ONLY = frozenset({
    "KUBE_CONFIG",
    "SSH_PRIVATE_KEY",
    "SSH_HOST",
    "SSH_USER",
    "CONTABO_CLIENT_ID",
    "CONTABO_CLIENT_SECRET",
    "CONTABO_API_USERNAME",
    "CONTABO_API_PASSWORD",
    "PROPAGATE_SECRETS",
    "PROPAGATE_TOKEN",
    "PROPAGATE_TRIGGER_TOKEN",
    "GH_PAT",
})

# Application-level credentials consumed by service builds and deploys.
SYNCABLE = frozenset({
    "REGISTRY_USERNAME",
    "REGISTRY_PASSWORD",
    "REGISTRY_EMAIL",
    "POSTGRES_PASSWORD",
    "REDIS_PASSWORD",
    "RABBITMQ_PASSWORD",
    "GIT_TOKEN",
    "GIT_USER",
    "GIT_EMAIL",
    "GIT_APP_ID",
    "GIT_APP_SECRET",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "DEFAULT_TENANT_SLUG",
    "GLOBAL_ADMIN_EMAIL",
})

# Control variables of the tool and its workflow. Always provisioning-only,
# never readable from a catalog and not reclassifiable by config. The secrets
# context holds every source secret in one blob.
RESERVED_NAMES = frozenset({
    "SECRETSYNC_SECRETS_CONTEXT",
    "GH_TOKEN",
    "GITHUB_TOKEN",
})

ENCODINGS = {
    "KUBE_CONFIG": Encoding.BASE64_BLOB,
}


class ProtectionPolicy:
    """Static mapping from secret name to protection class."""

    def __init__(
        self,
        provisioning_only: Iterable[str] = PROVISIONING_ONLY,
        syncable: Iterable[str] = SYNCABLE,
        default: ProtectionClass = ProtectionClass.PROVISIONING_ONLY,
        encodings: Optional[Mapping[str, Encoding]] = None,
    ):
        self.provisioning_only = frozenset(provisioning_only) | RESERVED_NAMES
        self.syncable = frozenset(syncable)
        self.default = default
        self.encodings = dict(ENCODINGS if encodings is None else encodings)

        reserved = self.syncable & RESERVED_NAMES
        if reserved:
            raise ConfigError(
                "Reserved names cannot be syncable: " + ", ".join(sorted(reserved))
            )

        overlap = self.provisioning_only & self.syncable
        if overlap:
            raise ConfigError(
                "Secret names classified as both provisioning-only and syncable: "
                + ", ".join(sorted(overlap))
            )

    def classify(self, name: str) -> ProtectionClass:
        if name in self.provisioning_only:
            return ProtectionClass.PROVISIONING_ONLY
        if name in self.syncable:
            return ProtectionClass.SYNCABLE
        logger.warning(
            f"Secret '{name}' is not classified, treating it as {self.default.value}. "
            f"Add it to the protection policy."
        )
        return self.default

    def is_classified(self, name: str) -> bool:
        return name in self.provisioning_only or name in self.syncable

    def encoding_of(self, name: str) -> Encoding:
        return self.encodings.get(name, Encoding.OPAQUE)

    def table(self) -> Tuple[Tuple[str, ProtectionClass], ...]:
        """Every classified name with its class, sorted by name."""
        rows = [(name, ProtectionClass.PROVISIONING_ONLY) for name in self.provisioning_only]
        rows += [(name, ProtectionClass.SYNCABLE) for name in self.syncable]
        return tuple(sorted(rows))


def _names(section: Dict[str, Any], key: str) -> frozenset:
    value = section.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'policy.{key}' must be a list of secret names")
    return frozenset(value)


def policy_from_config(config: Dict[str, Any]) -> ProtectionPolicy:
    """
    Build the effective policy: built-in table plus the config's ``policy`` section.

    A name the config lists in one class is removed from the other built-in
    class, so operators can reclassify a built-in name explicitly.
    """
    section = config.get("policy") or {}

    default_name = section.get("default", ProtectionClass.PROVISIONING_ONLY.value)
    try:
        default = ProtectionClass(default_name)
    except ValueError:
        raise ConfigError(
            f"Invalid 'policy.default': {default_name!r}\n"
            f"Use 'provisioning-only' (recommended) or 'syncable'."
        )
    if default is ProtectionClass.SYNCABLE:
        logger.warning("Unclassified secret names will be synced ('policy.default: syncable')")

    extra_provisioning = _names(section, "provisioning_only")
    extra_syncable = _names(section, "syncable")
    provisioning_only = (PROVISIONING_ONLY - extra_syncable) | extra_provisioning
    syncable = (SYNCABLE - extra_provisioning) | extra_syncable

    encodings = dict(ENCODINGS)
    for name, value in (section.get("encodings") or {}).items():
        try:
            encodings[name] = Encoding(value)
        except ValueError:
            raise ConfigError(f"Invalid encoding {value!r} for '{name}' (use 'opaque' or 'base64')")

    return ProtectionPolicy(
        provisioning_only=provisioning_only,
        syncable=syncable,
        default=default,
        encodings=encodings,
    )
