"""Domain models for secret synchronisation."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Encoding(Enum):
    """How a secret value is encoded. Descriptive only, values are never transformed."""
    OPAQUE = "opaque"
    BASE64_BLOB = "base64"


class ProtectionClass(Enum):
    """Whether a secret may leave its source repository."""
    PROVISIONING_ONLY = "provisioning-only"
    SYNCABLE = "syncable"


class Result(Enum):
    """Per-name result of a sync run."""
    SYNCED = "synced"
    SKIPPED = "skipped"
    WARNED = "warning"
    FAILED = "failed"


@dataclass(frozen=True)
class RepositoryRef:
    """A GitHub repository, identified by owner and name."""
    org: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "RepositoryRef":
        org, _, name = value.strip().partition("/")
        return cls(org=org, name=name)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class SecretRecord:
    """A secret value as read from the source catalog."""
    name: str
    value: bytes = field(repr=False)
    encoding: Encoding = Encoding.OPAQUE
    source: str = "env"  # "context", "env" or "gcp"


@dataclass(frozen=True)
class SyncRequest:
    """Request to copy secrets into a target repository."""
    target_repo: RepositoryRef
    requested_names: Tuple[str, ...]


@dataclass(frozen=True)
class SyncOutcome:
    """Outcome for one requested name."""
    name: str
    result: Result
    reason: Optional[str] = None

    def render(self) -> str:
        if self.reason:
            return f"{self.name}: {self.result.value} ({self.reason})"
        return f"{self.name}: {self.result.value}"


@dataclass
class SyncReport:
    """All outcomes of one sync run, in request order."""
    target_repo: RepositoryRef
    outcomes: List[SyncOutcome] = field(default_factory=list)

    def count(self, result: Result) -> int:
        return sum(1 for outcome in self.outcomes if outcome.result is result)

    @property
    def has_failures(self) -> bool:
        return self.count(Result.FAILED) > 0

    def summary(self) -> str:
        return (
            f"Summary: {self.count(Result.SYNCED)} synced, "
            f"{self.count(Result.SKIPPED)} skipped, "
            f"{self.count(Result.WARNED)} warning, "
            f"{self.count(Result.FAILED)} failed"
        )

    def render(self) -> str:
        lines = [outcome.render() for outcome in self.outcomes]
        lines.append(self.summary())
        return "\n".join(lines)


@dataclass
class PresenceResult:
    """Which required secrets a repository already has."""
    repo: RepositoryRef
    present: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing
