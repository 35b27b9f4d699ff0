"""Exceptions raised by secretsync."""
from typing import Optional


class ConfigError(Exception):
    """Configuration error exception."""
    pass


class InputValidationError(ValueError):
    """A sync request or secret name failed validation. Nothing was attempted."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class PresenceCheckFailure(Exception):
    """Required secrets are missing in a CI context."""

    def __init__(self, repo, missing):
        self.repo = repo
        self.missing = list(missing)
        super().__init__(
            f"{len(self.missing)} required secret(s) missing in {repo}: {', '.join(self.missing)}"
        )


class PlatformError(Exception):
    """A call to the GitHub API failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class CatalogError(Exception):
    """A secret catalog backend is misconfigured or unreachable."""
    pass
