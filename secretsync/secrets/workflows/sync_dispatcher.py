"""Workflow that copies secrets from the source catalog into a target repository.

Runs with the source repository's own identity. Each requested name is
handled independently: a skip, warning or failure for one name never stops
the others, and every name gets exactly one outcome in the report.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..domains.errors import CatalogError, PlatformError
from ..domains.github_client import failure_reason
from ..domains.models import ProtectionClass, Result, SyncOutcome, SyncReport, SyncRequest
from ..domains.policy import ProtectionPolicy, policy_from_config
from .secret_operations import SecretCatalog

logger = logging.getLogger(__name__)

MAX_WORKERS = 5
SKIP_PROVISIONING_ONLY = "provisioning-only secret, never synced"
WARN_NOT_IN_SOURCE = "source has no such secret yet"
SKIP_DRY_RUN = "dry run, would sync"


class SyncDispatcher:
    """Classify, resolve and write each requested secret."""

    def __init__(
        self,
        catalog: SecretCatalog,
        store,
        policy: ProtectionPolicy,
        max_workers: int = 4,
        write_timeout: float = 30,
        dry_run: bool = False,
    ):
        self.catalog = catalog
        self.store = store
        self.policy = policy
        self.max_workers = max(1, min(max_workers, MAX_WORKERS))
        self.write_timeout = write_timeout
        self.dry_run = dry_run

    def _sync_one(self, request: SyncRequest, name: str) -> SyncOutcome:
        if self.policy.classify(name) is ProtectionClass.PROVISIONING_ONLY:
            logger.info(f"Skipping {name}: provisioning-only")
            return SyncOutcome(name, Result.SKIPPED, SKIP_PROVISIONING_ONLY)

        try:
            record = self.catalog.resolve(name)
        except CatalogError as e:
            logger.error(f"Could not resolve {name}: {e}")
            return SyncOutcome(name, Result.FAILED, str(e))
        if record is None:
            logger.warning(f"{name} not found in source catalog")
            return SyncOutcome(name, Result.WARNED, WARN_NOT_IN_SOURCE)

        if self.dry_run:
            return SyncOutcome(name, Result.SKIPPED, SKIP_DRY_RUN)

        try:
            self.store.write_secret(request.target_repo, name, record.value, timeout=self.write_timeout)
        except PlatformError as e:
            reason = failure_reason(e)
            logger.error(f"Failed to set {name} in {request.target_repo}: {reason}")
            return SyncOutcome(name, Result.FAILED, reason)

        logger.info(f"Set {name} in {request.target_repo} ({len(record.value)} bytes from {record.source})")
        return SyncOutcome(name, Result.SYNCED)

    def _sync_isolated(self, request: SyncRequest, name: str) -> SyncOutcome:
        try:
            return self._sync_one(request, name)
        except Exception as e:
            logger.exception(f"Unexpected error while syncing {name}")
            return SyncOutcome(name, Result.FAILED, str(e) or type(e).__name__)

    def dispatch(self, request: SyncRequest) -> SyncReport:
        """
        Run a sync request.

        Names are processed in parallel on a small pool; the report keeps
        request order.
        """
        names = list(request.requested_names)
        logger.info(f"Syncing {len(names)} secret(s) to {request.target_repo}")

        if len(names) <= 1 or self.max_workers == 1:
            outcomes: List[SyncOutcome] = [self._sync_isolated(request, name) for name in names]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda name: self._sync_isolated(request, name), names))

        return SyncReport(target_repo=request.target_repo, outcomes=outcomes)


def dispatch_sync(
    request: SyncRequest,
    catalog: SecretCatalog,
    store,
    policy: ProtectionPolicy,
    max_workers: int = 4,
    write_timeout: float = 30,
    dry_run: bool = False,
) -> SyncReport:
    """Run one sync request and return its report."""
    dispatcher = SyncDispatcher(
        catalog, store, policy,
        max_workers=max_workers, write_timeout=write_timeout, dry_run=dry_run,
    )
    return dispatcher.dispatch(request)


def dispatcher_from_config(config, store, catalog: Optional[SecretCatalog] = None, policy=None, dry_run=False):
    """Build a dispatcher from a loaded config dict."""
    policy = policy or policy_from_config(config)
    catalog = catalog or SecretCatalog(config["catalog"]["backends"], policy=policy, config=config)
    return SyncDispatcher(
        catalog, store, policy,
        max_workers=config["sync"]["max_workers"],
        write_timeout=config["sync"]["write_timeout"],
        dry_run=dry_run,
    )
