"""
Replica Lifecycle Manager

Tears down and rebuilds the secondary databases of a destination
environment during a data refresh:

    discovery -> name/ownership matching
      -> for every matched database: snapshot -> sever geo links -> delete
      -> for every deleted database: recreate as secondary -> settle -> verify

Teardown fully drains across all matched databases before the first
recreation starts, so a deployment never races a deletion on the same
server. Snapshots live only in the result of one ``run`` call.

Failure policy:
- Production namespace, ownership mismatch, discovery and link termination
  failures abort the run.
- A failed deletion is recorded for manual follow-up; siblings continue and
  no recreation is attempted for it.
- Recreation failures are recorded per database and do not stop siblings.
- A link that is not yet visible after recreation is only a warning.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from data_refresh.config_manager import DataRefreshConfig
from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import (
    DataRefreshError,
    DeploymentError,
    ReplicationLinkError,
    TeardownError,
)
from data_refresh.logging_config import get_audit_logger
from data_refresh.models import (
    DatabaseOutcome,
    Phase,
    RefreshRequest,
    RefreshResult,
    ReplicaConfiguration,
    ReplicaDatabase,
    VerificationStatus,
)
from data_refresh.replicas.discovery import ReplicaDiscovery
from data_refresh.replicas.pattern_matcher import PatternMatcher, ensure_not_production
from data_refresh.replicas.recreation import DeclarativeRecreation
from data_refresh.replicas.severance import ReplicationSeverance
from data_refresh.replicas.snapshot import SnapshotCapturer
from data_refresh.replicas.teardown import DestructiveTeardown
from data_refresh.replicas.verification import PostCreationVerifier

logger = logging.getLogger(__name__)


@dataclass
class _PendingRecreation:
    snapshot: ReplicaConfiguration
    outcome: DatabaseOutcome


class ReplicaLifecycleManager:
    """Orchestrates one replica refresh for a destination environment."""

    def __init__(
        self,
        control_plane: ControlPlane,
        config: DataRefreshConfig,
        sleep: Callable[[float], None] = time.sleep,
        audit: Optional[Any] = None,
    ) -> None:
        self.control_plane = control_plane
        self.config = config
        self._sleep = sleep
        self._audit = audit

    def run(self, request: RefreshRequest) -> RefreshResult:
        """
        Execute the replica lifecycle for ``request``.

        Args:
            request: Destination/source identity and dry-run flag

        Returns:
            RefreshResult describing every processed database

        Raises:
            ProductionNamespaceError: If the destination namespace is production
            OwnershipTagMismatchError: If a matched database belongs to another namespace
            DiscoveryError: If discovery fails
            ReplicationLinkError: If a geo link cannot be terminated
        """
        replicas = self.config.replicas
        ensure_not_production(request.destination_namespace, replicas.production_namespace)

        audit = self._audit or get_audit_logger(
            destination=request.destination_environment,
            namespace=request.destination_namespace,
        )
        result = RefreshResult(request=request)

        logger.info("=" * 60)
        logger.info(
            f"🚀 Replica refresh: destination={request.destination_environment}, "
            f"namespace={request.destination_namespace}, source={request.source_environment}, "
            f"source namespace={request.source_namespace}, dry run={request.dry_run}"
        )
        logger.info("=" * 60)

        discovery = ReplicaDiscovery(self.control_plane, replicas.secondary_server_token)
        found = discovery.discover(request.destination_environment)
        result.servers = list(found.servers)
        if found.is_empty:
            logger.warning(
                f"⚠️  No secondary servers tagged for '{request.destination_environment}'; "
                "nothing to refresh"
            )
            return result

        matcher = PatternMatcher(
            destination_namespace=request.destination_namespace,
            source_environment=request.source_environment,
            production_namespace=replicas.production_namespace,
            ownership_tag=replicas.ownership_tag,
            source_product=request.source_product,
            source_type=request.source_type,
            source_location=request.source_location,
        )
        # Ownership of every match is checked here, before any mutation
        accepted, skipped = matcher.select(found.all_databases())
        result.skipped_databases = [f"{db.server.name}/{db.name}" for db in skipped]
        result.outcomes = [self._outcome_for(db) for db in accepted]

        if not accepted:
            logger.warning("⚠️  No databases matched; nothing to refresh")
            return result

        if request.dry_run:
            self._describe_dry_run(accepted)
            return result

        pending = self._teardown_phase(accepted, result.outcomes, audit)
        self._recreation_phase(pending, audit)

        for outcome in result.follow_ups:
            logger.error(
                f"❗ MANUAL FOLLOW-UP REQUIRED: {outcome.server_name}/{outcome.database_name} "
                f"({outcome.phase.value}): {outcome.error}"
            )
        return result

    # ------------------------------------------------------------------
    # Phase 1: snapshot, sever, delete (strictly sequential)
    # ------------------------------------------------------------------

    def _teardown_phase(
        self,
        databases: List[ReplicaDatabase],
        outcomes: List[DatabaseOutcome],
        audit: Any,
    ) -> List[_PendingRecreation]:
        capturer = SnapshotCapturer(self.control_plane, self.config.replicas.environment_tag)
        severance = ReplicationSeverance(self.control_plane, audit)
        teardown = DestructiveTeardown(self.control_plane, audit)
        pending: List[_PendingRecreation] = []

        logger.info(f"🔻 Phase 1: tearing down {len(databases)} secondary database(s)")
        for database, outcome in zip(databases, outcomes):
            snapshot = capturer.capture(database)
            outcome.phase = Phase.SNAPSHOTTED
            outcome.warnings.extend(snapshot.warnings)

            try:
                unhandled = severance.sever(snapshot)
            except ReplicationLinkError as exc:
                outcome.require_follow_up(exc.message)
                self._log_stranded(pending, audit)
                audit.error(
                    "replica.manual_follow_up",
                    database=database.name,
                    server=database.server.name,
                    reason=exc.message,
                )
                raise
            outcome.unhandled_links = [
                f"{link.link_type.value}:{link.partner_server}" for link in unhandled
            ]
            outcome.phase = Phase.LINK_SEVERED

            try:
                teardown.delete(snapshot)
            except TeardownError as exc:
                outcome.phase = Phase.DELETE_FAILED
                outcome.require_follow_up(exc.message)
                logger.error(
                    f"❌ MANUAL INTERVENTION REQUIRED: {database.name} on {database.server.name} "
                    f"could not be deleted and will not be recreated: {exc}"
                )
                audit.error(
                    "replica.manual_follow_up",
                    database=database.name,
                    server=database.server.name,
                    reason=exc.message,
                )
                continue

            outcome.phase = Phase.DELETED
            pending.append(_PendingRecreation(snapshot=snapshot, outcome=outcome))

        logger.info(
            f"✅ Phase 1 complete: {len(pending)}/{len(databases)} database(s) deleted"
        )
        return pending

    def _log_stranded(self, pending: List[_PendingRecreation], audit: Any) -> None:
        for item in pending:
            logger.error(
                f"❗ {item.snapshot.server.name}/{item.snapshot.database_name} was deleted "
                "and has NOT been recreated; recreate it manually"
            )
            item.outcome.require_follow_up("deleted but not recreated: run aborted")
            audit.error(
                "replica.manual_follow_up",
                database=item.snapshot.database_name,
                server=item.snapshot.server.name,
                reason="deleted but not recreated",
            )

    # ------------------------------------------------------------------
    # Phase 2: recreate, settle, verify
    # ------------------------------------------------------------------

    def _recreation_phase(self, pending: List[_PendingRecreation], audit: Any) -> None:
        if not pending:
            return
        workers = min(self.config.replicas.max_parallel_recreations, len(pending))
        logger.info(
            f"🔺 Phase 2: recreating {len(pending)} secondary database(s) "
            f"({workers} at a time)"
        )
        recreation = DeclarativeRecreation(
            self.control_plane, self.config.replicas, audit=audit, sleep=self._sleep
        )
        verifier = PostCreationVerifier(
            self.control_plane, self.config.replicas.settling_seconds, sleep=self._sleep
        )

        if workers == 1:
            for item in pending:
                self._recreate_one(item, recreation, verifier, audit)
            return

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._recreate_one, item, recreation, verifier, audit)
                for item in pending
            ]
            for future in futures:
                future.result()

    def _recreate_one(
        self,
        item: _PendingRecreation,
        recreation: DeclarativeRecreation,
        verifier: PostCreationVerifier,
        audit: Any,
    ) -> None:
        snapshot, outcome = item.snapshot, item.outcome
        try:
            created = recreation.recreate(snapshot)
        except DataRefreshError as exc:
            # PrimaryNotFoundError, DeploymentError and other control-plane failures
            self._recreation_failed(outcome, exc, audit)
            return
        except Exception as exc:
            # Local failures such as an unwritable template directory or a broken az install
            self._recreation_failed(
                outcome,
                DeploymentError(
                    f"Recreation of {snapshot.database_name} failed: {exc}",
                    error_code="RECREATION_FAILED",
                    cause=exc,
                ),
                audit,
            )
            return

        outcome.phase = Phase.CREATED
        outcome.primary_server = created.primary_server
        outcome.deployment_name = created.deployment_name
        audit.info(
            "replica.recreated",
            database=snapshot.database_name,
            server=snapshot.server.name,
            deployment=created.deployment_name,
            sku=snapshot.sku_label,
        )

        outcome.verification = verifier.verify(snapshot)
        if outcome.verification is VerificationStatus.ESTABLISHED:
            outcome.phase = Phase.VERIFIED
        else:
            outcome.warnings.append("replication link not visible yet; may need more time")

    def _recreation_failed(
        self, outcome: DatabaseOutcome, exc: DataRefreshError, audit: Any
    ) -> None:
        outcome.phase = Phase.RECREATION_FAILED
        outcome.require_follow_up(exc.message)
        logger.error(
            f"❌ Recreation of {outcome.server_name}/{outcome.database_name} failed: {exc}. "
            "The secondary is deleted and must be recreated manually"
        )
        audit.error(
            "replica.manual_follow_up",
            database=outcome.database_name,
            server=outcome.server_name,
            reason=exc.message,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _outcome_for(database: ReplicaDatabase) -> DatabaseOutcome:
        return DatabaseOutcome(
            database_name=database.name,
            server_name=database.server.name,
            sku_label=database.sku_label,
            tags=dict(database.tags),
        )

    @staticmethod
    def _describe_dry_run(databases: List[ReplicaDatabase]) -> None:
        logger.info("✅ DRY RUN: no links will be severed and no databases deleted")
        for database in databases:
            logger.info(
                f"➡️ Would snapshot, sever geo links of, delete and recreate "
                f"{database.server.name}/{database.name} (SKU {database.sku_label})"
            )
