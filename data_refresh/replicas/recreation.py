"""
Declarative recreation of secondary databases.

For each snapshot the current primary is resolved (from the recorded geo
link, otherwise by stripping the secondary-server token from the server
name), the primary database is confirmed to exist, and an ARM deployment
creating the database as a secondary of that primary is submitted and
polled to a terminal state.
"""

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from data_refresh.config_manager import ReplicaConfig
from data_refresh.control_plane import (
    DEPLOYMENT_SUCCEEDED,
    DEPLOYMENT_TERMINAL_STATES,
    ControlPlane,
)
from data_refresh.exceptions import ControlPlaneError, DeploymentError, PrimaryNotFoundError
from data_refresh.models import ReplicaConfiguration, ReplicaServer, ReplicationLinkDescriptor
from data_refresh.replicas.deployment_template import DeploymentTemplate, materialized

logger = logging.getLogger(__name__)

MAX_DEPLOYMENT_NAME_LENGTH = 64
DIGEST_LENGTH = 8


def deployment_name_for(database_name: str, now: datetime) -> str:
    """Deterministic ARM deployment name, e.g. ``replica-db-x-20250101120000``.

    Names too long for ARM are truncated and suffixed with a short digest of
    the full database name, so databases sharing a long prefix stay distinct.
    """
    safe = re.sub(r"[^A-Za-z0-9_.()-]", "-", database_name)
    stamp = now.strftime("%Y%m%d%H%M%S")
    prefix = f"replica-{safe}"
    budget = MAX_DEPLOYMENT_NAME_LENGTH - len(stamp) - 1
    if len(prefix) > budget:
        digest = hashlib.sha1(database_name.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
        prefix = f"{prefix[: budget - DIGEST_LENGTH - 1]}-{digest}"
    return f"{prefix}-{stamp}"


def infer_primary_server_name(secondary_server_name: str, secondary_token: str) -> str:
    """Strip the secondary-server token, e.g. ``sql-acme-replica`` -> ``sql-acme``."""
    return re.sub(re.escape(secondary_token), "", secondary_server_name, count=1, flags=re.IGNORECASE)


@dataclass
class RecreationResult:
    primary_server: str
    primary_database_id: str
    deployment_name: str
    state: str


class DeclarativeRecreation:
    """Rebuilds secondaries from snapshots through ARM deployments."""

    def __init__(
        self,
        control_plane: ControlPlane,
        config: ReplicaConfig,
        audit: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.control_plane = control_plane
        self.config = config
        self.audit = audit
        self._sleep = sleep
        self._clock = clock

    def resolve_primary(self, snapshot: ReplicaConfiguration) -> Tuple[ReplicaServer, str]:
        """
        Determine the primary server and database for ``snapshot``.

        Returns:
            Tuple of (primary server, primary database name)

        Raises:
            PrimaryNotFoundError: If no primary server can be located
        """
        link = self._primary_link(snapshot)
        if link is not None:
            server = self._server_from_link(snapshot, link)
            if server is not None:
                logger.info(
                    f"🎯 Primary from replication link: {server.name}/{link.partner_database}"
                )
                return server, link.partner_database
            logger.warning(
                f"⚠️  Partner server {link.partner_server} from the replication link could not "
                "be located; falling back to the naming convention"
            )

        inferred = infer_primary_server_name(
            snapshot.server.name, self.config.secondary_server_token
        )
        if inferred == snapshot.server.name:
            raise PrimaryNotFoundError(
                f"Cannot infer a primary server from {snapshot.server.name}: "
                f"name does not contain '{self.config.secondary_server_token}'",
                server=snapshot.server.name,
                database=snapshot.database_name,
            )
        server = self.control_plane.find_server(inferred, snapshot.subscription_id)
        if server is None:
            raise PrimaryNotFoundError(
                f"Primary server not found: inferred server {inferred} does not exist",
                server=inferred,
                database=snapshot.database_name,
            )
        logger.info(f"🎯 Primary inferred from naming convention: {server.name}")
        return server, snapshot.database_name

    @staticmethod
    def _primary_link(snapshot: ReplicaConfiguration) -> Optional[ReplicationLinkDescriptor]:
        geo_links = snapshot.geo_links
        for link in geo_links:
            if (link.partner_role or "").lower() == "primary":
                return link
        return geo_links[0] if geo_links else None

    def _server_from_link(
        self, snapshot: ReplicaConfiguration, link: ReplicationLinkDescriptor
    ) -> Optional[ReplicaServer]:
        if not link.partner_server:
            return None
        server = self.control_plane.find_server(link.partner_server, snapshot.subscription_id)
        if server is not None:
            return server
        if link.partner_resource_group:
            return ReplicaServer(
                name=link.partner_server,
                resource_group=link.partner_resource_group,
                subscription_id=snapshot.subscription_id,
                location=link.partner_location or "",
            )
        return None

    def recreate(self, snapshot: ReplicaConfiguration) -> RecreationResult:
        """
        Recreate ``snapshot`` as a secondary of its primary.

        Raises:
            PrimaryNotFoundError: If the primary server or database does not exist
            DeploymentError: If the deployment fails or does not finish in time
        """
        primary_server, primary_database = self.resolve_primary(snapshot)
        primary = self.control_plane.get_database(primary_server, primary_database)
        if primary is None:
            raise PrimaryNotFoundError(
                f"Primary database {primary_database} not found on inferred server "
                f"{primary_server.name}",
                server=primary_server.name,
                database=primary_database,
            )

        template = DeploymentTemplate.secondary_from_primary(snapshot, primary.resource_id)
        name = deployment_name_for(snapshot.database_name, self._clock())
        logger.info(
            f"🏗️  Submitting deployment {name}: {snapshot.server.name}/{snapshot.database_name} "
            f"as secondary of {primary_server.name}/{primary_database}"
        )
        with materialized(template, self.config.template_dir) as template_path:
            self.control_plane.submit_deployment(snapshot.server, name, template_path)
        if self.audit is not None:
            self.audit.info(
                "replica.deployment_submitted",
                database=snapshot.database_name,
                server=snapshot.server.name,
                deployment=name,
                source_database_id=primary.resource_id,
            )

        state = self.wait_for_deployment(snapshot.server, name)
        if state != DEPLOYMENT_SUCCEEDED:
            raise DeploymentError(
                f"Deployment {name} for {snapshot.database_name} ended in state {state}",
                deployment_name=name,
                state=state,
            )
        logger.info(f"✅ Deployment {name} succeeded")
        return RecreationResult(
            primary_server=primary_server.name,
            primary_database_id=primary.resource_id,
            deployment_name=name,
            state=state,
        )

    def wait_for_deployment(self, server: ReplicaServer, deployment_name: str) -> str:
        """Poll the deployment until it reaches a terminal state or the poll budget runs out."""
        max_polls = self.config.deployment_max_polls
        interval = self.config.deployment_poll_interval
        state = "Unknown"
        for attempt in range(1, max_polls + 1):
            try:
                state = self.control_plane.get_deployment_status(server, deployment_name)
            except ControlPlaneError as exc:
                logger.warning(f"⚠️  Could not read deployment {deployment_name}: {exc}")
                state = "Unknown"
            if state in DEPLOYMENT_TERMINAL_STATES:
                return state
            logger.info(f"⌛ [{attempt}/{max_polls}] {deployment_name} status: {state}")
            if attempt < max_polls:
                self._sleep(interval)

        total = int(max_polls * interval)
        raise DeploymentError(
            f"Deployment {deployment_name} did not finish within {total} seconds "
            f"(last state {state})",
            deployment_name=deployment_name,
            state=state,
            error_code="DEPLOYMENT_TIMEOUT",
        )
