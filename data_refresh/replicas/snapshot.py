"""
Configuration snapshot capture.

Records everything needed to rebuild a secondary database before it is
destroyed. Capture never fails the run by itself: if replication links
cannot be read the snapshot is kept with no links, and a missing
environment tag is recorded as a warning, since the recreated database
only carries the tags captured here.
"""

import logging
from typing import List

from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import ControlPlaneError
from data_refresh.models import ReplicaConfiguration, ReplicaDatabase, ReplicationLinkDescriptor

logger = logging.getLogger(__name__)


class SnapshotCapturer:
    """Builds ReplicaConfiguration snapshots from live databases."""

    def __init__(self, control_plane: ControlPlane, environment_tag: str) -> None:
        self.control_plane = control_plane
        self.environment_tag = environment_tag

    def capture(self, database: ReplicaDatabase) -> ReplicaConfiguration:
        """
        Capture a point-in-time configuration of ``database``.

        Args:
            database: A name- and ownership-matched secondary database

        Returns:
            ReplicaConfiguration with tags, SKU, storage, redundancy and links
        """
        logger.info(f"📸 Capturing configuration of {database.name} on {database.server.name}")
        warnings: List[str] = []

        if self.environment_tag not in database.tags:
            warnings.append(f"{database.name} is missing the {self.environment_tag} tag")

        links = self._fetch_links(database, warnings)

        for warning in warnings:
            logger.warning(f"⚠️  {warning}")

        snapshot = ReplicaConfiguration(
            database_name=database.name,
            server=database.server,
            tags=dict(database.tags),
            sku_name=database.sku_name,
            sku_tier=database.sku_tier,
            sku_capacity=database.sku_capacity,
            sku_family=database.sku_family,
            max_size_bytes=database.max_size_bytes,
            zone_redundant=database.zone_redundant,
            read_scale=database.read_scale,
            elastic_pool_id=database.elastic_pool_id,
            links=links,
            warnings=warnings,
        )
        logger.info(
            f"   SKU={snapshot.sku_label}, maxSize={snapshot.max_size_bytes}, "
            f"zoneRedundant={snapshot.zone_redundant}, readScale={snapshot.read_scale}, "
            f"links={len(links)}"
        )
        return snapshot

    def _fetch_links(
        self, database: ReplicaDatabase, warnings: List[str]
    ) -> List[ReplicationLinkDescriptor]:
        try:
            links = self.control_plane.list_replication_links(database.server, database.name)
        except ControlPlaneError as exc:
            warnings.append(
                f"Could not read replication links of {database.name}: {exc}; "
                "primary will be inferred from the server name"
            )
            return []
        for link in links:
            logger.info(
                f"   🔗 Link {link.link_type.value} -> {link.partner_server}/{link.partner_database} "
                f"(role={link.role}, state={link.replication_state})"
            )
        return list(links)
