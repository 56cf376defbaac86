"""Replication link termination.

Only geo links are terminated. Any other link type is logged as not
handled and left alone, and the run continues. Termination targets the
specific partner recorded on each link; a failure is fatal, because a
secondary that is still linked must not be deleted.
"""

import logging
from typing import Any, List, Optional

from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import ControlPlaneError, ReplicationLinkError
from data_refresh.models import ReplicaConfiguration, ReplicationLinkDescriptor

logger = logging.getLogger(__name__)


class ReplicationSeverance:
    def __init__(self, control_plane: ControlPlane, audit: Optional[Any] = None) -> None:
        self.control_plane = control_plane
        self.audit = audit

    def sever(self, snapshot: ReplicaConfiguration) -> List[ReplicationLinkDescriptor]:
        """
        Terminate every geo link recorded in ``snapshot``.

        Args:
            snapshot: Configuration captured for the secondary database

        Returns:
            Links that were not handled because they are not geo links

        Raises:
            ReplicationLinkError: If a geo link termination fails
        """
        unhandled: List[ReplicationLinkDescriptor] = []
        if not snapshot.links:
            logger.info(f"🔗 No replication links recorded for {snapshot.database_name}")
            return unhandled

        for link in snapshot.links:
            if not link.is_geo:
                logger.warning(
                    f"⚠️  Link type {link.link_type.value} between {snapshot.database_name} and "
                    f"{link.partner_server} is not handled; leaving it in place"
                )
                unhandled.append(link)
                continue
            self._terminate(snapshot, link)
        return unhandled

    def _terminate(self, snapshot: ReplicaConfiguration, link: ReplicationLinkDescriptor) -> None:
        logger.info(
            f"✂️  Terminating geo link {snapshot.server.name}/{snapshot.database_name} -> "
            f"{link.partner_server}/{link.partner_database} "
            f"(partner rg={link.partner_resource_group or 'unknown'})"
        )
        try:
            self.control_plane.delete_replication_link(
                snapshot.server, snapshot.database_name, link
            )
        except ControlPlaneError as exc:
            raise ReplicationLinkError(
                f"Failed to terminate replication link of {snapshot.database_name} with "
                f"{link.partner_server}: {exc.message}",
                database=snapshot.database_name,
                partner_server=link.partner_server,
                cause=exc,
                recovery_suggestion="Remove the link manually before re-running; the database was not deleted",
            ) from exc
        if self.audit is not None:
            self.audit.info(
                "replica.link_terminated",
                database=snapshot.database_name,
                server=snapshot.server.name,
                partner_server=link.partner_server,
                partner_database=link.partner_database,
                link_id=link.link_id,
            )
        logger.info(f"✅ Link to {link.partner_server} terminated")
