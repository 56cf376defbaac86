"""Secondary database deletion. The hosting server is never a target."""

import logging
from typing import Any, Optional

from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import ControlPlaneError, TeardownError
from data_refresh.models import ReplicaConfiguration

logger = logging.getLogger(__name__)


class DestructiveTeardown:
    def __init__(self, control_plane: ControlPlane, audit: Optional[Any] = None) -> None:
        self.control_plane = control_plane
        self.audit = audit

    def delete(self, snapshot: ReplicaConfiguration) -> None:
        """Delete the database described by ``snapshot``.

        Raises:
            TeardownError: If the control plane refuses or fails the deletion
        """
        server = snapshot.server
        logger.info(f"🗑️  Deleting database {snapshot.database_name} from {server.name}...")
        try:
            self.control_plane.delete_database(server, snapshot.database_name)
        except ControlPlaneError as exc:
            raise TeardownError(
                f"Failed to delete {snapshot.database_name} from {server.name}: {exc.message}",
                database=snapshot.database_name,
                server=server.name,
                cause=exc,
            ) from exc
        if self.audit is not None:
            self.audit.info(
                "replica.database_deleted",
                database=snapshot.database_name,
                server=server.name,
                resource_group=server.resource_group,
            )
        logger.info(f"✅ Deleted {snapshot.database_name} from {server.name}")
