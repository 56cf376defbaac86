"""Post-creation replication link check.

A link that is not visible yet is a warning, never a failure: the
platform establishes replication asynchronously after the deployment
reports success.
"""

import logging
import time
from typing import Callable

from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import ControlPlaneError
from data_refresh.models import ReplicaConfiguration, VerificationStatus

logger = logging.getLogger(__name__)


class PostCreationVerifier:
    def __init__(
        self,
        control_plane: ControlPlane,
        settling_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.control_plane = control_plane
        self.settling_seconds = settling_seconds
        self._sleep = sleep

    def wait_for_settling(self) -> None:
        if self.settling_seconds > 0:
            logger.info(f"⏳ Waiting {self.settling_seconds:g}s for replication to settle...")
            self._sleep(self.settling_seconds)

    def verify(self, snapshot: ReplicaConfiguration) -> VerificationStatus:
        self.wait_for_settling()
        try:
            links = self.control_plane.list_replication_links(
                snapshot.server, snapshot.database_name
            )
        except ControlPlaneError as exc:
            logger.warning(
                f"⚠️  Could not read replication links of {snapshot.database_name}: {exc}. "
                "Replication may take a few minutes to appear"
            )
            return VerificationStatus.PENDING

        if links:
            for link in links:
                logger.info(
                    f"✅ Replication link established: {snapshot.database_name} -> "
                    f"{link.partner_server}/{link.partner_database} "
                    f"(state={link.replication_state})"
                )
            return VerificationStatus.ESTABLISHED

        logger.warning(
            f"⚠️  No replication link visible yet for {snapshot.database_name}; "
            "it may take a few minutes to appear"
        )
        return VerificationStatus.PENDING
