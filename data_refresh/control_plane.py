"""Control-plane interface used by the replica lifecycle.

Orchestration code depends only on this interface, so the Azure
implementation can be swapped for a different client or a test double.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from data_refresh.models import (
    ReplicaDatabase,
    ReplicaServer,
    ReplicationLinkDescriptor,
)

DEPLOYMENT_SUCCEEDED = "Succeeded"
DEPLOYMENT_TERMINAL_STATES = frozenset({"Succeeded", "Failed", "Canceled"})


class ControlPlane(ABC):
    """Operations the replica lifecycle needs from the cloud control plane."""

    @abstractmethod
    def list_servers(self, environment: str) -> List[ReplicaServer]:
        """Return secondary servers tagged for ``environment``."""

    @abstractmethod
    def find_server(self, name: str, subscription_id: str) -> Optional[ReplicaServer]:
        """Look up a SQL server by name, ``None`` when it does not exist."""

    @abstractmethod
    def list_databases(self, server: ReplicaServer) -> List[ReplicaDatabase]:
        """Return the non-system databases hosted on ``server``."""

    @abstractmethod
    def get_database(self, server: ReplicaServer, name: str) -> Optional[ReplicaDatabase]:
        """Return one database, ``None`` when the control plane reports not found."""

    @abstractmethod
    def list_replication_links(
        self, server: ReplicaServer, database: str
    ) -> List[ReplicationLinkDescriptor]:
        """Return the replication links of ``database``."""

    @abstractmethod
    def delete_replication_link(
        self, server: ReplicaServer, database: str, link: ReplicationLinkDescriptor
    ) -> None:
        """Terminate ``link`` from the secondary side."""

    @abstractmethod
    def delete_database(self, server: ReplicaServer, database: str) -> None:
        """Delete ``database``. The server itself is never touched."""

    @abstractmethod
    def submit_deployment(
        self, server: ReplicaServer, deployment_name: str, template_path: Path
    ) -> None:
        """Submit a template file as a resource-group deployment without waiting."""

    @abstractmethod
    def get_deployment_status(self, server: ReplicaServer, deployment_name: str) -> str:
        """Return the deployment's provisioning state."""

    @abstractmethod
    def refresh_session(self) -> None:
        """Re-establish the control-plane credential."""
