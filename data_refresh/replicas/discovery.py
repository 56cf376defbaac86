"""
Secondary server and database discovery.

Finds the SQL servers tagged as secondary servers for a destination
environment and the databases hosted on them. An empty first answer is
treated as a possibly stale session: the control-plane session is refreshed
exactly once and the query repeated before "no servers" is accepted.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import ConfigurationError, ControlPlaneError, DiscoveryError
from data_refresh.models import ReplicaDatabase, ReplicaServer

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Servers found for an environment and the databases on each."""

    environment: str
    servers: List[ReplicaServer] = field(default_factory=list)
    databases: Dict[str, List[ReplicaDatabase]] = field(default_factory=dict)
    session_refreshed: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.servers

    def all_databases(self) -> List[ReplicaDatabase]:
        return [db for server in self.servers for db in self.databases.get(server.name, [])]


class ReplicaDiscovery:
    """Discovers secondary servers for a destination environment."""

    def __init__(self, control_plane: ControlPlane, secondary_server_token: str) -> None:
        self.control_plane = control_plane
        self.secondary_server_token = secondary_server_token

    def discover(self, environment: str) -> DiscoveryResult:
        """
        Discover secondary servers and their databases.

        Args:
            environment: Destination environment name

        Returns:
            DiscoveryResult, possibly with no servers

        Raises:
            DiscoveryError: If the control-plane query fails
            ConfigurationError: If a discovered server does not look like a secondary server
        """
        if not environment:
            raise ValueError("Destination environment is required for discovery")

        logger.info(f"🔍 Discovering secondary servers for environment '{environment}'")
        result = DiscoveryResult(environment=environment)
        result.servers = self._list_servers(environment)

        if not result.servers:
            logger.warning(
                "🔄 No secondary servers found, refreshing control-plane session and retrying once..."
            )
            self.control_plane.refresh_session()
            result.session_refreshed = True
            result.servers = self._list_servers(environment)

        if not result.servers:
            logger.warning(f"⚠️  No secondary servers exist for environment '{environment}'")
            return result

        for server in result.servers:
            self._check_server_name(server)
            logger.info(
                f"📋 Found secondary server: {server.name} "
                f"(rg={server.resource_group}, location={server.location})"
            )
            try:
                databases = self.control_plane.list_databases(server)
            except DiscoveryError:
                raise
            except ControlPlaneError as exc:
                raise DiscoveryError(
                    f"Failed to list databases on {server.name}: {exc}",
                    environment=environment,
                    cause=exc,
                ) from exc
            result.databases[server.name] = [db for db in databases if not db.is_system]
            logger.info(
                f"   {len(result.databases[server.name])} database(s) on {server.name}"
            )

        return result

    def _list_servers(self, environment: str) -> List[ReplicaServer]:
        try:
            return self.control_plane.list_servers(environment)
        except DiscoveryError:
            raise
        except ControlPlaneError as exc:
            raise DiscoveryError(
                f"Secondary server query failed: {exc}",
                environment=environment,
                cause=exc,
            ) from exc

    def _check_server_name(self, server: ReplicaServer) -> None:
        if self.secondary_server_token.lower() not in server.name.lower():
            raise ConfigurationError(
                f"Expected '{self.secondary_server_token}' in secondary server name: {server.name}",
                context={"server": server.name},
                recovery_suggestion="Check the Environment/Type tags on the SQL servers",
            )
