import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from data_refresh.config_manager import (
    AzureConfig,
    DataRefreshConfig,
    LoggingConfig,
    ReplicaConfig,
)
from data_refresh.control_plane import ControlPlane
from data_refresh.models import (
    LinkType,
    ReplicaDatabase,
    ReplicaServer,
    ReplicationLinkDescriptor,
)

MUTATING_OPERATIONS = frozenset(
    {"delete_replication_link", "delete_database", "submit_deployment"}
)

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"


# ============================================================================
# Control-plane test double
# ============================================================================


class FakeControlPlane(ControlPlane):
    """In-memory control plane that records every call in order.

    Deletions remove state, and a deployment that reaches ``Succeeded``
    materializes the database described by the submitted template, so a
    full run can be checked end to end.
    """

    def __init__(self) -> None:
        self.servers_by_environment: Dict[str, List[ReplicaServer]] = {}
        self.server_responses: List[List[ReplicaServer]] = []
        self.known_servers: Dict[str, ReplicaServer] = {}
        self.databases: Dict[str, Dict[str, ReplicaDatabase]] = {}
        self.links: Dict[Tuple[str, str], List[ReplicationLinkDescriptor]] = {}
        self.deployment_states: Dict[str, List[str]] = {}
        self.establish_links = True
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, ...]] = []
        self.templates: Dict[str, Dict[str, Any]] = {}
        self.template_paths: List[Path] = []
        self._deployments: Dict[str, Tuple[ReplicaServer, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    # -- setup helpers -------------------------------------------------

    def add_server(self, server: ReplicaServer, environment: Optional[str] = None) -> None:
        self.known_servers[server.name] = server
        self.databases.setdefault(server.name, {})
        if environment:
            self.servers_by_environment.setdefault(environment, []).append(server)

    def add_database(self, database: ReplicaDatabase) -> None:
        self.add_server(database.server)
        self.databases[database.server.name][database.name] = database

    def add_link(
        self, server: ReplicaServer, database: str, link: ReplicationLinkDescriptor
    ) -> None:
        self.links.setdefault((server.name, database), []).append(link)

    def fail(self, operation: str, database: str, exc: Exception) -> None:
        self.failures[(operation, database)] = exc

    @property
    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]

    @property
    def mutations(self) -> List[Tuple[str, ...]]:
        return [call for call in self.calls if call[0] in MUTATING_OPERATIONS]

    def _record(self, *call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def _maybe_fail(self, operation: str, database: str) -> None:
        exc = self.failures.get((operation, database))
        if exc is not None:
            raise exc

    # -- ControlPlane --------------------------------------------------

    def list_servers(self, environment: str) -> List[ReplicaServer]:
        self._record("list_servers", environment)
        if self.server_responses:
            return self.server_responses.pop(0)
        return list(self.servers_by_environment.get(environment, []))

    def find_server(self, name: str, subscription_id: str) -> Optional[ReplicaServer]:
        self._record("find_server", name)
        return self.known_servers.get(name)

    def list_databases(self, server: ReplicaServer) -> List[ReplicaDatabase]:
        self._record("list_databases", server.name)
        return list(self.databases.get(server.name, {}).values())

    def get_database(self, server: ReplicaServer, name: str) -> Optional[ReplicaDatabase]:
        self._record("get_database", server.name, name)
        return self.databases.get(server.name, {}).get(name)

    def list_replication_links(
        self, server: ReplicaServer, database: str
    ) -> List[ReplicationLinkDescriptor]:
        self._record("list_replication_links", server.name, database)
        self._maybe_fail("list_replication_links", database)
        return list(self.links.get((server.name, database), []))

    def delete_replication_link(
        self, server: ReplicaServer, database: str, link: ReplicationLinkDescriptor
    ) -> None:
        self._record("delete_replication_link", server.name, database, link.partner_server)
        self._maybe_fail("delete_replication_link", database)
        remaining = [
            existing
            for existing in self.links.get((server.name, database), [])
            if existing.link_id != link.link_id
        ]
        self.links[(server.name, database)] = remaining

    def delete_database(self, server: ReplicaServer, database: str) -> None:
        self._record("delete_database", server.name, database)
        self._maybe_fail("delete_database", database)
        with self._lock:
            self.databases.get(server.name, {}).pop(database, None)
            self.links.pop((server.name, database), None)

    def submit_deployment(
        self, server: ReplicaServer, deployment_name: str, template_path: Path
    ) -> None:
        self._record("submit_deployment", server.name, deployment_name)
        template = json.loads(Path(template_path).read_text())
        resource = template["resources"][0]
        database = resource["name"].split("/", 1)[1]
        self._maybe_fail("submit_deployment", database)
        with self._lock:
            self.templates[database] = template
            self.template_paths.append(Path(template_path))
            self._deployments[deployment_name] = (server, resource)

    def get_deployment_status(self, server: ReplicaServer, deployment_name: str) -> str:
        self._record("get_deployment_status", server.name, deployment_name)
        target, resource = self._deployments[deployment_name]
        database = resource["name"].split("/", 1)[1]
        states = self.deployment_states.get(database, ["Succeeded"])
        state = states.pop(0) if len(states) > 1 else states[0]
        if state == "Succeeded":
            self._materialize(target, database, resource)
        return state

    def refresh_session(self) -> None:
        self._record("refresh_session")

    def _materialize(self, server: ReplicaServer, database: str, resource: Dict[str, Any]) -> None:
        sku = resource.get("sku") or {}
        properties = resource["properties"]
        with self._lock:
            self.databases.setdefault(server.name, {})[database] = ReplicaDatabase(
                name=database,
                server=server,
                sku_name=sku.get("name"),
                sku_tier=sku.get("tier"),
                sku_capacity=sku.get("capacity"),
                sku_family=sku.get("family"),
                max_size_bytes=properties.get("maxSizeBytes"),
                zone_redundant=properties.get("zoneRedundant"),
                read_scale=properties.get("readScale"),
                elastic_pool_id=properties.get("elasticPoolId"),
                tags=dict(resource.get("tags") or {}),
            )
            if self.establish_links and not self.links.get((server.name, database)):
                source = properties["sourceDatabaseId"].strip("/").split("/")
                self.links[(server.name, database)] = [
                    ReplicationLinkDescriptor(
                        link_id=f"{server.database_id(database)}/replicationLinks/new",
                        partner_server=source[7],
                        partner_database=source[9],
                        partner_resource_group=source[3],
                        link_type=LinkType.GEO,
                        replication_state="SEEDING",
                        role="Secondary",
                        partner_role="Primary",
                    )
                ]


# ============================================================================
# Builders
# ============================================================================


def make_server(name: str, resource_group: str = "rg-qa2", location: str = "eastus") -> ReplicaServer:
    return ReplicaServer(
        name=name,
        resource_group=resource_group,
        subscription_id=SUBSCRIPTION_ID,
        location=location,
    )


def make_database(name: str, server: ReplicaServer, **overrides: Any) -> ReplicaDatabase:
    values: Dict[str, Any] = {
        "sku_name": "GP_Gen5",
        "sku_tier": "GeneralPurpose",
        "sku_capacity": 2,
        "sku_family": "Gen5",
        "max_size_bytes": 34359738368,
        "zone_redundant": False,
        "read_scale": "Disabled",
        "tags": {"ClientName": "acme", "Environment": "qa2"},
    }
    values.update(overrides)
    return ReplicaDatabase(name=name, server=server, **values)


def make_geo_link(
    secondary: ReplicaServer, database: str, primary: ReplicaServer, **overrides: Any
) -> ReplicationLinkDescriptor:
    values: Dict[str, Any] = {
        "link_id": f"{secondary.database_id(database)}/replicationLinks/{primary.name}",
        "partner_server": primary.name,
        "partner_database": database,
        "partner_resource_group": primary.resource_group,
        "link_type": LinkType.GEO,
        "replication_mode": "ASYNC",
        "replication_state": "CATCH_UP",
        "role": "Secondary",
        "partner_role": "Primary",
        "partner_location": primary.location,
    }
    values.update(overrides)
    return ReplicationLinkDescriptor(**values)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def primary_server() -> ReplicaServer:
    return make_server("srv-primary-eastus", resource_group="rg-qa2")


@pytest.fixture
def secondary_server() -> ReplicaServer:
    return make_server(
        "srv-primary-eastus-replica", resource_group="rg-qa2-replica", location="westus"
    )


@pytest.fixture
def replica_config(tmp_path) -> ReplicaConfig:
    return ReplicaConfig(
        production_namespace="manufacturo",
        ownership_tag="ClientName",
        environment_tag="Environment",
        server_type_tag="Type",
        server_type_value="Replica",
        secondary_server_token="-replica",
        settling_seconds=0,
        deployment_poll_interval=5,
        deployment_max_polls=3,
        max_parallel_recreations=1,
        template_dir=str(tmp_path),
    )


@pytest.fixture
def refresh_config(replica_config) -> DataRefreshConfig:
    return DataRefreshConfig(
        azure=AzureConfig(subscription_ids=[SUBSCRIPTION_ID], tenant_id=None),
        replicas=replica_config,
        logging=LoggingConfig(level="INFO", file_output=None, audit_file=None),
    )


@pytest.fixture
def audit() -> MagicMock:
    return MagicMock()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def scenario_plane(fake_plane, primary_server, secondary_server) -> FakeControlPlane:
    """One secondary database with a geo link to its primary, tagged for acme."""
    name = "db-gateway-acme-qa2-eastus"
    fake_plane.add_server(primary_server)
    fake_plane.add_server(secondary_server, environment="qa2")
    fake_plane.add_database(make_database(name, primary_server))
    fake_plane.add_database(make_database(name, secondary_server))
    fake_plane.add_link(
        secondary_server, name, make_geo_link(secondary_server, name, primary_server)
    )
    return fake_plane
