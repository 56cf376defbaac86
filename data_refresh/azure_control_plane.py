"""Azure implementation of the replica lifecycle control plane.

Reads and deletions go through the Azure management SDKs. Deployments are
submitted with ``az deployment group create --template-file`` so the
template stays a real, disposable file on disk, and their state is then
read back through the resource management SDK.

Every call runs under an explicit timeout. Transient transport failures and
throttling are retried a bounded number of times; authoritative answers
such as "not found" or "conflict" are never retried.
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import (
    AzureCliCredential,
    CredentialUnavailableError,
    DefaultAzureCredential,
)
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resourcegraph import ResourceGraphClient
from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions
from azure.mgmt.sql import SqlManagementClient

from data_refresh.config_manager import DataRefreshConfig
from data_refresh.control_plane import ControlPlane
from data_refresh.exceptions import (
    AzureAuthenticationError,
    ControlPlaneError,
    ControlPlaneTimeoutError,
    DeploymentError,
)
from data_refresh.models import (
    LinkType,
    ReplicaDatabase,
    ReplicaServer,
    ReplicationLinkDescriptor,
)
from data_refresh.timeout_config import Timeouts, log_timeout_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANAGEMENT_SCOPE = "https://management.azure.com/.default"
SQL_API_VERSION = "2021-11-01"
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def _kql_literal(value: str) -> str:
    """Quote a value for use inside a Resource Graph (KQL) string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (ResourceNotFoundError, ResourceExistsError)):
        return False
    if isinstance(exc, (ServiceRequestError, ServiceResponseError)):
        return True
    if isinstance(exc, HttpResponseError):
        return exc.status_code in TRANSIENT_STATUS_CODES
    return False


def parse_resource_id(resource_id: Optional[str]) -> Dict[str, str]:
    """
    Parse an Azure resource ID into subscription_id, resource_group and name.

    Args:
        resource_id: Azure resource ID in format:
            /subscriptions/{subscription_id}/resourceGroups/{resource_group}/providers/...

    Returns:
        Dict containing parsed components if found, empty dict otherwise
    """
    if not resource_id:
        return {}

    segments = resource_id.strip("/").split("/")
    lowered = [segment.lower() for segment in segments]
    result: Dict[str, str] = {}

    for key, marker in (
        ("subscription_id", "subscriptions"),
        ("resource_group", "resourcegroups"),
        ("server", "servers"),
        ("database", "databases"),
    ):
        try:
            index = lowered.index(marker)
        except ValueError:
            continue
        if index + 1 < len(segments):
            result[key] = segments[index + 1]
    return result


class AzureControlPlane(ControlPlane):
    """
    Control plane backed by Azure Resource Graph, Azure SQL management,
    Azure Resource Manager and the az CLI.

    Clients are created lazily per subscription and dropped when the
    session is refreshed.
    """

    def __init__(
        self,
        config: DataRefreshConfig,
        credential: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
        az_executable: str = "az",
    ) -> None:
        """
        Initialize the Azure control plane.

        Args:
            config: Configuration object with subscriptions and tag names
            credential: Optional Azure credential (for dependency injection/testing)
            sleep: Sleep function used between retries
            az_executable: az CLI executable used for deployment submission
        """
        self.config = config
        self.credential = credential or DefaultAzureCredential()
        self._sleep = sleep
        self._az = az_executable
        self._graph_client: Optional[ResourceGraphClient] = None
        self._sql_clients: Dict[str, SqlManagementClient] = {}
        self._resource_clients: Dict[str, ResourceManagementClient] = {}
        self._server_cache: Dict[str, Optional[ReplicaServer]] = {}

    # ------------------------------------------------------------------
    # Client management
    # ------------------------------------------------------------------

    def _get_graph_client(self) -> ResourceGraphClient:
        if self._graph_client is None:
            self._graph_client = ResourceGraphClient(
                self.credential,
                connection_timeout=Timeouts.QUICK,
                read_timeout=Timeouts.RESOURCE_GRAPH_QUERY,
            )
        return self._graph_client

    def _get_sql_client(self, subscription_id: str) -> SqlManagementClient:
        if subscription_id not in self._sql_clients:
            self._sql_clients[subscription_id] = SqlManagementClient(
                self.credential,
                subscription_id,
                connection_timeout=Timeouts.QUICK,
                read_timeout=Timeouts.STANDARD,
            )
        return self._sql_clients[subscription_id]

    def _get_resource_client(self, subscription_id: str) -> ResourceManagementClient:
        if subscription_id not in self._resource_clients:
            self._resource_clients[subscription_id] = ResourceManagementClient(
                self.credential,
                subscription_id,
                connection_timeout=Timeouts.QUICK,
                read_timeout=Timeouts.STANDARD,
            )
        return self._resource_clients[subscription_id]

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        """
        Run ``func`` with bounded exponential backoff on transient failures.

        ``ResourceNotFoundError`` is re-raised untouched so callers can treat
        it as an answer. Every other Azure failure becomes a ControlPlaneError.
        """
        attempts = max(1, Timeouts.RETRY_ATTEMPTS)
        delay = float(Timeouts.RETRY_DELAY)
        attempt = 1
        while True:
            try:
                return func()
            except ResourceNotFoundError:
                raise
            except ClientAuthenticationError as exc:
                raise AzureAuthenticationError(
                    f"{operation} failed authentication: {exc}",
                    tenant_id=self.config.azure.tenant_id,
                    cause=exc,
                ) from exc
            except AzureError as exc:
                if _is_transient(exc) and attempt < attempts:
                    logger.warning(
                        f"⚠️  {operation}: transient failure on attempt {attempt}/{attempts}: {exc}"
                    )
                    self._sleep(delay)
                    delay *= 2
                    attempt += 1
                    continue
                raise ControlPlaneError(
                    f"{operation} failed: {exc}",
                    error_code=f"AZURE_{operation.upper()}_FAILED",
                    cause=exc,
                ) from exc

    def _wait_for_poller(self, operation: str, poller: Any, timeout: int) -> None:
        try:
            poller.result(timeout=timeout)
        except ResourceNotFoundError:
            raise
        except AzureError as exc:
            raise ControlPlaneError(
                f"{operation} failed: {exc}",
                error_code=f"AZURE_{operation.upper()}_FAILED",
                cause=exc,
            ) from exc
        if not poller.done():
            log_timeout_event(operation, timeout)
            raise ControlPlaneTimeoutError(
                f"{operation} did not complete within {timeout} seconds",
                operation=operation,
                timeout_value=timeout,
            )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _query_graph(self, query: str) -> List[Dict[str, Any]]:
        subscriptions = self.config.azure.subscription_ids
        rows: List[Dict[str, Any]] = []
        skip_token: Optional[str] = None
        while True:
            request = QueryRequest(
                subscriptions=subscriptions,
                query=query,
                options=QueryRequestOptions(
                    result_format="objectArray", skip_token=skip_token
                ),
            )
            response = self._call(
                "resource_graph_query",
                lambda: self._get_graph_client().resources(request),
            )
            rows.extend(response.data or [])
            skip_token = getattr(response, "skip_token", None)
            if not skip_token:
                return rows

    @staticmethod
    def _server_from_row(row: Dict[str, Any]) -> ReplicaServer:
        return ReplicaServer(
            name=row["name"],
            resource_group=row["resourceGroup"],
            subscription_id=row["subscriptionId"],
            location=row.get("location") or "",
            tags=dict(row.get("tags") or {}),
        )

    def list_servers(self, environment: str) -> List[ReplicaServer]:
        replicas = self.config.replicas
        query = (
            "Resources"
            " | where type =~ 'microsoft.sql/servers'"
            f" | where tostring(tags[{_kql_literal(replicas.environment_tag)}]) =~ {_kql_literal(environment)}"
            f" | where tostring(tags[{_kql_literal(replicas.server_type_tag)}]) =~ {_kql_literal(replicas.server_type_value)}"
            " | project name, resourceGroup, subscriptionId, location, tags"
        )
        rows = self._query_graph(query)
        servers = [self._server_from_row(row) for row in rows]
        for server in servers:
            self._server_cache[server.name.lower()] = server
        return servers

    def find_server(self, name: str, subscription_id: str) -> Optional[ReplicaServer]:
        key = name.lower()
        if key in self._server_cache:
            return self._server_cache[key]
        query = (
            "Resources"
            " | where type =~ 'microsoft.sql/servers'"
            f" | where name =~ {_kql_literal(name)}"
            " | project name, resourceGroup, subscriptionId, location, tags"
        )
        rows = self._query_graph(query)
        # Prefer a match in the caller's subscription
        rows.sort(key=lambda row: row.get("subscriptionId") != subscription_id)
        server = self._server_from_row(rows[0]) if rows else None
        self._server_cache[key] = server
        return server

    def _database_from_model(self, server: ReplicaServer, db: Any) -> ReplicaDatabase:
        sku = getattr(db, "sku", None)
        return ReplicaDatabase(
            name=db.name,
            server=server,
            sku_name=getattr(sku, "name", None),
            sku_tier=getattr(sku, "tier", None),
            sku_capacity=getattr(sku, "capacity", None),
            sku_family=getattr(sku, "family", None),
            max_size_bytes=getattr(db, "max_size_bytes", None),
            zone_redundant=getattr(db, "zone_redundant", None),
            read_scale=getattr(db, "read_scale", None),
            elastic_pool_id=getattr(db, "elastic_pool_id", None),
            status=getattr(db, "status", None),
            tags=dict(getattr(db, "tags", None) or {}),
        )

    def list_databases(self, server: ReplicaServer) -> List[ReplicaDatabase]:
        client = self._get_sql_client(server.subscription_id)
        models = self._call(
            "list_databases",
            lambda: list(
                client.databases.list_by_server(server.resource_group, server.name)
            ),
        )
        databases = [self._database_from_model(server, db) for db in models]
        return [db for db in databases if not db.is_system]

    def get_database(self, server: ReplicaServer, name: str) -> Optional[ReplicaDatabase]:
        client = self._get_sql_client(server.subscription_id)
        try:
            model = self._call(
                "get_database",
                lambda: client.databases.get(
                    server.resource_group, server.name, name, timeout=Timeouts.GET_DATABASE
                ),
            )
        except ResourceNotFoundError:
            return None
        return self._database_from_model(server, model)

    # ------------------------------------------------------------------
    # Replication links
    # ------------------------------------------------------------------

    def list_replication_links(
        self, server: ReplicaServer, database: str
    ) -> List[ReplicationLinkDescriptor]:
        client = self._get_sql_client(server.subscription_id)
        try:
            links = self._call(
                "list_replication_links",
                lambda: list(
                    client.replication_links.list_by_database(
                        server.resource_group,
                        server.name,
                        database,
                        timeout=Timeouts.LIST_LINKS,
                    )
                ),
            )
        except ResourceNotFoundError:
            return []
        descriptors: List[ReplicationLinkDescriptor] = []
        for link in links:
            partner_server = getattr(link, "partner_server", None) or ""
            partner_rg = parse_resource_id(
                getattr(link, "partner_database_id", None)
            ).get("resource_group")
            if not partner_rg and partner_server:
                partner = self.find_server(partner_server, server.subscription_id)
                partner_rg = partner.resource_group if partner else None
            descriptors.append(
                ReplicationLinkDescriptor(
                    link_id=link.id,
                    partner_server=partner_server,
                    partner_database=getattr(link, "partner_database", None) or database,
                    partner_resource_group=partner_rg,
                    link_type=LinkType.parse(getattr(link, "link_type", None)),
                    replication_mode=getattr(link, "replication_mode", None),
                    replication_state=getattr(link, "replication_state", None),
                    role=getattr(link, "role", None),
                    partner_role=getattr(link, "partner_role", None),
                    partner_location=getattr(link, "partner_location", None),
                )
            )
        return descriptors

    def delete_replication_link(
        self, server: ReplicaServer, database: str, link: ReplicationLinkDescriptor
    ) -> None:
        client = self._get_resource_client(server.subscription_id)
        try:
            poller = self._call(
                "delete_replication_link",
                lambda: client.resources.begin_delete_by_id(
                    link.link_id, api_version=SQL_API_VERSION
                ),
            )
            self._wait_for_poller("delete_replication_link", poller, Timeouts.DELETE_LINK)
        except ResourceNotFoundError:
            logger.info(f"✅ Link {link.link_id} no longer exists, nothing to terminate")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def delete_database(self, server: ReplicaServer, database: str) -> None:
        client = self._get_sql_client(server.subscription_id)
        try:
            poller = self._call(
                "delete_database",
                lambda: client.databases.begin_delete(
                    server.resource_group, server.name, database
                ),
            )
            self._wait_for_poller("delete_database", poller, Timeouts.DELETE_DATABASE)
        except ResourceNotFoundError:
            logger.info(
                f"✅ Database {database} does not exist on {server.name}, skipping delete"
            )

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def submit_deployment(
        self, server: ReplicaServer, deployment_name: str, template_path: Path
    ) -> None:
        cmd = [
            self._az,
            "deployment",
            "group",
            "create",
            "--resource-group",
            server.resource_group,
            "--subscription",
            server.subscription_id,
            "--name",
            deployment_name,
            "--template-file",
            str(template_path),
            "--no-wait",
            "--only-show-errors",
        ]
        logger.debug(f"Running command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=Timeouts.DEPLOY_SUBMIT,
            )
        except subprocess.TimeoutExpired as e:
            log_timeout_event("deployment_submit", Timeouts.DEPLOY_SUBMIT, cmd)
            raise ControlPlaneTimeoutError(
                f"Deployment submission timed out after {Timeouts.DEPLOY_SUBMIT} seconds",
                operation="deployment_submit",
                timeout_value=Timeouts.DEPLOY_SUBMIT,
            ) from e
        except FileNotFoundError as e:
            raise ControlPlaneError(
                f"az CLI executable '{self._az}' not found",
                error_code="AZ_CLI_MISSING",
                recovery_suggestion="Install the Azure CLI and run 'az login'",
            ) from e

        if result.returncode != 0:
            raise DeploymentError(
                f"Deployment submission failed: {result.stderr.strip()}",
                deployment_name=deployment_name,
            )

    def get_deployment_status(self, server: ReplicaServer, deployment_name: str) -> str:
        client = self._get_resource_client(server.subscription_id)
        try:
            deployment = self._call(
                "get_deployment_status",
                lambda: client.deployments.get(
                    server.resource_group, deployment_name, timeout=Timeouts.DEPLOYMENT_STATUS
                ),
            )
        except ResourceNotFoundError:
            # Submitted with --no-wait; ARM may not have registered it yet
            return "NotFound"
        properties = getattr(deployment, "properties", None)
        return getattr(properties, "provisioning_state", None) or "Unknown"

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def refresh_session(self) -> None:
        """Switch to AzureCliCredential and drop every cached client."""
        logger.info("🔄 Re-establishing control-plane session with AzureCliCredential...")
        try:
            cli_credential = AzureCliCredential(process_timeout=Timeouts.SESSION_REFRESH)
            cli_credential.get_token(MANAGEMENT_SCOPE)
        except (CredentialUnavailableError, ClientAuthenticationError) as exc:
            raise AzureAuthenticationError(
                "Azure CLI credential unavailable. Please ensure you are logged in with 'az login'.",
                tenant_id=self.config.azure.tenant_id,
                cause=exc,
            ) from exc
        self.credential = cli_credential
        self._graph_client = None
        self._sql_clients.clear()
        self._resource_clients.clear()
        self._server_cache.clear()
        logger.info("✅ Successfully re-authenticated with AzureCliCredential")
