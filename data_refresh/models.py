"""
Data models for the secondary replica lifecycle.

Strongly-typed dataclasses describing discovered servers and databases,
replication links, configuration snapshots and per-database outcomes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

SYSTEM_DATABASES = frozenset({"master"})


# =============================================================================
# CONTROL-PLANE RESOURCES
# =============================================================================


@dataclass(frozen=True)
class ReplicaServer:
    """SQL server hosting secondary databases. Never created or deleted here."""

    name: str
    resource_group: str
    subscription_id: str
    location: str
    tags: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Server name cannot be empty")

    @property
    def resource_id(self) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.Sql/servers/{self.name}"
        )

    def database_id(self, database_name: str) -> str:
        return f"{self.resource_id}/databases/{database_name}"


@dataclass
class ReplicaDatabase:
    """A database hosted on a ReplicaServer."""

    name: str
    server: ReplicaServer
    sku_name: Optional[str] = None
    sku_tier: Optional[str] = None
    sku_capacity: Optional[int] = None
    sku_family: Optional[str] = None
    max_size_bytes: Optional[int] = None
    zone_redundant: Optional[bool] = None
    read_scale: Optional[str] = None
    elastic_pool_id: Optional[str] = None
    status: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> str:
        return self.server.database_id(self.name)

    @property
    def is_system(self) -> bool:
        return self.name.lower() in SYSTEM_DATABASES

    @property
    def sku_label(self) -> str:
        """SKU in the form shown by the portal, e.g. ``GP_Gen5_2 (GeneralPurpose)``."""
        if self.elastic_pool_id:
            return f"ElasticPool({self.elastic_pool_id.rsplit('/', 1)[-1]})"
        if not self.sku_name:
            return "unknown"
        if self.sku_tier:
            return f"{self.sku_name} ({self.sku_tier})"
        return self.sku_name


class LinkType(str, Enum):
    GEO = "GEO"
    NAMED = "NAMED"
    STANDBY = "STANDBY"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LinkType":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ReplicationLinkDescriptor:
    """One replication link as seen from the secondary database."""

    link_id: str
    partner_server: str
    partner_database: str
    partner_resource_group: Optional[str]
    link_type: LinkType
    replication_mode: Optional[str] = None
    replication_state: Optional[str] = None
    role: Optional[str] = None
    partner_role: Optional[str] = None
    partner_location: Optional[str] = None

    @property
    def is_geo(self) -> bool:
        return self.link_type is LinkType.GEO


# =============================================================================
# SNAPSHOT
# =============================================================================


@dataclass(frozen=True)
class ReplicaConfiguration:
    """Everything needed to recreate a secondary database after deletion.

    Lives only for the duration of one orchestration run.
    """

    database_name: str
    server: ReplicaServer
    tags: Dict[str, str]
    sku_name: Optional[str]
    sku_tier: Optional[str]
    sku_capacity: Optional[int]
    sku_family: Optional[str]
    max_size_bytes: Optional[int]
    zone_redundant: Optional[bool]
    read_scale: Optional[str]
    elastic_pool_id: Optional[str]
    links: List[ReplicationLinkDescriptor] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def resource_group(self) -> str:
        return self.server.resource_group

    @property
    def subscription_id(self) -> str:
        return self.server.subscription_id

    @property
    def geo_links(self) -> List[ReplicationLinkDescriptor]:
        return [link for link in self.links if link.is_geo]

    @property
    def sku_label(self) -> str:
        return ReplicaDatabase(
            name=self.database_name,
            server=self.server,
            sku_name=self.sku_name,
            sku_tier=self.sku_tier,
            elastic_pool_id=self.elastic_pool_id,
        ).sku_label


# =============================================================================
# REQUEST AND OUTCOMES
# =============================================================================


@dataclass(frozen=True)
class RefreshRequest:
    """Input parameters for one replica refresh invocation."""

    destination_environment: str
    destination_namespace: str
    source_environment: str
    source_namespace: str
    source_product: Optional[str] = None
    source_type: Optional[str] = None
    source_location: Optional[str] = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.destination_environment:
            raise ValueError("Destination environment is required")
        if not self.destination_namespace:
            raise ValueError("Destination namespace is required")
        if not self.source_environment:
            raise ValueError("Source environment is required")


class Phase(str, Enum):
    DISCOVERED = "discovered"
    SNAPSHOTTED = "snapshotted"
    LINK_SEVERED = "link-severed"
    DELETED = "deleted"
    DELETE_FAILED = "delete-failed"
    CREATED = "created"
    RECREATION_FAILED = "recreation-failed"
    VERIFIED = "verified"


class VerificationStatus(str, Enum):
    ESTABLISHED = "established"
    PENDING = "pending"
    SKIPPED = "skipped"


@dataclass
class DatabaseOutcome:
    """Per-database record carried from discovery to the final report."""

    database_name: str
    server_name: str
    sku_label: str
    tags: Dict[str, str]
    phase: Phase = Phase.DISCOVERED
    primary_server: Optional[str] = None
    deployment_name: Optional[str] = None
    verification: VerificationStatus = VerificationStatus.SKIPPED
    warnings: List[str] = field(default_factory=list)
    unhandled_links: List[str] = field(default_factory=list)
    error: Optional[str] = None
    manual_follow_up: bool = False

    def require_follow_up(self, error: str) -> None:
        self.error = error
        self.manual_follow_up = True


@dataclass
class RefreshResult:
    """Outcome of one replica refresh run."""

    request: RefreshRequest
    servers: List[ReplicaServer] = field(default_factory=list)
    outcomes: List[DatabaseOutcome] = field(default_factory=list)
    skipped_databases: List[str] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        return self.request.dry_run

    @property
    def follow_ups(self) -> List[DatabaseOutcome]:
        return [outcome for outcome in self.outcomes if outcome.manual_follow_up]

    @property
    def succeeded(self) -> bool:
        return not self.follow_ups
