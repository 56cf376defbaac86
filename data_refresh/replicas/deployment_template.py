"""ARM deployment template for recreating a secondary database.

The only supported intent is "create as a geo secondary of an existing
source database". A blank database at the same name is not a replica, so
the builder has no way to produce one.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from data_refresh.models import ReplicaConfiguration

ARM_SCHEMA = "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#"
SQL_DATABASE_TYPE = "Microsoft.Sql/servers/databases"
SQL_DATABASE_API_VERSION = "2021-11-01"
CREATE_MODE_SECONDARY = "Secondary"
SECONDARY_TYPE_GEO = "Geo"


@dataclass(frozen=True)
class SecondaryDatabaseResource:
    """One ``Microsoft.Sql/servers/databases`` resource created as a secondary."""

    server_name: str
    database_name: str
    location: str
    source_database_id: str
    tags: Dict[str, str] = field(default_factory=dict)
    sku: Optional[Dict[str, Any]] = None
    max_size_bytes: Optional[int] = None
    zone_redundant: Optional[bool] = None
    read_scale: Optional[str] = None
    elastic_pool_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.source_database_id:
            raise ValueError("A secondary database requires a source database id")

    def to_dict(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "createMode": CREATE_MODE_SECONDARY,
            "secondaryType": SECONDARY_TYPE_GEO,
            "sourceDatabaseId": self.source_database_id,
        }
        if self.max_size_bytes is not None:
            properties["maxSizeBytes"] = self.max_size_bytes
        if self.zone_redundant is not None:
            properties["zoneRedundant"] = self.zone_redundant
        if self.read_scale:
            properties["readScale"] = self.read_scale
        if self.elastic_pool_id:
            properties["elasticPoolId"] = self.elastic_pool_id

        resource: Dict[str, Any] = {
            "type": SQL_DATABASE_TYPE,
            "apiVersion": SQL_DATABASE_API_VERSION,
            "name": f"{self.server_name}/{self.database_name}",
            "location": self.location,
            "tags": dict(self.tags),
            "properties": properties,
        }
        # Pooled databases take their compute from the pool
        if self.sku and not self.elastic_pool_id:
            resource["sku"] = dict(self.sku)
        return resource


@dataclass(frozen=True)
class DeploymentTemplate:
    resource: SecondaryDatabaseResource

    @classmethod
    def secondary_from_primary(
        cls, snapshot: ReplicaConfiguration, primary_database_id: str
    ) -> "DeploymentTemplate":
        """Build a template that recreates ``snapshot`` as a secondary of the primary."""
        sku: Optional[Dict[str, Any]] = None
        if snapshot.sku_name:
            sku = {"name": snapshot.sku_name}
            if snapshot.sku_tier:
                sku["tier"] = snapshot.sku_tier
            if snapshot.sku_capacity is not None:
                sku["capacity"] = snapshot.sku_capacity
            if snapshot.sku_family:
                sku["family"] = snapshot.sku_family
        return cls(
            resource=SecondaryDatabaseResource(
                server_name=snapshot.server.name,
                database_name=snapshot.database_name,
                location=snapshot.server.location,
                source_database_id=primary_database_id,
                tags=dict(snapshot.tags),
                sku=sku,
                max_size_bytes=snapshot.max_size_bytes,
                zone_redundant=snapshot.zone_redundant,
                read_scale=snapshot.read_scale,
                elastic_pool_id=snapshot.elastic_pool_id,
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$schema": ARM_SCHEMA,
            "contentVersion": "1.0.0.0",
            "resources": [self.resource.to_dict()],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


@contextmanager
def materialized(template: DeploymentTemplate, directory: str) -> Iterator[Path]:
    """Write ``template`` to a temporary file that is removed on exit, whatever happens."""
    fd, name = tempfile.mkstemp(prefix="replica-", suffix=".json", dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(template.to_json())
        yield path
    finally:
        path.unlink(missing_ok=True)
