"""Name and ownership matching for secondary databases.

Two gates decide whether a database may be touched:

1. Its name must contain the composite token built from the source
   identity and the destination namespace. Names without it are skipped.
2. Its ownership tag must equal the destination namespace. A name match
   with a foreign owner aborts the run, because the name heuristic has then
   produced a false positive.

The production namespace can never be a destination.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from data_refresh.exceptions import OwnershipTagMismatchError, ProductionNamespaceError
from data_refresh.models import ReplicaDatabase

logger = logging.getLogger(__name__)


def ensure_not_production(destination_namespace: str, production_namespace: str) -> None:
    """Refuse to operate on the production namespace."""
    if destination_namespace.strip().lower() == production_namespace.strip().lower():
        raise ProductionNamespaceError(
            f"Destination namespace '{destination_namespace}' is the production namespace; "
            "refusing to modify replicas",
            namespace=destination_namespace,
        )


def build_match_token(
    destination_namespace: str,
    source_environment: str,
    source_product: Optional[str] = None,
    source_type: Optional[str] = None,
    source_location: Optional[str] = None,
) -> str:
    """Composite token ``[product-][type-]namespace-environment[-location]``."""
    parts = [source_product, source_type, destination_namespace, source_environment, source_location]
    return "-".join(part.strip() for part in parts if part and part.strip()).lower()


def matches(
    database_name: str,
    destination_namespace: str,
    source_product: Optional[str],
    source_type: Optional[str],
    source_environment: str,
    source_location: Optional[str],
    production_namespace: str,
) -> Optional[str]:
    """Return ``database_name`` when it carries the expected token, else ``None``.

    Raises:
        ProductionNamespaceError: If the destination is the production namespace
    """
    ensure_not_production(destination_namespace, production_namespace)
    token = build_match_token(
        destination_namespace, source_environment, source_product, source_type, source_location
    )
    if token and token in database_name.lower():
        return database_name
    return None


@dataclass(frozen=True)
class PatternMatcher:
    """Applies the name gate and the ownership gate to discovered databases."""

    destination_namespace: str
    source_environment: str
    production_namespace: str
    ownership_tag: str
    source_product: Optional[str] = None
    source_type: Optional[str] = None
    source_location: Optional[str] = None

    def __post_init__(self) -> None:
        ensure_not_production(self.destination_namespace, self.production_namespace)

    @property
    def token(self) -> str:
        return build_match_token(
            self.destination_namespace,
            self.source_environment,
            self.source_product,
            self.source_type,
            self.source_location,
        )

    def match_name(self, database_name: str) -> Optional[str]:
        return matches(
            database_name,
            self.destination_namespace,
            self.source_product,
            self.source_type,
            self.source_environment,
            self.source_location,
            self.production_namespace,
        )

    def check_ownership(self, database: ReplicaDatabase) -> None:
        """Raise unless the ownership tag equals the destination namespace exactly."""
        owner = database.tags.get(self.ownership_tag)
        if owner != self.destination_namespace:
            raise OwnershipTagMismatchError(
                f"Database '{database.name}' on {database.server.name} matched the name "
                f"pattern but its {self.ownership_tag} tag is '{owner}', expected "
                f"'{self.destination_namespace}'",
                database=database.name,
                expected=self.destination_namespace,
                actual=owner,
            )

    def select(
        self, databases: Iterable[ReplicaDatabase]
    ) -> Tuple[List[ReplicaDatabase], List[ReplicaDatabase]]:
        """
        Split candidates into (accepted, skipped).

        Every name match is ownership-checked before anything is returned, so
        a mismatch aborts before any database is mutated.

        Raises:
            OwnershipTagMismatchError: On the first name-matched database with a foreign owner
        """
        accepted: List[ReplicaDatabase] = []
        skipped: List[ReplicaDatabase] = []
        token = self.token
        logger.info(f"🔎 Matching databases against token '{token}'")
        for database in databases:
            if database.is_system or self.match_name(database.name) is None:
                logger.info(f"   ⏭️  Skipping {database.name} (no match for '{token}')")
                skipped.append(database)
                continue
            self.check_ownership(database)
            logger.info(
                f"   ✅ Matched {database.name} on {database.server.name} "
                f"({self.ownership_tag}={self.destination_namespace})"
            )
            accepted.append(database)
        return accepted, skipped
