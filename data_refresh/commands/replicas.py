"""Replica refresh command.

Deletes and recreates the secondary (read replica) databases of a
destination environment after its primaries have been refreshed.

Safety Features:
- The production namespace can never be a destination
- Ownership tags must match the destination namespace before anything is touched
- Dry-run mode performs discovery and matching only
"""

import logging
import sys
from typing import Optional, Tuple

import click
from rich.console import Console

from data_refresh.azure_control_plane import AzureControlPlane
from data_refresh.config_manager import create_config_from_env, setup_logging
from data_refresh.exceptions import DataRefreshError
from data_refresh.logging_config import configure_audit_logging
from data_refresh.models import RefreshRequest
from data_refresh.replicas.manager import ReplicaLifecycleManager
from data_refresh.replicas.report import render_report

logger = logging.getLogger(__name__)


@click.command("refresh-replicas")
@click.option("--destination", required=True, help="Destination environment (e.g. qa2)")
@click.option(
    "--destination-namespace",
    required=True,
    help="Destination namespace; must match the ClientName tag of every replica touched",
)
@click.option("--source", help="Source environment (defaults to --destination)")
@click.option(
    "--source-namespace",
    help="Source namespace (defaults to the production namespace)",
)
@click.option("--source-product", help="Product prefix in database names (e.g. db)")
@click.option("--source-type", help="Database type segment in database names (e.g. gateway)")
@click.option("--source-location", help="Location suffix in database names (e.g. eastus)")
@click.option(
    "--subscription-id",
    "subscription_ids",
    multiple=True,
    help="Subscription to search (repeatable; defaults to AZURE_SUBSCRIPTION_ID)",
)
@click.option(
    "--settling-seconds",
    type=float,
    help="Delay before checking replication after each recreation",
)
@click.option(
    "--parallel-recreations",
    type=click.IntRange(min=1),
    help="Number of databases recreated at the same time (default: 1)",
)
@click.option(
    "--require-replicas",
    is_flag=True,
    help="Fail when no secondary servers are found for the destination",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Discover and match only; never sever links or delete databases",
)
@click.pass_context
def refresh_replicas(
    ctx: click.Context,
    destination: str,
    destination_namespace: str,
    source: Optional[str],
    source_namespace: Optional[str],
    source_product: Optional[str],
    source_type: Optional[str],
    source_location: Optional[str],
    subscription_ids: Tuple[str, ...],
    settling_seconds: Optional[float],
    parallel_recreations: Optional[int],
    require_replicas: bool,
    dry_run: bool,
) -> None:
    """
    Delete and recreate the secondary databases of a destination environment (DESTRUCTIVE).

    Example:
        data-refresh refresh-replicas --destination qa2 --destination-namespace acme \\
            --source-location eastus --dry-run
    """
    obj = ctx.obj or {}
    try:
        config = create_config_from_env(
            subscription_ids=list(subscription_ids),
            settling_seconds=settling_seconds,
            max_parallel_recreations=parallel_recreations,
            log_level=obj.get("log_level"),
        )
    except ValueError as e:
        click.echo(f"❌ Invalid configuration: {e}", err=True)
        sys.exit(1)

    setup_logging(config.logging)
    configure_audit_logging(config.logging.audit_file)
    if obj.get("debug"):
        config.log_configuration_summary()

    try:
        request = RefreshRequest(
            destination_environment=destination,
            destination_namespace=destination_namespace,
            source_environment=source or destination,
            source_namespace=source_namespace or config.replicas.production_namespace,
            source_product=source_product,
            source_type=source_type,
            source_location=source_location,
            dry_run=dry_run,
        )
    except ValueError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    console = Console()
    try:
        manager = ReplicaLifecycleManager(AzureControlPlane(config), config)
        result = manager.run(request)
    except DataRefreshError as e:
        logger.error(f"❌ Replica refresh aborted: {e}")
        click.echo(f"❌ Replica refresh aborted: {e}", err=True)
        sys.exit(1)

    render_report(result, console)

    if not result.servers and require_replicas:
        click.echo(
            f"❌ No secondary servers found for environment '{destination}'", err=True
        )
        sys.exit(1)
    if not result.succeeded:
        click.echo(
            f"❌ {len(result.follow_ups)} replica database(s) need manual follow-up", err=True
        )
        sys.exit(1)
    if dry_run:
        click.echo("\n✅ Dry-run complete. No links were severed and no databases deleted.")
