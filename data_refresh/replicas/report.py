"""Final replica refresh report.

Operators use this table as the audit record of a run, so it lists every
processed database with the SKU and tags that were preserved.
"""

from typing import Dict, Optional

from rich.console import Console
from rich.table import Table

from data_refresh.models import DatabaseOutcome, Phase, RefreshResult

_PHASE_STYLES = {
    Phase.VERIFIED: "green",
    Phase.CREATED: "yellow",
    Phase.DELETE_FAILED: "red",
    Phase.RECREATION_FAILED: "red",
}


def format_tags(tags: Dict[str, str]) -> str:
    if not tags:
        return "-"
    return ", ".join(f"{key}={value}" for key, value in sorted(tags.items()))


def _outcome_label(outcome: DatabaseOutcome, dry_run: bool) -> str:
    if dry_run:
        return "would refresh"
    label = outcome.phase.value
    if outcome.manual_follow_up:
        label += " (manual follow-up)"
    return label


def build_report_table(result: RefreshResult) -> Table:
    title = "Replica refresh report"
    if result.dry_run:
        title += " (DRY RUN)"
    table = Table(title=title, show_lines=False)
    table.add_column("Database", style="cyan", no_wrap=True)
    table.add_column("Server")
    table.add_column("SKU")
    table.add_column("Tags")
    table.add_column("Outcome")
    table.add_column("Replication")

    for outcome in result.outcomes:
        style = _PHASE_STYLES.get(outcome.phase, "")
        table.add_row(
            outcome.database_name,
            outcome.server_name,
            outcome.sku_label,
            format_tags(outcome.tags),
            f"[{style}]{_outcome_label(outcome, result.dry_run)}[/{style}]"
            if style
            else _outcome_label(outcome, result.dry_run),
            outcome.verification.value,
        )
    return table


def render_report(result: RefreshResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    request = result.request

    console.print()
    console.print(
        f"[bold]Destination:[/bold] {request.destination_environment} "
        f"([bold]namespace[/bold] {request.destination_namespace})  "
        f"[bold]Source:[/bold] {request.source_environment} "
        f"([bold]namespace[/bold] {request.source_namespace})"
    )
    console.print(
        f"Servers: {', '.join(server.name for server in result.servers) or 'none'}"
    )

    if not result.outcomes:
        console.print("[yellow]No replica databases were processed.[/yellow]")
    else:
        console.print(build_report_table(result))

    if result.skipped_databases:
        console.print(f"Skipped (no name match): {', '.join(result.skipped_databases)}")

    for outcome in result.outcomes:
        for warning in outcome.warnings:
            console.print(f"[yellow]⚠️  {outcome.database_name}: {warning}[/yellow]")
        if outcome.unhandled_links:
            console.print(
                f"[yellow]⚠️  {outcome.database_name}: links not handled: "
                f"{', '.join(outcome.unhandled_links)}[/yellow]"
            )

    follow_ups = result.follow_ups
    if follow_ups:
        console.print(f"[bold red]❗ {len(follow_ups)} database(s) need manual follow-up:[/bold red]")
        for outcome in follow_ups:
            console.print(
                f"[red]   - {outcome.server_name}/{outcome.database_name}: {outcome.error}[/red]"
            )
    elif result.outcomes and not result.dry_run:
        console.print("[green]✅ All replica databases were recreated.[/green]")
