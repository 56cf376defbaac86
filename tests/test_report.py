"""Tests for the final report."""

from rich.console import Console

from data_refresh.models import DatabaseOutcome, Phase, RefreshRequest, RefreshResult
from data_refresh.replicas.report import build_report_table, format_tags, render_report


def make_result(dry_run=False, outcomes=None):
    request = RefreshRequest(
        destination_environment="qa2",
        destination_namespace="acme",
        source_environment="qa2",
        source_namespace="manufacturo",
        dry_run=dry_run,
    )
    return RefreshResult(request=request, outcomes=outcomes or [])


def make_outcome(name="db-acme-qa2", phase=Phase.VERIFIED):
    return DatabaseOutcome(
        database_name=name,
        server_name="sql-acme-qa2-replica",
        sku_label="GP_Gen5 (GeneralPurpose)",
        tags={"Environment": "qa2", "ClientName": "acme"},
        phase=phase,
    )


def render(result):
    console = Console(record=True, width=200)
    render_report(result, console)
    return console.export_text()


class TestFormatTags:
    def test_sorted_pairs(self):
        assert format_tags({"b": "2", "a": "1"}) == "a=1, b=2"

    def test_empty(self):
        assert format_tags({}) == "-"


class TestRenderReport:
    def test_lists_database_sku_and_tags(self):
        output = render(make_result(outcomes=[make_outcome()]))

        assert "db-acme-qa2" in output
        assert "GP_Gen5 (GeneralPurpose)" in output
        assert "ClientName=acme, Environment=qa2" in output
        assert "All replica databases were recreated" in output

    def test_dry_run_title_and_rows(self):
        result = make_result(dry_run=True, outcomes=[make_outcome(phase=Phase.DISCOVERED)])

        assert build_report_table(result).title == "Replica refresh report (DRY RUN)"
        output = render(result)
        assert "would refresh" in output
        assert "All replica databases were recreated" not in output

    def test_follow_ups_are_listed(self):
        outcome = make_outcome(phase=Phase.DELETE_FAILED)
        outcome.require_follow_up("database is locked")

        output = render(make_result(outcomes=[outcome]))

        assert "1 database(s) need manual follow-up" in output
        assert "database is locked" in output

    def test_no_outcomes(self):
        output = render(make_result())

        assert "No replica databases were processed" in output
        assert "Servers: none" in output
