"""Tests for the data-refresh command line."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from data_refresh.cli import cli
from data_refresh.exceptions import ControlPlaneError

from .conftest import SUBSCRIPTION_ID

BASE_ARGS = [
    "refresh-replicas",
    "--destination",
    "qa2",
    "--destination-namespace",
    "acme",
    "--source-product",
    "db",
    "--source-type",
    "gateway",
    "--source-location",
    "eastus",
    "--subscription-id",
    SUBSCRIPTION_ID,
    "--settling-seconds",
    "0",
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    for name in ("AZURE_SUBSCRIPTION_ID", "AZURE_SUBSCRIPTION_IDS", "LOG_FILE", "REFRESH_AUDIT_LOG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REFRESH_TEMPLATE_DIR", str(tmp_path))
    monkeypatch.setenv("REFRESH_DEPLOYMENT_POLL_INTERVAL", "0")
    with patch("data_refresh.commands.replicas.setup_logging"), patch(
        "data_refresh.commands.replicas.configure_audit_logging"
    ), patch("data_refresh.replicas.manager.get_audit_logger", return_value=MagicMock()):
        yield


def invoke(plane, *extra):
    runner = CliRunner()
    with patch("data_refresh.commands.replicas.AzureControlPlane", return_value=plane) as factory:
        result = runner.invoke(cli, [*BASE_ARGS, *extra])
    return result, factory


class TestRefreshReplicasCommand:
    def test_successful_refresh_exits_zero(self, scenario_plane):
        result, factory = invoke(scenario_plane)

        assert result.exit_code == 0, result.output
        factory.assert_called_once()
        assert [call[0] for call in scenario_plane.mutations] == [
            "delete_replication_link",
            "delete_database",
            "submit_deployment",
        ]
        assert "Replica refresh report" in result.output

    def test_dry_run_makes_no_changes(self, scenario_plane):
        result, _ = invoke(scenario_plane, "--dry-run")

        assert result.exit_code == 0, result.output
        assert scenario_plane.mutations == []
        assert "Dry-run complete" in result.output

    def test_production_destination_is_refused(self, scenario_plane):
        runner = CliRunner()
        args = [*BASE_ARGS]
        args[args.index("acme")] = "manufacturo"
        with patch("data_refresh.commands.replicas.AzureControlPlane", return_value=scenario_plane):
            result = runner.invoke(cli, args)

        assert result.exit_code == 1
        assert "production namespace" in result.output
        assert scenario_plane.calls == []

    def test_follow_up_exits_non_zero(self, scenario_plane):
        scenario_plane.fail(
            "delete_database", "db-gateway-acme-qa2-eastus", ControlPlaneError("locked")
        )

        result, _ = invoke(scenario_plane)

        assert result.exit_code == 1
        assert "need manual follow-up" in result.output

    def test_empty_environment_is_success_by_default(self, fake_plane):
        result, _ = invoke(fake_plane)

        assert result.exit_code == 0, result.output

    def test_require_replicas_fails_on_empty_environment(self, fake_plane):
        result, _ = invoke(fake_plane, "--require-replicas")

        assert result.exit_code == 1
        assert "No secondary servers found" in result.output

    def test_missing_subscription_is_a_configuration_error(self, scenario_plane):
        runner = CliRunner()
        args = [arg for arg in BASE_ARGS if arg not in ("--subscription-id", SUBSCRIPTION_ID)]
        result = runner.invoke(cli, args)

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_missing_template_directory_is_rejected_before_any_call(
        self, scenario_plane, monkeypatch, tmp_path
    ):
        monkeypatch.setenv("REFRESH_TEMPLATE_DIR", str(tmp_path / "missing"))

        result, factory = invoke(scenario_plane)

        assert result.exit_code == 1
        assert "Template directory does not exist" in result.output
        factory.assert_not_called()
        assert scenario_plane.calls == []

    def test_destination_is_required(self):
        result = CliRunner().invoke(cli, ["refresh-replicas", "--destination-namespace", "acme"])

        assert result.exit_code == 2
        assert "--destination" in result.output
