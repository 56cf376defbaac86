"""Tests for configuration snapshot capture."""

from data_refresh.exceptions import ControlPlaneError
from data_refresh.replicas.snapshot import SnapshotCapturer

from .conftest import make_database


class TestSnapshotCapturer:
    def test_captures_configuration_and_links(self, scenario_plane, secondary_server):
        database = scenario_plane.databases[secondary_server.name]["db-gateway-acme-qa2-eastus"]

        snapshot = SnapshotCapturer(scenario_plane, "Environment").capture(database)

        assert snapshot.database_name == database.name
        assert snapshot.server == secondary_server
        assert snapshot.tags == {"ClientName": "acme", "Environment": "qa2"}
        assert snapshot.sku_name == "GP_Gen5"
        assert snapshot.sku_tier == "GeneralPurpose"
        assert snapshot.sku_capacity == 2
        assert snapshot.max_size_bytes == 34359738368
        assert snapshot.zone_redundant is False
        assert snapshot.read_scale == "Disabled"
        assert [link.partner_server for link in snapshot.links] == ["srv-primary-eastus"]
        assert snapshot.warnings == []

    def test_tags_are_copied(self, fake_plane, secondary_server):
        database = make_database("db-acme-qa2", secondary_server)

        snapshot = SnapshotCapturer(fake_plane, "Environment").capture(database)
        database.tags["ClientName"] = "changed"

        assert snapshot.tags["ClientName"] == "acme"

    def test_link_read_failure_is_a_warning(self, fake_plane, secondary_server):
        database = make_database("db-acme-qa2", secondary_server)
        fake_plane.fail("list_replication_links", database.name, ControlPlaneError("boom"))

        snapshot = SnapshotCapturer(fake_plane, "Environment").capture(database)

        assert snapshot.links == []
        assert any("Could not read replication links" in w for w in snapshot.warnings)

    def test_missing_environment_tag_is_a_warning(self, fake_plane, secondary_server):
        database = make_database("db-acme-qa2", secondary_server, tags={"ClientName": "acme"})

        snapshot = SnapshotCapturer(fake_plane, "Environment").capture(database)

        assert snapshot.tags == {"ClientName": "acme"}
        assert snapshot.warnings == ["db-acme-qa2 is missing the Environment tag"]

    def test_sku_label(self, fake_plane, secondary_server):
        database = make_database("db-acme-qa2", secondary_server)

        snapshot = SnapshotCapturer(fake_plane, "Environment").capture(database)

        assert snapshot.sku_label == "GP_Gen5 (GeneralPurpose)"
