"""Tests for replica configuration validation."""

import pytest

from data_refresh.config_manager import ReplicaConfig


class TestReplicaConfig:
    def test_existing_template_directory_is_accepted(self, tmp_path):
        config = ReplicaConfig(template_dir=str(tmp_path))

        assert config.template_dir == str(tmp_path)

    def test_missing_template_directory_is_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="Template directory does not exist"):
            ReplicaConfig(template_dir=str(tmp_path / "missing"))

    def test_template_directory_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REFRESH_TEMPLATE_DIR", str(tmp_path / "missing"))

        with pytest.raises(ValueError, match="Template directory does not exist"):
            ReplicaConfig()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"deployment_max_polls": 0},
            {"max_parallel_recreations": 0},
            {"settling_seconds": -1},
            {"ownership_tag": ""},
        ],
    )
    def test_invalid_values_are_rejected(self, tmp_path, overrides):
        with pytest.raises(ValueError):
            ReplicaConfig(template_dir=str(tmp_path), **overrides)
