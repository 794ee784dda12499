"""Tests for engine configuration loading."""

import pytest

from eagledeploy.config import DEFAULT_LIVENESS_PORTS, EngineConfig, load_config


class TestEngineConfig:
    """Tests for the EngineConfig dataclass."""

    def test_defaults(self):
        """Test default values."""
        config = EngineConfig()
        assert config.concurrency == 32
        assert config.detection_attempts == 3
        assert config.known_hosts is None
        assert config.liveness_ports == DEFAULT_LIVENESS_PORTS
        assert config.liveness_ports is not DEFAULT_LIVENESS_PORTS

    def test_rejects_zero_concurrency(self):
        """Test concurrency below one is rejected."""
        with pytest.raises(ValueError, match="concurrency"):
            EngineConfig(concurrency=0)

    def test_from_dict_ignores_unknown(self):
        """Test unknown keys are dropped."""
        config = EngineConfig.from_dict({"concurrency": 4, "colour": "blue"})
        assert config.concurrency == 4
        assert "colour" not in config.to_dict()


class TestLoadConfig:
    """Tests for load_config."""

    def test_file_and_env_layers(self, tmp_path):
        """Test environment variables override the config file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("concurrency: 8\ninventory_path: /srv/inv.yaml\nprobe_timeout: 0.5\n")

        config = load_config(config_file, environ={"EAGLEDEPLOY_CONCURRENCY": "16"})

        assert config.concurrency == 16
        assert config.inventory_path == "/srv/inv.yaml"
        assert config.probe_timeout == 0.5

    def test_missing_explicit_file(self, tmp_path):
        """Test a named config file must exist."""
        with pytest.raises(ValueError, match="not found"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_non_mapping_file(self, tmp_path):
        """Test a config file must hold a mapping."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(config_file, environ={})

    def test_bad_env_value(self, tmp_path):
        """Test a non-numeric concurrency override is reported."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("{}\n")
        with pytest.raises(ValueError, match="EAGLEDEPLOY_CONCURRENCY"):
            load_config(config_file, environ={"EAGLEDEPLOY_CONCURRENCY": "lots"})
