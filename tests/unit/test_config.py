"""Unit tests for environment configuration and logging setup."""

import logging

import pytest

from geopipes.config.settings import Config, ConfigurationError, GeometryConfig, LoggingConfig
from geopipes.utils import load_yaml_file, setup_logging

ENV_VARS = ["GEOPIPES_GRID_SIZE", "GEOPIPES_CRS", "GEOPIPES_BUFFER_QUAD_SEGS", "GEOPIPES_LOG_LEVEL"]


@pytest.fixture
def clean_env(monkeypatch):
    """Unset geopipes variables and restore them after the test."""
    # setenv first so monkeypatch also undoes values loaded from env files
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


# =============================================================================
# Config Tests
# =============================================================================

class TestConfig:
    """Test environment-driven configuration."""

    def test_defaults(self, clean_env):
        """Without variables the defaults apply."""
        config = Config()
        assert config.geometry.grid_size == 0.0
        assert config.geometry.crs == "EPSG:4326"
        assert config.geometry.buffer_quad_segs == 8
        assert config.logging.level == "INFO"

    def test_environment_overrides(self, clean_env):
        """Variables override defaults."""
        clean_env.setenv("GEOPIPES_GRID_SIZE", "0.001")
        clean_env.setenv("GEOPIPES_CRS", "EPSG:3857")
        clean_env.setenv("GEOPIPES_LOG_LEVEL", "debug")
        config = Config()
        assert config.geometry.grid_size == 0.001
        assert config.logging.level == "DEBUG"
        database = config.create_spatial_database()
        assert database.crs == "EPSG:3857"
        assert database.grid_size == 0.001

    def test_env_file(self, clean_env, tmp_path):
        """An explicit env file is loaded."""
        env_file = tmp_path / "geopipes.env"
        env_file.write_text("GEOPIPES_BUFFER_QUAD_SEGS=4\n")
        config = Config(env_file=env_file)
        assert config.geometry.buffer_quad_segs == 4

    def test_missing_env_file(self, clean_env, tmp_path):
        """A named env file must exist."""
        with pytest.raises(ConfigurationError):
            Config(env_file=tmp_path / "missing.env")

    @pytest.mark.parametrize("name,value", [
        ("GEOPIPES_GRID_SIZE", "-1"),
        ("GEOPIPES_GRID_SIZE", "fine"),
        ("GEOPIPES_BUFFER_QUAD_SEGS", "0"),
        ("GEOPIPES_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values(self, clean_env, name, value):
        """Invalid settings raise ConfigurationError."""
        clean_env.setenv(name, value)
        with pytest.raises(ConfigurationError):
            Config()

    def test_section_validation(self):
        """Dataclass sections validate on construction."""
        with pytest.raises(ValueError):
            GeometryConfig(crs="")
        assert LoggingConfig(level="warning").level == "WARNING"


# =============================================================================
# Utility Tests
# =============================================================================

class TestUtils:
    """Test logging setup and YAML loading."""

    def test_setup_logging_levels(self, tmp_path):
        """Verbose forces debug; a log file gets a handler."""
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(True, log_file)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert log_file.parent.exists()
        setup_logging(False, level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_load_yaml_file(self, tmp_path):
        """YAML mappings load; other documents fail."""
        good = tmp_path / "good.yml"
        good.write_text("name: x\n")
        assert load_yaml_file(good) == {"name": "x"}

        bad = tmp_path / "bad.yml"
        bad.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_yaml_file(bad)

        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "none.yml")
