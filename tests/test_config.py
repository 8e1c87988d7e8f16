"""
Tests for the configuration module.

This test module validates:
- Configuration loading from YAML files
- Environment variable overrides
- CLI argument overrides
- Configuration precedence (defaults < YAML < env vars < CLI args)
- Pydantic model validation with invalid inputs
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from shard_metrics.config import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    MetricsConfig,
    _deep_merge,
    _load_env_config,
    _load_yaml_config,
    _parse_env_value,
    add_config_arguments,
    config_overrides_from_args,
    load_config,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Path for a temporary config file."""
    return tmp_path / "config.yml"


@pytest.fixture
def sample_yaml_config() -> dict[str, Any]:
    """Sample YAML configuration for testing."""
    return {
        "database": {
            "backend": "sqlite",
            "sqlite_path": "/tmp/metrics.db",
        },
        "logging": {"level": "warning"},
        "metrics": {"default_history_hours": 6},
    }


@pytest.fixture
def clean_env() -> Any:
    """Run with no SHARD_METRICS_* variables set."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("SHARD_METRICS_")}
    with mock.patch.dict(os.environ, env, clear=True):
        yield


# =============================================================================
# Tests for Default Configuration
# =============================================================================


class TestDefaults:
    """Tests for model defaults."""

    def test_app_config_defaults(self) -> None:
        """Test that AppConfig builds with every section defaulted."""
        config = AppConfig()

        assert config.database.backend == "postgres"
        assert config.database.min_pool_size == 2
        assert config.database.max_pool_size == 10
        assert config.logging.level == "info"
        assert config.logging.json_format is True
        assert config.metrics.default_history_hours == 24

    def test_database_config_dsn_default(self) -> None:
        """Test the default DSN points at a local PostgreSQL."""
        assert DatabaseConfig().dsn.startswith("postgresql://")


# =============================================================================
# Tests for Validation
# =============================================================================


class TestValidation:
    """Tests for field validators."""

    @pytest.mark.parametrize("backend", ["postgres", "POSTGRES", "sqlite"])
    def test_backend_validation_valid(self, backend: str) -> None:
        """Test valid backends are accepted and lowercased."""
        assert DatabaseConfig(backend=backend).backend == backend.lower()

    def test_backend_alias_postgresql(self) -> None:
        """Test 'postgresql' is normalized to 'postgres'."""
        assert DatabaseConfig(backend="postgresql").backend == "postgres"

    def test_backend_validation_invalid(self) -> None:
        """Test unknown backends are rejected."""
        with pytest.raises(ValidationError, match="Invalid database backend"):
            DatabaseConfig(backend="mysql")

    def test_pool_bounds_must_be_ordered(self) -> None:
        """Test min_pool_size may not exceed max_pool_size."""
        with pytest.raises(ValidationError, match="must not exceed"):
            DatabaseConfig(min_pool_size=20, max_pool_size=5)

    def test_pool_size_range(self) -> None:
        """Test pool sizes are bounded."""
        with pytest.raises(ValidationError):
            DatabaseConfig(max_pool_size=0)

    def test_log_level_warn_normalized(self) -> None:
        """Test 'warn' is normalized to 'warning'."""
        assert LoggingConfig(level="WARN").level == "warning"

    def test_log_level_validation_invalid(self) -> None:
        """Test invalid log level raises."""
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="verbose")

    def test_history_hours_must_be_positive(self) -> None:
        """Test the default look-back window must be positive."""
        with pytest.raises(ValidationError):
            MetricsConfig(default_history_hours=0)


# =============================================================================
# Tests for YAML Loading
# =============================================================================


class TestYamlLoading:
    """Tests for YAML configuration files."""

    def test_load_yaml_config_success(
        self, temp_config_file: Path, sample_yaml_config: dict[str, Any]
    ) -> None:
        """Test loading a YAML file."""
        temp_config_file.write_text(yaml.dump(sample_yaml_config))
        assert _load_yaml_config(temp_config_file) == sample_yaml_config

    def test_load_yaml_config_file_not_found(self) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            _load_yaml_config(Path("/nonexistent/config.yml"))

    def test_load_yaml_config_empty_file(self, temp_config_file: Path) -> None:
        """Test an empty file yields an empty dictionary."""
        temp_config_file.write_text("")
        assert _load_yaml_config(temp_config_file) == {}

    def test_load_config_with_yaml_file(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        """Test load_config applies YAML values."""
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        config = load_config(config_path=temp_config_file)

        assert config.database.backend == "sqlite"
        assert config.database.sqlite_path == "/tmp/metrics.db"
        assert config.logging.level == "warning"
        assert config.metrics.default_history_hours == 6


# =============================================================================
# Tests for Environment Variables
# =============================================================================


class TestEnvironment:
    """Tests for environment variable parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("off", False),
            ("5", 5),
            ("2.5", 2.5),
            ("postgresql://db/metrics", "postgresql://db/metrics"),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: Any) -> None:
        """Test env values are coerced to Python types."""
        assert _parse_env_value(raw) == expected

    def test_load_env_config_nested(self) -> None:
        """Test double underscore nesting."""
        env_vars = {
            "SHARD_METRICS_DATABASE__DSN": "postgresql://db:5432/metrics",
            "SHARD_METRICS_DATABASE__MAX_POOL_SIZE": "20",
        }
        with mock.patch.dict(os.environ, env_vars, clear=False):
            result = _load_env_config()

        assert result["database"]["dsn"] == "postgresql://db:5432/metrics"
        assert result["database"]["max_pool_size"] == 20

    def test_load_env_config_ignores_other_prefixes(self) -> None:
        """Test unrelated variables are skipped."""
        with mock.patch.dict(os.environ, {"OTHER_DATABASE__DSN": "x"}, clear=False):
            assert "database" not in _load_env_config()


# =============================================================================
# Tests for CLI Arguments
# =============================================================================


class TestCliArgs:
    """Tests for command-line overrides."""

    @staticmethod
    def _overrides(argv: list[str]) -> dict[str, Any]:
        parser = argparse.ArgumentParser()
        add_config_arguments(parser)
        return config_overrides_from_args(parser.parse_args(argv))

    def test_config_path(self) -> None:
        """Test --config is captured."""
        assert self._overrides(["--config", "/tmp/c.yml"])["_config_path"] == "/tmp/c.yml"

    def test_log_level(self) -> None:
        """Test --log-level overrides the logging level."""
        assert self._overrides(["--log-level", "error"]) == {"logging": {"level": "error"}}

    def test_debug(self) -> None:
        """Test --debug forces debug logging."""
        assert self._overrides(["--debug"])["logging"]["level"] == "debug"

    def test_no_flags(self) -> None:
        """Test no flags means no overrides."""
        assert self._overrides([]) == {}


# =============================================================================
# Tests for Precedence
# =============================================================================


class TestPrecedence:
    """Tests for layered configuration precedence."""

    def test_defaults_only(self, clean_env: None) -> None:
        """Test defaults when nothing else is supplied."""
        config = load_config()
        assert config == AppConfig()

    def test_env_overrides_yaml(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        """Test environment values win over YAML values."""
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        with mock.patch.dict(os.environ, {"SHARD_METRICS_LOGGING__LEVEL": "error"}):
            config = load_config(config_path=temp_config_file)

        assert config.logging.level == "error"
        assert config.database.backend == "sqlite"

    def test_cli_overrides_env(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        """Test CLI flags win over environment values."""
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        with mock.patch.dict(os.environ, {"SHARD_METRICS_LOGGING__LEVEL": "error"}):
            config = load_config(
                cli_overrides={
                    "_config_path": str(temp_config_file),
                    "logging": {"level": "debug"},
                }
            )

        assert config.logging.level == "debug"
        assert config.database.backend == "sqlite"

    def test_cli_overrides_mapping(self, clean_env: None) -> None:
        """Test flag overrides apply without a config file."""
        config = load_config(cli_overrides={"logging": {"level": "error"}})
        assert config.logging.level == "error"


# =============================================================================
# Tests for _deep_merge
# =============================================================================


class TestDeepMerge:
    """Tests for _deep_merge helper."""

    def test_deep_merge_nested(self) -> None:
        """Test nested dictionaries are merged key by key."""
        base = {"database": {"backend": "postgres", "dsn": "a"}}
        override = {"database": {"dsn": "b"}}

        assert _deep_merge(base, override) == {"database": {"backend": "postgres", "dsn": "b"}}

    def test_deep_merge_does_not_modify_original(self) -> None:
        """Test the inputs are left untouched."""
        base = {"logging": {"level": "info"}}
        _deep_merge(base, {"logging": {"level": "debug"}})

        assert base == {"logging": {"level": "info"}}
