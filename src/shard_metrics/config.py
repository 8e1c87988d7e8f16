"""
Configuration management for the shard metrics store.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/shard-metrics/config.yml or --config path)
3. Environment variables (SHARD_METRICS_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CONFIG_PATH = Path("/etc/shard-metrics/config.yml")
DEFAULT_ENV_PREFIX = "SHARD_METRICS_"

# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Relational backend and connection pool configuration.

    Attributes:
        backend: 'postgres' (asyncpg pool) or 'sqlite' (local file).
        dsn: PostgreSQL connection string.
        sqlite_path: Database file used by the sqlite backend.
        min_pool_size: Minimum number of pooled connections.
        max_pool_size: Maximum number of pooled connections.
        command_timeout_seconds: Per-statement timeout enforced by the pool.
    """

    backend: str = Field(
        default="postgres",
        description="Database backend: 'postgres' or 'sqlite'",
    )
    dsn: str = Field(
        default="postgresql://localhost:5432/shard_metrics",
        description="PostgreSQL DSN used by the asyncpg pool",
    )
    sqlite_path: str = Field(
        default="/var/lib/shard-metrics/metrics.db",
        description="SQLite database file for the sqlite backend",
    )
    min_pool_size: int = Field(
        default=2,
        description="Minimum pool size",
        ge=1,
        le=100,
    )
    max_pool_size: int = Field(
        default=10,
        description="Maximum pool size",
        ge=1,
        le=100,
    )
    command_timeout_seconds: float | None = Field(
        default=30.0,
        description="Statement timeout in seconds (None disables it)",
        gt=0,
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate and normalize the backend name."""
        valid_backends = {"postgres", "sqlite"}
        v_lower = v.lower()
        if v_lower == "postgresql":
            return "postgres"
        if v_lower not in valid_backends:
            raise ValueError(
                f"Invalid database backend: {v}. Must be one of: {', '.join(sorted(valid_backends))}"
            )
        return v_lower

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> DatabaseConfig:
        """Ensure the pool bounds are ordered."""
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) must not exceed "
                f"max_pool_size ({self.max_pool_size})"
            )
        return self


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit one JSON object per line instead of plain text.
    """

    level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to attach a console log handler (stdout by default)",
    )
    json_format: bool = Field(
        default=True,
        description="Whether to format log records as JSON",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        # Normalize 'warn' to 'warning'
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Metrics Configuration
# =============================================================================


class MetricsConfig(BaseModel):
    """Read-side defaults for shard metrics.

    Attributes:
        default_history_hours: Look-back window used when none is given.
    """

    default_history_hours: float = Field(
        default=24,
        description="Default look-back window for historical queries, in hours",
        gt=0,
    )


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        database: Backend and pool settings.
        logging: Logging configuration.
        metrics: Metrics query defaults.
    """

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="Database settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics query defaults",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Nested keys use a double underscore separator, for example
    ``SHARD_METRICS_DATABASE__DSN=postgresql://db/metrics``.

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the global configuration flags on a parser."""
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )


def config_overrides_from_args(parsed: argparse.Namespace) -> dict[str, Any]:
    """
    Translate parsed global flags into a config override dictionary.

    The config file path, if any, is returned under the ``_config_path`` key.
    """
    result: dict[str, Any] = {}

    if getattr(parsed, "config", None):
        result["_config_path"] = parsed.config

    if getattr(parsed, "log_level", None):
        result["logging"] = {"level": parsed.log_level}

    if getattr(parsed, "debug", False):
        result.setdefault("logging", {})["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Later sources override earlier ones: defaults, YAML file, environment,
    then command-line flags.

    Args:
        config_path: Path to YAML configuration file. If None, uses the
            --config flag or the default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_overrides: Overrides from the parsed global flags, as built by
            ``config_overrides_from_args``.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config()
        >>> config.database.backend
        'postgres'
    """
    config_dict: dict[str, Any] = {}

    cli_config = dict(cli_overrides or {})

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        if isinstance(config_path, str):
            config_path = Path(config_path)

    if config_path is not None:
        yaml_config = _load_yaml_config(config_path)
        config_dict = _deep_merge(config_dict, yaml_config)

    env_config = _load_env_config(env_prefix)
    config_dict = _deep_merge(config_dict, env_config)

    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
