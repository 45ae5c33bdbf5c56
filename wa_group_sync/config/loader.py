"""
Configuration loader module for WhatsApp group sync.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Type and range validation of known keys
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from wa_group_sync.utils import resolve_config_dir

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

# Keys of one entry in the "passes" list
PASS_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    "batch_size": int,
    "delay_seconds": (int, float),
    "max_calls": int,
    "startup_delay_seconds": (int, float),
    "delay_increment": (int, float),
}

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _type_name(expected: type[Any] | tuple[type[Any], ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _check_type(
    key: str, value: Any, expected: type[Any] | tuple[type[Any], ...]
) -> None:
    # bool is an int subclass; never accept it for numeric keys
    if isinstance(value, bool) and expected is not bool:
        raise ConfigError(
            f"Invalid type for '{key}': expected {_type_name(expected)}, got bool"
        )
    if not isinstance(value, expected):
        raise ConfigError(
            f"Invalid type for '{key}': expected {_type_name(expected)}, "
            f"got {type(value).__name__}"
        )


class ConfigLoader:
    """
    YAML configuration file loader.

    Handles loading and validation of the config.yaml file for the
    wa-group-sync application.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # Load from specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.wa-group-sync/ or $WA_GROUP_SYNC_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    def _get_config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Returns an empty dict if the file doesn't exist, allowing
        graceful operation with built-in defaults.

        Args:
            path: Path to the configuration file

        Returns:
            Dictionary containing configuration values

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.debug(f"Configuration file is empty: {path}")
                return {}

            if not isinstance(config, dict):
                raise ConfigError(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(config).__name__}"
                )

            logger.debug(f"Loaded configuration from {path}")
            return config

        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration structure and values.

        Unknown keys are ignored with a debug message.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        valid_keys: dict[str, type[Any] | tuple[type[Any], ...]] = {
            # CLI options
            "verbose": bool,
            "debug": bool,
            "config_dir": str,
            "database_file": str,
            # Logging options
            "log_dir": str,
            "scan_log_enabled": bool,
            # Gateway options
            "gateway_base_url": str,
            "gateway_timeout": (int, float),
            "api_max_retries": int,
            "api_initial_retry_delay": (int, float),
            "api_max_retry_delay": (int, float),
            # Identity options
            "country_code": str,
            # Scan options
            "passes": list,
            "max_delay_seconds": (int, float),
            "rate_limit_backoff_seconds": (int, float),
            "backoff_increment_seconds": (int, float),
            "network_backoff_seconds": (int, float),
            "fetch_group_details": bool,
            "detail_delay_seconds": (int, float),
            # Cache options
            "cache_ttl_seconds": (int, float),
            "cache_retry_interval_seconds": (int, float),
            "cache_max_retries": int,
            # Reconciliation options
            "protection_threshold": (int, float),
            "sync_cooldown_seconds": (int, float),
        }

        for key, value in config.items():
            if key in valid_keys:
                _check_type(key, value, valid_keys[key])
            else:
                logger.debug(f"Ignoring unknown configuration key: {key}")

        if "protection_threshold" in config:
            threshold = config["protection_threshold"]
            if not (0.0 < threshold <= 1.0):
                raise ConfigError(
                    f"protection_threshold must be in (0.0, 1.0], got {threshold}"
                )

        if "country_code" in config and not config["country_code"].isdigit():
            raise ConfigError(
                f"country_code must contain digits only, got {config['country_code']!r}"
            )

        positive_int_keys = ["api_max_retries", "cache_max_retries"]
        for key in positive_int_keys:
            if key in config and config[key] < 0:
                raise ConfigError(f"{key} must be >= 0, got {config[key]}")

        positive_float_keys = [
            "gateway_timeout",
            "api_initial_retry_delay",
            "api_max_retry_delay",
            "cache_ttl_seconds",
        ]
        for key in positive_float_keys:
            if key in config and config[key] <= 0:
                raise ConfigError(f"{key} must be > 0, got {config[key]}")

        non_negative_keys = [
            "max_delay_seconds",
            "rate_limit_backoff_seconds",
            "backoff_increment_seconds",
            "network_backoff_seconds",
            "detail_delay_seconds",
            "cache_retry_interval_seconds",
            "sync_cooldown_seconds",
        ]
        for key in non_negative_keys:
            if key in config and config[key] < 0:
                raise ConfigError(f"{key} must be >= 0, got {config[key]}")

        if "passes" in config:
            self._validate_passes(config["passes"])

    def _validate_passes(self, passes: list[Any]) -> None:
        if not passes:
            raise ConfigError("passes must contain at least one pass")

        for i, entry in enumerate(passes):
            if not isinstance(entry, dict):
                raise ConfigError(
                    f"passes[{i}] must be a dictionary, got {type(entry).__name__}"
                )
            for key in ("batch_size", "max_calls"):
                if key not in entry:
                    raise ConfigError(f"passes[{i}] is missing '{key}'")
            for key, value in entry.items():
                if key not in PASS_KEYS:
                    raise ConfigError(f"passes[{i}] has unknown key '{key}'")
                _check_type(f"passes[{i}].{key}", value, PASS_KEYS[key])
                if value < 0:
                    raise ConfigError(f"passes[{i}].{key} must be >= 0, got {value}")
            for key in ("batch_size", "max_calls"):
                if entry[key] < 1:
                    raise ConfigError(
                        f"passes[{i}].{key} must be >= 1, got {entry[key]}"
                    )

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load configuration and validate it.

        Returns:
            Validated configuration dictionary

        Raises:
            ConfigError: If configuration cannot be loaded or is invalid
        """
        config = self.load()
        if config:
            self.validate(config)
        return config
