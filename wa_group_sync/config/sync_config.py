"""
Typed sync configuration.

Turns the raw config.yaml dictionary into a SyncConfig with every tunable
of a sync run: gateway client settings, the pass plan, backoffs, cache
timing and the reconciliation threshold. Missing keys fall back to the
module defaults of the component they configure.

Configuration file format (config.yaml):

    gateway_base_url: https://gate.whapi.cloud
    country_code: "972"
    protection_threshold: 0.5
    sync_cooldown_seconds: 60
    passes:
      - {batch_size: 50, delay_seconds: 2.2, max_calls: 12}
      - {batch_size: 100, delay_seconds: 3.0, max_calls: 8,
         startup_delay_seconds: 5}

Notes:
    - An absent passes list means the built-in four-pass plan
    - The config directory is resolved from --config-dir,
      $WA_GROUP_SYNC_CONFIG_DIR or ~/.wa-group-sync
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from wa_group_sync.api.gateway_api import (
    DEFAULT_BASE_URL,
    DEFAULT_INITIAL_RETRY_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)
from wa_group_sync.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from wa_group_sync.sync.cache import (
    DEFAULT_CACHE_TTL,
    DEFAULT_MAX_RETRIES as DEFAULT_CACHE_MAX_RETRIES,
    DEFAULT_RETRY_INTERVAL,
)
from wa_group_sync.sync.fetcher import (
    DEFAULT_BACKOFF_INCREMENT,
    DEFAULT_DETAIL_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_NETWORK_BACKOFF,
    DEFAULT_PASS_PLAN,
    DEFAULT_RATE_LIMIT_BACKOFF,
    PassConfig,
)
from wa_group_sync.sync.phone import DEFAULT_COUNTRY_CODE
from wa_group_sync.sync.reconcile import DEFAULT_PROTECTION_THRESHOLD
from wa_group_sync.utils import DEFAULT_DB_FILE, resolve_config_dir

logger = logging.getLogger(__name__)

# Minimum seconds between two syncs of the same user
DEFAULT_SYNC_COOLDOWN = 60.0


class SyncConfigError(ConfigError):
    """Raised when sync configuration has an invalid structure."""

    pass


def _parse_passes(data: Any) -> list[PassConfig]:
    if data is None:
        return list(DEFAULT_PASS_PLAN)

    if not isinstance(data, list) or not data:
        raise SyncConfigError("passes must be a non-empty list")

    passes = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise SyncConfigError(
                f"passes[{i}] must be a dictionary, got {type(entry).__name__}"
            )
        try:
            passes.append(PassConfig.from_dict(entry))
        except KeyError as e:
            raise SyncConfigError(f"passes[{i}] is missing {e}") from e
        except (TypeError, ValueError) as e:
            raise SyncConfigError(f"passes[{i}] is invalid: {e}") from e
    return passes


@dataclass
class SyncConfig:
    """
    Settings for a sync run.

    Attributes:
        gateway_base_url: Root URL of the messaging gateway
        gateway_timeout: Per-request timeout in seconds
        api_max_retries: Retries for detail and identity calls
        api_initial_retry_delay: First backoff for those retries
        api_max_retry_delay: Backoff cap for those retries
        country_code: Country prefix used to build phone variants
        passes: Ordered discovery pass plan
        max_delay_seconds: Cap for the spacing between list calls
        rate_limit_backoff_seconds: Base wait after a 429/5xx list failure
        backoff_increment_seconds: Extra wait per call made in the pass
        network_backoff_seconds: Wait after a network failure
        fetch_group_details: Fetch details of groups listed without participants
        detail_delay_seconds: Spacing before each detail fetch
        cache_ttl_seconds: Lifetime of a cached classification
        cache_retry_interval_seconds: Age before a no_participants re-check
        cache_max_retries: Re-checks per group per run
        protection_threshold: Fraction of stored groups a scan must reach
        sync_cooldown_seconds: Minimum spacing between syncs of one user
        database_file: SQLite file name inside the config directory
        scan_log_enabled: Write per-group decisions to a scan log file

    Usage:
        config = SyncConfig.from_dict({"protection_threshold": 0.6})
        config = load_config("~/.wa-group-sync")
    """

    gateway_base_url: str = DEFAULT_BASE_URL
    gateway_timeout: float = DEFAULT_TIMEOUT
    api_max_retries: int = DEFAULT_MAX_RETRIES
    api_initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY
    api_max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    country_code: str = DEFAULT_COUNTRY_CODE
    passes: list[PassConfig] = field(default_factory=lambda: list(DEFAULT_PASS_PLAN))
    max_delay_seconds: float = DEFAULT_MAX_DELAY
    rate_limit_backoff_seconds: float = DEFAULT_RATE_LIMIT_BACKOFF
    backoff_increment_seconds: float = DEFAULT_BACKOFF_INCREMENT
    network_backoff_seconds: float = DEFAULT_NETWORK_BACKOFF
    fetch_group_details: bool = True
    detail_delay_seconds: float = DEFAULT_DETAIL_DELAY
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL
    cache_retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL
    cache_max_retries: int = DEFAULT_CACHE_MAX_RETRIES
    protection_threshold: float = DEFAULT_PROTECTION_THRESHOLD
    sync_cooldown_seconds: float = DEFAULT_SYNC_COOLDOWN
    database_file: str = DEFAULT_DB_FILE
    scan_log_enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SyncConfig:
        """
        Create SyncConfig from a dictionary.

        Keys that are not SyncConfig fields (CLI options such as verbose)
        are ignored.

        Raises:
            SyncConfigError: If configuration structure is invalid
        """
        if data is None:
            return cls()

        if not isinstance(data, dict):
            raise SyncConfigError(
                f"Configuration must be a dictionary, got {type(data).__name__}"
            )

        known = {f.name for f in fields(cls)} - {"passes"}
        values = {key: value for key, value in data.items() if key in known}
        values["passes"] = _parse_passes(data.get("passes"))

        threshold = values.get("protection_threshold", DEFAULT_PROTECTION_THRESHOLD)
        if not isinstance(threshold, (int, float)) or not 0.0 < threshold <= 1.0:
            raise SyncConfigError(
                f"protection_threshold must be in (0.0, 1.0], got {threshold!r}"
            )

        country_code = values.get("country_code", DEFAULT_COUNTRY_CODE)
        if not isinstance(country_code, str) or not country_code.isdigit():
            raise SyncConfigError(
                f"country_code must be a string of digits, got {country_code!r}"
            )

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the config.yaml dictionary format."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "passes":
                value = [p.to_dict() for p in value]
            result[f.name] = value
        return result

    @classmethod
    def load_from_file(cls, path: Path | str) -> SyncConfig:
        """
        Load and validate a config.yaml file.

        Returns a default configuration if the file doesn't exist.

        Raises:
            ConfigError: If the file cannot be parsed or fails validation
        """
        path = Path(path).expanduser().resolve()
        loader = ConfigLoader(config_dir=path.parent, config_file=path.name)
        data = loader.load_from_file(path)
        if data:
            loader.validate(data)
        return cls.from_dict(data)

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"SyncConfig(gateway={self.gateway_base_url!r}, "
            f"passes={len(self.passes)}, "
            f"threshold={self.protection_threshold}, "
            f"cooldown={self.sync_cooldown_seconds}s)"
        )


def load_config(
    config_dir: Path | str | None = None, config_file: str = DEFAULT_CONFIG_FILE
) -> SyncConfig:
    """
    Load sync configuration from a config directory.

    Resolution order for config directory:
    1. Explicit config_dir parameter (if provided)
    2. WA_GROUP_SYNC_CONFIG_DIR environment variable (if set)
    3. Default: ~/.wa-group-sync

    Returns:
        SyncConfig instance; defaults when the file doesn't exist

    Raises:
        ConfigError: If the config file exists but is invalid
    """
    resolved_dir = resolve_config_dir(config_dir)
    logger.debug(f"Loading config from directory: {resolved_dir}")
    return SyncConfig.load_from_file(resolved_dir / config_file)
