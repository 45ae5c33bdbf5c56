"""
Configuration file generator for WhatsApp group sync.

Provides functionality to generate a default config.yaml with
documentation for every available option.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments

    Example:
        config_yaml = generate_default_config()
        with open("config.yaml", "w") as f:
            f.write(config_yaml)
    """
    return """# WhatsApp Group Sync Configuration
# ================================
#
# Default options for wa-group-sync. CLI arguments override these values.
#
# To use this configuration:
#   1. Save as ~/.wa-group-sync/config.yaml (or custom location)
#   2. Uncomment and modify options as needed


# Logging Options
# ---------------

# Enable verbose output with detailed logging
# Default: false
# verbose: true

# Directory for log files
# Default: ~/.wa-group-sync/logs
# log_dir: /var/log/wa-group-sync

# Write every per-group classification decision to scan_<timestamp>.log
# Default: true
# scan_log_enabled: true


# Gateway
# -------

# Root URL of the messaging gateway
# Default: https://gate.whapi.cloud
# gateway_base_url: https://gate.whapi.cloud

# Per-request timeout in seconds
# Default: 30
# gateway_timeout: 30

# Retries for single-group detail and identity lookups
# Default: 3
# api_max_retries: 3
# api_initial_retry_delay: 1.0
# api_max_retry_delay: 30.0


# Identity
# --------

# Country prefix used to match local (0-prefixed) and international numbers
# Default: "972"
# country_code: "972"


# Discovery Passes
# ----------------

# Each pass pages through the group list with its own batch size, spacing
# delay and call budget. Later passes use bigger pages and longer delays.
# Default: the four passes below
# passes:
#   - {batch_size: 50, delay_seconds: 2.2, delay_increment: 0.1, max_calls: 12}
#   - {batch_size: 100, delay_seconds: 3.0, delay_increment: 0.1, max_calls: 8,
#      startup_delay_seconds: 5}
#   - {batch_size: 150, delay_seconds: 3.8, delay_increment: 0.1, max_calls: 6,
#      startup_delay_seconds: 10}
#   - {batch_size: 200, delay_seconds: 4.6, delay_increment: 0.1, max_calls: 5,
#      startup_delay_seconds: 15}

# Cap for the spacing between list calls (seconds)
# max_delay_seconds: 6.0

# Wait after a 429/5xx: rate_limit_backoff_seconds + calls * backoff_increment_seconds
# rate_limit_backoff_seconds: 8.0
# backoff_increment_seconds: 1.0

# Wait after a connection error or timeout (seconds)
# network_backoff_seconds: 10.0

# Fetch a group's detail record when the list omits its participants
# fetch_group_details: true
# detail_delay_seconds: 1.2


# Result Cache
# ------------

# cache_ttl_seconds: 300
# cache_retry_interval_seconds: 120
# cache_max_retries: 3


# Safety
# ------

# A scan that finds fewer than this fraction of the stored groups is
# rejected and the stored groups are kept
# Default: 0.5
# protection_threshold: 0.5

# Minimum seconds between two syncs of the same user (sync --force skips it)
# Default: 60
# sync_cooldown_seconds: 60

# SQLite database file inside the config directory
# Default: groups.db
# database_file: groups.db
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save default configuration file to specified path.

    Creates parent directories if they don't exist and saves
    the configuration with secure permissions.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite existing file. If False, fail if file exists.

    Returns:
        Tuple of (success, error_message); error_message is None on success
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")

        # Owner-only: the file may later hold gateway settings
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
