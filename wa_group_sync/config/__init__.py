"""
wa_group_sync.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from wa_group_sync.config.generator import generate_default_config, save_config_file
from wa_group_sync.config.loader import ConfigError, ConfigLoader
from wa_group_sync.config.sync_config import SyncConfig, SyncConfigError, load_config

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "SyncConfig",
    "SyncConfigError",
    "generate_default_config",
    "load_config",
    "save_config_file",
]
