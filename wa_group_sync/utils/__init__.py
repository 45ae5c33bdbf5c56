"""
wa_group_sync.utils - Utility module

Common utilities including logging configuration.
"""

from wa_group_sync.utils.normalization import digits_only, normalize_rank
from wa_group_sync.utils.paths import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_DB_FILE,
    resolve_config_dir,
    resolve_db_path,
)

__all__ = [
    "digits_only",
    "normalize_rank",
    "resolve_config_dir",
    "resolve_db_path",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_DB_FILE",
]
