"""CLI package for wa_group_sync."""

from wa_group_sync.cli.formatters import (
    format_timestamp,
    mask_token,
    show_group_table,
    show_report,
    show_sync_state,
)
from wa_group_sync.cli.main import cli, get_config_dir, open_database
from wa_group_sync.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "cli",
    "format_timestamp",
    "get_config_dir",
    "mask_token",
    "open_database",
    "show_group_table",
    "show_report",
    "show_sync_state",
]
