"""
Filesystem locations for wa-group-sync.

Everything the tool writes lives under one directory: config.yaml, the
SQLite store of managed groups and sync state, and the logs/ folder with
the daily log and per-run scan logs.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_CONFIG_DIR = Path.home() / ".wa-group-sync"

CONFIG_DIR_ENV_VAR = "WA_GROUP_SYNC_CONFIG_DIR"

# SQLite store, relative to the config directory unless configured absolute
DEFAULT_DB_FILE = "groups.db"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the directory holding config, database and logs.

    An explicit argument wins over WA_GROUP_SYNC_CONFIG_DIR, which wins
    over ~/.wa-group-sync. The result is expanded and absolute.
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()


def resolve_db_path(config_dir: Path, database_file: str = DEFAULT_DB_FILE) -> Path:
    """
    Locate the group database.

    Args:
        config_dir: Resolved configuration directory
        database_file: The database_file setting; a bare name or relative
                       path is placed inside config_dir, an absolute or
                       ~-prefixed path is used as given

    Returns:
        Path of the SQLite file (it may not exist yet)
    """
    path = Path(database_file).expanduser()
    if path.is_absolute():
        return path
    return config_dir / path
