"""Persistent storage for profiles, managed groups and sync state."""

from wa_group_sync.storage.db import StorageError, SyncDatabase

__all__ = ["StorageError", "SyncDatabase"]
