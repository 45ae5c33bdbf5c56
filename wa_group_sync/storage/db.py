"""
SQLite database module for profiles, managed groups and sync state.

Provides persistent storage for each user's gateway profile, the groups
they administer, and the outcome of their most recent sync.
"""

import logging
import sqlite3
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from wa_group_sync.sync.group import GroupSyncResult

logger = logging.getLogger(__name__)

# SQL Schema for profile, managed group and sync state tables
SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    user_id TEXT PRIMARY KEY,
    gateway_token TEXT,
    connection_status TEXT NOT NULL DEFAULT 'disconnected',
    phone_number TEXT,
    instance_id TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS managed_groups (
    id INTEGER PRIMARY KEY,
    user_id TEXT NOT NULL,
    group_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    participants_count INTEGER DEFAULT 0,
    is_admin BOOLEAN NOT NULL DEFAULT 1,
    is_creator BOOLEAN NOT NULL DEFAULT 0,
    avatar_url TEXT,
    last_synced_at TEXT,
    UNIQUE(user_id, group_id)
);

CREATE INDEX IF NOT EXISTS idx_managed_groups_user ON managed_groups(user_id);

CREATE TABLE IF NOT EXISTS sync_state (
    user_id TEXT PRIMARY KEY,
    last_sync_at REAL,
    last_status TEXT,
    last_groups_count INTEGER,
    last_api_calls INTEGER,
    last_message TEXT
);
"""

PROFILE_FIELDS = (
    "gateway_token",
    "connection_status",
    "phone_number",
    "instance_id",
)


class StorageError(Exception):
    """Raised when the database cannot be read or written."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncDatabase:
    """
    SQLite database manager for the group sync.

    Provides methods for:
    - Reading and updating user profiles (gateway token, phone number)
    - Atomically replacing a user's managed group set
    - Recording the outcome of each sync

    Usage:
        db = SyncDatabase('/path/to/groups.db')
        db.initialize()

        # Or use in-memory for testing:
        db = SyncDatabase(':memory:')
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection to ensure
        schema persists across operations. For file databases, creates
        a new connection each time.
        """
        try:
            if self.db_path == ":memory:":
                if self._shared_connection is None:
                    self._shared_connection = sqlite3.connect(":memory:")
                    self._shared_connection.row_factory = sqlite3.Row
                return self._shared_connection

            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            return conn
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on any error. sqlite3 errors are
        re-raised as StorageError.

        Usage:
            with db.connection() as conn:
                conn.execute("SELECT * FROM profiles")
        """
        conn = self._get_connection()
        is_shared = self.db_path == ":memory:"
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            if not is_shared:
                conn.close()

    def initialize(self) -> None:
        """Create the tables if they don't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # Profile Operations
    # =========================================================================

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Get a user's profile.

        Returns:
            Dictionary with the profile columns, or None if not found
        """
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT user_id, gateway_token, connection_status,
                       phone_number, instance_id, updated_at
                FROM profiles WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            return dict(row) if row else None

    def upsert_profile(self, user_id: str, **fields: Any) -> None:
        """
        Insert a profile or update the given fields of an existing one.

        Args:
            user_id: Profile owner
            **fields: Any of gateway_token, connection_status,
                      phone_number, instance_id (None values are ignored)

        Raises:
            ValueError: If an unknown field is passed
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        updates = {k: v for k, v in fields.items() if v is not None}
        now = _utcnow_iso()

        with self.connection() as conn:
            existing = conn.execute(
                "SELECT user_id FROM profiles WHERE user_id = ?", (user_id,)
            ).fetchone()

            if existing:
                if not updates:
                    return
                assignments = ", ".join(f"{name} = ?" for name in updates)
                conn.execute(
                    f"UPDATE profiles SET {assignments}, updated_at = ? "
                    "WHERE user_id = ?",
                    (*updates.values(), now, user_id),
                )
            else:
                columns = ["user_id", *updates, "updated_at"]
                placeholders = ", ".join("?" for _ in columns)
                conn.execute(
                    f"INSERT INTO profiles ({', '.join(columns)}) "
                    f"VALUES ({placeholders})",
                    (user_id, *updates.values(), now),
                )

    def update_profile_phone(self, user_id: str, phone_number: str) -> None:
        """Persist the phone number discovered for a user."""
        with self.connection() as conn:
            conn.execute(
                "UPDATE profiles SET phone_number = ?, updated_at = ? "
                "WHERE user_id = ?",
                (phone_number, _utcnow_iso(), user_id),
            )

    # =========================================================================
    # Managed Group Operations
    # =========================================================================

    def get_user_groups(self, user_id: str) -> list[GroupSyncResult]:
        """Get a user's stored groups, ordered by name."""
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT group_id, name, description, participants_count,
                       is_admin, is_creator, avatar_url, last_synced_at
                FROM managed_groups
                WHERE user_id = ?
                ORDER BY name COLLATE NOCASE, group_id
                """,
                (user_id,),
            ).fetchall()
            return [GroupSyncResult.from_record(dict(row)) for row in rows]

    def count_user_groups(self, user_id: str) -> int:
        """Count a user's stored groups."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM managed_groups WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            return row[0] if row else 0

    def replace_user_groups(
        self, user_id: str, groups: Sequence[GroupSyncResult]
    ) -> int:
        """
        Replace a user's stored group set in one transaction.

        Either all of the old rows are gone and all of the new ones are
        present, or nothing changed.

        Args:
            user_id: Owner of the groups
            groups: New group set (one record per group id)

        Returns:
            Number of rows written
        """
        records = [group.to_record(user_id) for group in groups]

        with self.connection() as conn:
            conn.execute("DELETE FROM managed_groups WHERE user_id = ?", (user_id,))
            conn.executemany(
                """
                INSERT INTO managed_groups (
                    user_id, group_id, name, description, participants_count,
                    is_admin, is_creator, avatar_url, last_synced_at
                ) VALUES (
                    :user_id, :group_id, :name, :description, :participants_count,
                    :is_admin, :is_creator, :avatar_url, :last_synced_at
                )
                """,
                records,
            )

        logger.debug(f"Stored {len(records)} groups for {user_id}")
        return len(records)

    def clear_user_groups(self, user_id: str) -> int:
        """
        Delete all of a user's stored groups.

        Returns:
            Number of rows deleted
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM managed_groups WHERE user_id = ?", (user_id,)
            )
            return cursor.rowcount

    # =========================================================================
    # Sync State Operations
    # =========================================================================

    def get_sync_state(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Get the recorded outcome of a user's last sync.

        Returns:
            Dictionary with last_sync_at (epoch seconds), last_status,
            last_groups_count, last_api_calls and last_message, or None
        """
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT last_sync_at, last_status, last_groups_count,
                       last_api_calls, last_message
                FROM sync_state WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            return dict(row) if row else None

    def update_sync_state(
        self,
        user_id: str,
        last_sync_at: float,
        status: str,
        groups_count: int = 0,
        api_calls: int = 0,
        message: Optional[str] = None,
    ) -> None:
        """
        Record the outcome of a sync.

        Args:
            user_id: Sync owner
            last_sync_at: Start of the sync, epoch seconds
            status: Report status value
            groups_count: Groups stored after the sync
            api_calls: Gateway calls made
            message: Report message
        """
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO sync_state (
                    user_id, last_sync_at, last_status,
                    last_groups_count, last_api_calls, last_message
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    last_sync_at = excluded.last_sync_at,
                    last_status = excluded.last_status,
                    last_groups_count = excluded.last_groups_count,
                    last_api_calls = excluded.last_api_calls,
                    last_message = excluded.last_message
                """,
                (user_id, last_sync_at, status, groups_count, api_calls, message),
            )

    def clear_sync_state(self, user_id: str) -> None:
        """Forget a user's last sync (lifts the cooldown)."""
        with self.connection() as conn:
            conn.execute("DELETE FROM sync_state WHERE user_id = ?", (user_id,))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def vacuum(self) -> None:
        """Reclaim unused space in the database file."""
        with self.connection() as conn:
            conn.execute("VACUUM")
