"""
Run-scoped cache of per-group classification outcomes.

The multi-pass scan sees the same group several times. The cache remembers
what each group was classified as so later passes do not reclassify it,
expires entries after a TTL, and gives groups whose participants were not
loaded yet a bounded number of re-checks.

One GroupResultCache belongs to one sync run; it is never shared between
users and never persisted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from wa_group_sync.sync.group import GroupSyncResult

# Entries older than this are treated as absent
DEFAULT_CACHE_TTL = 300.0  # seconds

# Minimum age of a no_participants entry before it may be re-checked
DEFAULT_RETRY_INTERVAL = 120.0  # seconds

# Re-checks allowed for a group whose participants never load
DEFAULT_MAX_RETRIES = 3

logger = logging.getLogger(__name__)


class GroupStatus(str, Enum):
    """Classification outcome stored per group."""

    ADMIN = "admin"
    MEMBER_ONLY = "member_only"
    NO_PARTICIPANTS = "no_participants"
    NOT_MEMBER = "not_member"


@dataclass
class CacheEntry:
    """
    Cached outcome for one group.

    Attributes:
        status: Classification outcome
        timestamp: Clock reading when the entry was recorded
        retry_count: Re-checks already spent (no_participants only)
        result: Accepted group record when status is ADMIN
    """

    status: GroupStatus
    timestamp: float
    retry_count: int = 0
    result: Optional[GroupSyncResult] = None


class GroupResultCache:
    """
    Time-expiring map of group id to classification outcome.

    Usage:
        cache = GroupResultCache()

        if not cache.has(group_id):
            cache.record(group_id, GroupStatus.ADMIN, result)

        if cache.classification_of(group_id) is GroupStatus.NO_PARTICIPANTS:
            if cache.should_retry(group_id):
                ...  # classify again

        approved = cache.all_approved_groups()
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize an empty cache.

        Args:
            ttl: Seconds after which an entry expires
            retry_interval: Seconds a no_participants entry must age before
                           should_retry() allows a re-check
            max_retries: Re-checks allowed per group per run
            clock: Time source returning seconds (default time.time)
        """
        self.ttl = ttl
        self.retry_interval = retry_interval
        self.max_retries = max_retries
        self._clock = clock or time.time
        self._entries: dict[str, CacheEntry] = {}
        # Survives TTL expiry so the retry bound holds for the whole run
        self._no_participant_checks: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp >= self.ttl

    def has(self, group_id: str) -> bool:
        """
        Check for a live entry.

        An expired entry is removed as a side effect, so the group gets
        reclassified.
        """
        entry = self._entries.get(group_id)
        if entry is None:
            return False

        if self._is_expired(entry):
            logger.debug(f"Cache entry for {group_id} expired ({entry.status.value})")
            del self._entries[group_id]
            return False

        return True

    def classification_of(self, group_id: str) -> Optional[GroupStatus]:
        """Return the cached status, or None when absent or expired."""
        if not self.has(group_id):
            return None
        return self._entries[group_id].status

    def get(self, group_id: str) -> Optional[CacheEntry]:
        """Return the live entry for a group, or None."""
        if not self.has(group_id):
            return None
        return self._entries[group_id]

    def record(
        self,
        group_id: str,
        status: GroupStatus,
        result: GroupSyncResult | None = None,
    ) -> CacheEntry:
        """
        Store the outcome of classifying a group.

        A repeated no_participants outcome spends one retry; any other
        outcome starts a fresh entry with a zero retry count.

        Args:
            group_id: Gateway chat id
            status: Classification outcome
            result: Accepted record, required when status is ADMIN

        Returns:
            The stored entry

        Raises:
            ValueError: If status is ADMIN without a result
        """
        if status is GroupStatus.ADMIN and result is None:
            raise ValueError(f"Admin outcome for {group_id} requires a result")

        retry_count = 0
        if status is GroupStatus.NO_PARTICIPANTS:
            checks = self._no_participant_checks.get(group_id, 0) + 1
            self._no_participant_checks[group_id] = checks
            retry_count = checks - 1

        entry = CacheEntry(
            status=status,
            timestamp=self._clock(),
            retry_count=retry_count,
            result=result if status is GroupStatus.ADMIN else None,
        )
        self._entries[group_id] = entry
        return entry

    def retries_exhausted(self, group_id: str) -> bool:
        """True once a group has used up its no_participants re-checks."""
        return self._no_participant_checks.get(group_id, 0) > self.max_retries

    def should_retry(self, group_id: str) -> bool:
        """
        Decide whether a no_participants group may be classified again.

        True only when the live entry is no_participants, fewer than
        max_retries re-checks were spent, and the entry is at least
        retry_interval old.
        """
        entry = self.get(group_id)
        if entry is None or entry.status is not GroupStatus.NO_PARTICIPANTS:
            return False

        if entry.retry_count >= self.max_retries:
            return False

        return self._clock() - entry.timestamp >= self.retry_interval

    def all_approved_groups(self) -> list[GroupSyncResult]:
        """Return the accepted records of every live admin entry."""
        approved: list[GroupSyncResult] = []
        for group_id in list(self._entries):
            if not self.has(group_id):
                continue
            entry = self._entries[group_id]
            if entry.status is GroupStatus.ADMIN and entry.result is not None:
                approved.append(entry.result)
        return approved

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"GroupResultCache(entries={len(self._entries)}, "
            f"ttl={self.ttl}, retry_interval={self.retry_interval}, "
            f"max_retries={self.max_retries})"
        )
