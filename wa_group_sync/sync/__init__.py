"""
wa_group_sync.sync - Group discovery and classification

Phone identity matching, role classification, the run-scoped result cache,
the multi-pass fetcher and the reconciliation guard. The orchestrator lives
in wa_group_sync.sync.engine.
"""

from wa_group_sync.sync.cache import GroupResultCache, GroupStatus
from wa_group_sync.sync.classifier import (
    ClassificationResult,
    GroupRoleClassifier,
    SkipReason,
)
from wa_group_sync.sync.fetcher import (
    DEFAULT_PASS_PLAN,
    FetchOutcome,
    PaginatedGroupFetcher,
    PassConfig,
)
from wa_group_sync.sync.group import GroupSyncResult
from wa_group_sync.sync.phone import PhoneIdentity, build_identity, is_match
from wa_group_sync.sync.reconcile import (
    DEFAULT_PROTECTION_THRESHOLD,
    ReconcileAction,
    ReconcileDecision,
    ReconciliationGuard,
    RejectReason,
)

__all__ = [
    "DEFAULT_PASS_PLAN",
    "DEFAULT_PROTECTION_THRESHOLD",
    "ClassificationResult",
    "FetchOutcome",
    "GroupResultCache",
    "GroupRoleClassifier",
    "GroupStatus",
    "GroupSyncResult",
    "PaginatedGroupFetcher",
    "PassConfig",
    "PhoneIdentity",
    "ReconcileAction",
    "ReconcileDecision",
    "ReconciliationGuard",
    "RejectReason",
    "SkipReason",
    "build_identity",
    "is_match",
]
