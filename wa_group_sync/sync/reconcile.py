"""
Commit-or-reject decision for a finished scan.

A scan that comes back with far fewer groups than are already stored is
more likely a throttled or broken listing than a user who suddenly lost
admin rights everywhere. ReconciliationGuard keeps the stored set in that
case instead of letting a bad scan wipe it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Fraction of the stored count below which a new result is suspicious
DEFAULT_PROTECTION_THRESHOLD = 0.5

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    COMMIT = "commit"
    REJECT = "reject"


class RejectReason(str, Enum):
    """Why a scan result was not committed."""

    TRANSIENT_ERRORS_NO_RESULTS = "transient_errors_no_results"
    SUSPICIOUS_DROP = "suspicious_drop"


@dataclass(frozen=True)
class ReconcileDecision:
    """Outcome of ReconciliationGuard.decide()."""

    action: ReconcileAction
    existing_count: int
    new_count: int
    reason: Optional[RejectReason] = None

    @property
    def should_commit(self) -> bool:
        return self.action is ReconcileAction.COMMIT

    def describe(self) -> str:
        """Human-readable explanation for reports and logs."""
        if self.should_commit:
            return (
                f"Committing {self.new_count} groups "
                f"(previously {self.existing_count})"
            )
        if self.reason is RejectReason.TRANSIENT_ERRORS_NO_RESULTS:
            return (
                f"Scan hit gateway errors and found no groups; keeping "
                f"{self.existing_count} stored groups"
            )
        return (
            f"Scan found {self.new_count} groups, far fewer than the "
            f"{self.existing_count} stored; keeping stored groups"
        )


class ReconciliationGuard:
    """
    Decides whether a scan result may replace the stored group set.

    Rules, in order:
        1. Transient errors and zero groups found: reject
        2. Groups stored and new count below threshold * stored: reject
        3. Otherwise: commit

    Usage:
        guard = ReconciliationGuard()
        decision = guard.decide(existing_count=100, new_count=80)
        if decision.should_commit:
            db.replace_user_groups(user_id, groups)
    """

    def __init__(self, threshold: float = DEFAULT_PROTECTION_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold

    def decide(
        self,
        existing_count: int,
        new_count: int,
        had_transient_errors: bool = False,
    ) -> ReconcileDecision:
        """
        Compare a scan result with the stored state.

        Args:
            existing_count: Groups currently stored for the user
            new_count: Groups the scan accepted
            had_transient_errors: The scan ended a pass because of errors

        Returns:
            ReconcileDecision with the action and the reject reason if any
        """
        if new_count == 0 and had_transient_errors:
            logger.warning(
                f"Rejecting empty scan after gateway errors "
                f"({existing_count} groups stored)"
            )
            return ReconcileDecision(
                action=ReconcileAction.REJECT,
                existing_count=existing_count,
                new_count=new_count,
                reason=RejectReason.TRANSIENT_ERRORS_NO_RESULTS,
            )

        if existing_count > 0 and new_count < existing_count * self.threshold:
            logger.warning(
                f"Rejecting suspicious drop from {existing_count} "
                f"to {new_count} groups"
            )
            return ReconcileDecision(
                action=ReconcileAction.REJECT,
                existing_count=existing_count,
                new_count=new_count,
                reason=RejectReason.SUSPICIOUS_DROP,
            )

        return ReconcileDecision(
            action=ReconcileAction.COMMIT,
            existing_count=existing_count,
            new_count=new_count,
        )
