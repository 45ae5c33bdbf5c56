"""
Sync orchestrator for WhatsApp group discovery.

Wires the pipeline together for one user: loads the profile, resolves the
user's own phone identity, runs the multi-pass scan, asks the
reconciliation guard whether the result may replace the stored group set,
and persists the outcome.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from wa_group_sync.api.gateway_api import GatewayAPI, GatewayAPIError
from wa_group_sync.config.sync_config import SyncConfig
from wa_group_sync.storage.db import SyncDatabase
from wa_group_sync.sync.cache import GroupResultCache
from wa_group_sync.sync.fetcher import FetchOutcome, PaginatedGroupFetcher
from wa_group_sync.sync.group import GroupSyncResult
from wa_group_sync.sync.phone import build_identity
from wa_group_sync.sync.reconcile import ReconcileDecision, ReconciliationGuard
from wa_group_sync.utils.logging import setup_scan_logger

logger = logging.getLogger(__name__)

# Profile connection status required to sync
CONNECTED_STATUS = "connected"

RETRY_LATER_RECOMMENDATION = (
    "The gateway looks rate limited or incomplete right now. "
    "Your stored groups were kept; try syncing again in a few minutes."
)


class SyncStatus(str, Enum):
    """Outcome of one sync run."""

    COMMITTED = "committed"
    REJECTED = "rejected"
    CONFIGURATION_ERROR = "configuration_error"
    IDENTITY_UNAVAILABLE = "identity_unavailable"
    CANCELLED = "cancelled"
    COOLDOWN = "cooldown"


@dataclass
class SyncReport:
    """
    Result of a sync run.

    Every run produces exactly one report; only storage failures raise.
    """

    user_id: str
    status: SyncStatus
    success: bool = False
    dry_run: bool = False
    message: str = ""
    recommendation: Optional[str] = None
    reject_reason: Optional[str] = None
    existing_count: int = 0
    groups: list[GroupSyncResult] = field(default_factory=list)
    api_call_count: int = 0
    groups_scanned: int = 0
    passes_run: int = 0
    had_transient_errors: bool = False
    elapsed_seconds: float = 0.0
    skipped: dict[str, int] = field(default_factory=dict)

    @property
    def groups_count(self) -> int:
        return len(self.groups)

    @property
    def creator_count(self) -> int:
        return sum(1 for g in self.groups if g.is_creator)

    @property
    def admin_count(self) -> int:
        """Groups where the user is admin but not creator."""
        return sum(1 for g in self.groups if g.is_admin and not g.is_creator)

    @property
    def total_members(self) -> int:
        return sum(g.participants_count for g in self.groups)

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing payload."""
        return {
            "user_id": self.user_id,
            "success": self.success,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "groups_count": self.groups_count,
            "creator_count": self.creator_count,
            "admin_count": self.admin_count,
            "total_members": self.total_members,
            "api_call_count": self.api_call_count,
            "groups_scanned": self.groups_scanned,
            "passes_run": self.passes_run,
            "had_transient_errors": self.had_transient_errors,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "message": self.message,
            "recommendation": self.recommendation,
            "reject_reason": self.reject_reason,
            "existing_count": self.existing_count,
            "skipped": dict(self.skipped),
            "groups": [
                {
                    "group_id": g.group_id,
                    "name": g.name,
                    "participants_count": g.participants_count,
                    "role": g.role,
                }
                for g in self.groups
            ],
        }

    def summary(self) -> str:
        """
        Generate a human-readable summary of the sync run.

        Returns:
            Formatted multi-line string
        """
        lines = [
            f"Sync {self.status.value}" + (" (dry run)" if self.dry_run else ""),
            f"  {self.message}",
        ]

        if self.status in (SyncStatus.COMMITTED, SyncStatus.REJECTED):
            lines.extend(
                [
                    "",
                    f"  Groups found:     {self.groups_count} "
                    f"({self.creator_count} creator, {self.admin_count} admin)",
                    f"  Total members:    {self.total_members}",
                    f"  Groups scanned:   {self.groups_scanned}",
                    f"  API calls:        {self.api_call_count}",
                    f"  Passes:           {self.passes_run}",
                    f"  Elapsed:          {self.elapsed_seconds:.1f}s",
                ]
            )

        if self.skipped:
            lines.append("")
            lines.append("Skipped groups:")
            for reason, count in sorted(self.skipped.items()):
                lines.append(f"  {reason}: {count}")

        if self.recommendation:
            lines.append("")
            lines.append(self.recommendation)

        return "\n".join(lines)


class SyncOrchestrator:
    """
    Runs the group sync for one user at a time.

    Concurrent syncs of the same user are not guarded; callers serialize
    them (the cooldown makes back-to-back runs fail fast).

    Usage:
        db = SyncDatabase('/path/to/groups.db')
        db.initialize()

        orchestrator = SyncOrchestrator(db, config=load_config())
        report = orchestrator.sync_user("user-123")
        print(report.summary())
    """

    def __init__(
        self,
        database: SyncDatabase,
        config: Optional[SyncConfig] = None,
        api_factory: Optional[Callable[[str], GatewayAPI]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            database: SyncDatabase holding profiles and groups
            config: Sync settings (defaults if None)
            api_factory: Builds a gateway client from a channel token
            sleep: Sleep function for scan delays (default time.sleep)
            clock: Time source in epoch seconds (default time.time)
        """
        self.database = database
        self.config = config or SyncConfig()
        self.api_factory = api_factory or self._default_api_factory
        self._sleep = sleep or time.sleep
        self._clock = clock or time.time
        self.guard = ReconciliationGuard(threshold=self.config.protection_threshold)

    def _default_api_factory(self, token: str) -> GatewayAPI:
        return GatewayAPI(
            token,
            base_url=self.config.gateway_base_url,
            timeout=self.config.gateway_timeout,
            max_retries=self.config.api_max_retries,
            initial_retry_delay=self.config.api_initial_retry_delay,
            max_retry_delay=self.config.api_max_retry_delay,
            sleep=self._sleep,
        )

    def _report(
        self, user_id: str, status: SyncStatus, started: float, **kwargs: Any
    ) -> SyncReport:
        report = SyncReport(user_id=user_id, status=status, **kwargs)
        report.elapsed_seconds = max(self._clock() - started, 0.0)
        return report

    def _record_state(self, report: SyncReport, started: float) -> None:
        if report.dry_run:
            return
        stored = (
            report.groups_count
            if report.status is SyncStatus.COMMITTED
            else report.existing_count
        )
        self.database.update_sync_state(
            report.user_id,
            last_sync_at=started,
            status=report.status.value,
            groups_count=stored,
            api_calls=report.api_call_count,
            message=report.message,
        )

    def _cooldown_remaining(self, user_id: str, now: float) -> float:
        cooldown = self.config.sync_cooldown_seconds
        if cooldown <= 0:
            return 0.0
        state = self.database.get_sync_state(user_id)
        if not state or state.get("last_sync_at") is None:
            return 0.0
        return max(cooldown - (now - state["last_sync_at"]), 0.0)

    def _resolve_phone(
        self, user_id: str, profile: dict[str, Any], api: GatewayAPI, dry_run: bool
    ) -> Optional[str]:
        """Stored phone number, or the gateway's self identity (persisted)."""
        phone = profile.get("phone_number")
        if phone:
            return phone

        try:
            phone = api.get_self_phone()
        except GatewayAPIError as e:
            logger.warning(f"Self identity lookup failed for {user_id}: {e}")
            return None

        if not phone:
            return None

        if dry_run:
            logger.info(f"Resolved phone for {user_id} (not stored in dry run)")
        else:
            self.database.update_profile_phone(user_id, phone)
            logger.info(f"Stored resolved phone number for {user_id}")
        return phone

    def sync_user(
        self,
        user_id: str,
        dry_run: bool = False,
        force: bool = False,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SyncReport:
        """
        Discover the groups a user administers and store them.

        Args:
            user_id: Profile to sync
            dry_run: Scan and decide without writing groups or the phone number
            force: Ignore the sync cooldown
            should_cancel: Polled between passes and paginated calls

        Returns:
            SyncReport describing exactly one outcome

        Raises:
            StorageError: If the database cannot be read or written
        """
        started = self._clock()
        logger.info(f"Starting group sync for {user_id} (dry_run={dry_run})")

        profile = self.database.get_profile(user_id)
        if profile is None:
            return self._report(
                user_id,
                SyncStatus.CONFIGURATION_ERROR,
                started,
                dry_run=dry_run,
                message=f"No profile found for user {user_id}",
            )

        token = profile.get("gateway_token")
        if not token:
            return self._report(
                user_id,
                SyncStatus.CONFIGURATION_ERROR,
                started,
                dry_run=dry_run,
                message="No gateway token configured; connect the channel first",
            )

        connection_status = profile.get("connection_status")
        if connection_status != CONNECTED_STATUS:
            return self._report(
                user_id,
                SyncStatus.CONFIGURATION_ERROR,
                started,
                dry_run=dry_run,
                message=(
                    f"Channel is not connected (status: {connection_status}); "
                    "reconnect it before syncing"
                ),
            )

        if not force:
            remaining = self._cooldown_remaining(user_id, started)
            if remaining > 0:
                return self._report(
                    user_id,
                    SyncStatus.COOLDOWN,
                    started,
                    dry_run=dry_run,
                    message=(
                        f"A sync ran recently; wait {remaining:.0f}s or use --force"
                    ),
                )

        api = self.api_factory(token)
        existing_count = self.database.count_user_groups(user_id)

        phone = self._resolve_phone(user_id, profile, api, dry_run)
        identity = build_identity(phone, self.config.country_code)
        if not identity.canonical:
            report = self._report(
                user_id,
                SyncStatus.IDENTITY_UNAVAILABLE,
                started,
                dry_run=dry_run,
                existing_count=existing_count,
                message=(
                    "Could not determine the phone number of the connected account"
                ),
                recommendation="Check the channel connection, or set the phone "
                "number on the profile.",
            )
            self._record_state(report, started)
            return report

        if self.config.scan_log_enabled:
            setup_scan_logger().info(
                f"Sync for {user_id}, phone {identity.canonical}, "
                f"{existing_count} groups stored, dry_run={dry_run}"
            )

        cache = GroupResultCache(
            ttl=self.config.cache_ttl_seconds,
            retry_interval=self.config.cache_retry_interval_seconds,
            max_retries=self.config.cache_max_retries,
            clock=self._clock,
        )
        fetcher = PaginatedGroupFetcher(
            api=api,
            identity=identity,
            user_id=user_id,
            cache=cache,
            fetch_details=self.config.fetch_group_details,
            detail_delay=self.config.detail_delay_seconds,
            max_delay=self.config.max_delay_seconds,
            rate_limit_backoff=self.config.rate_limit_backoff_seconds,
            backoff_increment=self.config.backoff_increment_seconds,
            network_backoff=self.config.network_backoff_seconds,
            sleep=self._sleep,
            should_cancel=should_cancel,
        )
        outcome = fetcher.run_passes(self.config.passes)

        if outcome.cancelled:
            report = self._scan_report(
                user_id, SyncStatus.CANCELLED, started, outcome, dry_run, existing_count
            )
            report.groups = []
            report.message = "Sync cancelled; stored groups unchanged"
            self._record_state(report, started)
            return report

        decision = self.guard.decide(
            existing_count=existing_count,
            new_count=len(outcome.groups),
            had_transient_errors=outcome.had_transient_errors,
        )

        if decision.should_commit:
            if not dry_run:
                self.database.replace_user_groups(user_id, outcome.groups)
            report = self._scan_report(
                user_id, SyncStatus.COMMITTED, started, outcome, dry_run, existing_count
            )
            report.success = True
        else:
            report = self._scan_report(
                user_id, SyncStatus.REJECTED, started, outcome, dry_run, existing_count
            )
            report.reject_reason = decision.reason.value if decision.reason else None
            report.recommendation = RETRY_LATER_RECOMMENDATION

        report.message = self._decision_message(decision, dry_run)
        self._record_state(report, started)

        logger.info(
            f"Sync for {user_id} {report.status.value}: "
            f"{report.groups_count} groups, {report.api_call_count} API calls, "
            f"{report.elapsed_seconds:.1f}s"
        )
        return report

    def _scan_report(
        self,
        user_id: str,
        status: SyncStatus,
        started: float,
        outcome: FetchOutcome,
        dry_run: bool,
        existing_count: int,
    ) -> SyncReport:
        return self._report(
            user_id,
            status,
            started,
            dry_run=dry_run,
            existing_count=existing_count,
            groups=list(outcome.groups),
            api_call_count=outcome.api_call_count,
            groups_scanned=outcome.groups_scanned,
            passes_run=len(outcome.passes),
            had_transient_errors=outcome.had_transient_errors,
            skipped=dict(outcome.skipped),
        )

    @staticmethod
    def _decision_message(decision: ReconcileDecision, dry_run: bool) -> str:
        message = decision.describe()
        if dry_run and decision.should_commit:
            return f"{message} (dry run, nothing written)"
        return message


def trigger_sync(
    user_id: str,
    database: SyncDatabase,
    config: Optional[SyncConfig] = None,
    dry_run: bool = False,
    force: bool = False,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> SyncReport:
    """
    Run one sync for a user with a default orchestrator.

    Convenience entry point for callers that don't need to inject a gateway
    client, sleep or clock.
    """
    orchestrator = SyncOrchestrator(database, config=config)
    return orchestrator.sync_user(
        user_id, dry_run=dry_run, force=force, should_cancel=should_cancel
    )
