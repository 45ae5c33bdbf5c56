"""
Multi-pass paginated group discovery.

Drives the gateway's "list groups" endpoint page by page across a
configurable plan of passes, classifying every group as soon as its page
arrives. Each pass has its own batch size, spacing delay, call budget and
startup delay; later passes use bigger pages and longer delays to coax out
groups that a rate-limited gateway dropped the first time round.

Transient gateway failures never escape run_passes(): they are retried
within the pass's call budget and otherwise reported through
FetchOutcome.had_transient_errors.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from wa_group_sync.api.gateway_api import (
    GatewayAPI,
    GatewayAPIError,
    GatewayNetworkError,
)
from wa_group_sync.sync.cache import GroupResultCache, GroupStatus
from wa_group_sync.sync.classifier import (
    ClassificationResult,
    GroupRoleClassifier,
    SkipReason,
)
from wa_group_sync.sync.group import GroupSyncResult, group_display_name
from wa_group_sync.sync.phone import PhoneIdentity
from wa_group_sync.utils.logging import get_scan_logger

# Upper bound for the spacing delay between list calls
DEFAULT_MAX_DELAY = 6.0  # seconds

# Backoff after 429/5xx: base + call_index * increment
DEFAULT_RATE_LIMIT_BACKOFF = 8.0  # seconds
DEFAULT_BACKOFF_INCREMENT = 1.0  # seconds per call already made

# Fixed backoff after connection errors and timeouts
DEFAULT_NETWORK_BACKOFF = 10.0  # seconds

# Spacing before each single-group detail fetch
DEFAULT_DETAIL_DELAY = 1.2  # seconds

# Consecutive empty pages that end a pass
MAX_CONSECUTIVE_EMPTY_PAGES = 2

SKIP_TO_STATUS = {
    SkipReason.NO_PARTICIPANTS_LOADED: GroupStatus.NO_PARTICIPANTS,
    SkipReason.NOT_MEMBER: GroupStatus.NOT_MEMBER,
    SkipReason.MEMBER_ONLY: GroupStatus.MEMBER_ONLY,
}

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Why a pass stopped paging."""

    SHORT_PAGE = "short_page"
    EMPTY_PAGES = "empty_pages"
    CALL_BUDGET = "call_budget"
    NON_RETRYABLE_ERROR = "non_retryable_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PassConfig:
    """
    One pass of the discovery plan.

    Attributes:
        batch_size: Groups requested per call
        delay_seconds: Spacing before each call after the first in the pass
        max_calls: List calls allowed in this pass, retries included
        startup_delay_seconds: Wait before the pass starts (ignored for
                               the first pass)
        delay_increment: Added to the spacing for every call already made
    """

    batch_size: int
    delay_seconds: float
    max_calls: int
    startup_delay_seconds: float = 0.0
    delay_increment: float = 0.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_calls < 1:
            raise ValueError(f"max_calls must be >= 1, got {self.max_calls}")
        if self.delay_seconds < 0 or self.startup_delay_seconds < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PassConfig:
        return cls(
            batch_size=int(data["batch_size"]),
            delay_seconds=float(data.get("delay_seconds", 0.0)),
            max_calls=int(data["max_calls"]),
            startup_delay_seconds=float(data.get("startup_delay_seconds", 0.0)),
            delay_increment=float(data.get("delay_increment", 0.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "delay_seconds": self.delay_seconds,
            "max_calls": self.max_calls,
            "startup_delay_seconds": self.startup_delay_seconds,
            "delay_increment": self.delay_increment,
        }


# Reference four-pass plan: growing pages, growing spacing
DEFAULT_PASS_PLAN: tuple[PassConfig, ...] = (
    PassConfig(batch_size=50, delay_seconds=2.2, max_calls=12, delay_increment=0.1),
    PassConfig(
        batch_size=100,
        delay_seconds=3.0,
        max_calls=8,
        startup_delay_seconds=5.0,
        delay_increment=0.1,
    ),
    PassConfig(
        batch_size=150,
        delay_seconds=3.8,
        max_calls=6,
        startup_delay_seconds=10.0,
        delay_increment=0.1,
    ),
    PassConfig(
        batch_size=200,
        delay_seconds=4.6,
        max_calls=5,
        startup_delay_seconds=15.0,
        delay_increment=0.1,
    ),
)


@dataclass
class PassStats:
    """Counters for one executed pass."""

    pass_number: int
    api_calls: int = 0
    groups_received: int = 0
    new_admin_groups: int = 0
    stop_reason: StopReason = StopReason.CALL_BUDGET
    had_errors: bool = False


@dataclass
class FetchOutcome:
    """
    Aggregate result of run_passes().

    Attributes:
        groups: Accepted groups, in discovery order, one per group id
        api_call_count: Gateway calls made (list + detail)
        groups_scanned: Distinct group ids seen
        had_transient_errors: A pass ended because of gateway errors
        cancelled: Scanning stopped on request
        passes: Per-pass counters
        errors: Error messages collected along the way
        skipped: Count of skipped groups per skip reason
    """

    groups: list[GroupSyncResult] = field(default_factory=list)
    api_call_count: int = 0
    groups_scanned: int = 0
    had_transient_errors: bool = False
    cancelled: bool = False
    passes: list[PassStats] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: dict[str, int] = field(default_factory=dict)


class PaginatedGroupFetcher:
    """
    Runs the pass plan for one user against the gateway.

    Usage:
        fetcher = PaginatedGroupFetcher(
            api=GatewayAPI(token),
            identity=build_identity(phone),
            user_id="user-123",
            cache=GroupResultCache(),
        )
        outcome = fetcher.run_passes(DEFAULT_PASS_PLAN)
    """

    def __init__(
        self,
        api: GatewayAPI,
        identity: PhoneIdentity,
        user_id: str,
        cache: Optional[GroupResultCache] = None,
        classifier: Optional[GroupRoleClassifier] = None,
        fetch_details: bool = True,
        detail_delay: float = DEFAULT_DETAIL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        rate_limit_backoff: float = DEFAULT_RATE_LIMIT_BACKOFF,
        backoff_increment: float = DEFAULT_BACKOFF_INCREMENT,
        network_backoff: float = DEFAULT_NETWORK_BACKOFF,
        sleep: Optional[Callable[[float], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            api: Gateway client scoped to the user's channel token
            identity: The user's phone identity
            user_id: Owner of the run (logging)
            cache: Run-scoped result cache (a fresh one if None)
            classifier: Group classifier (default GroupRoleClassifier())
            fetch_details: Fetch GET /groups/{id} when a listed group has
                          no participants
            detail_delay: Spacing before each detail fetch
            max_delay: Cap for the spacing between list calls
            rate_limit_backoff: Base wait after a 429/5xx
            backoff_increment: Extra wait per call already made in the pass
            network_backoff: Fixed wait after a network failure
            sleep: Sleep function (default time.sleep)
            should_cancel: Polled before each pass and each list call
        """
        self.api = api
        self.identity = identity
        self.user_id = user_id
        self.cache = cache if cache is not None else GroupResultCache()
        self.classifier = classifier or GroupRoleClassifier()
        self.fetch_details = fetch_details
        self.detail_delay = detail_delay
        self.max_delay = max_delay
        self.rate_limit_backoff = rate_limit_backoff
        self.backoff_increment = backoff_increment
        self.network_backoff = network_backoff
        self._sleep = sleep or time.sleep
        self._should_cancel = should_cancel or (lambda: False)
        self._scan_logger = get_scan_logger()

        self._found: dict[str, GroupSyncResult] = {}
        self._seen: set[str] = set()

    # =========================================================================
    # Passes
    # =========================================================================

    def run_passes(self, pass_configs: Sequence[PassConfig]) -> FetchOutcome:
        """
        Execute the pass plan in order.

        Stops early when a pass finds no new admin group while at least
        one group has already been found, or when cancellation is requested.

        Args:
            pass_configs: Ordered pass plan

        Returns:
            FetchOutcome with every accepted group and run counters
        """
        outcome = FetchOutcome()
        self._found = {}
        self._seen = set()

        for index, config in enumerate(pass_configs):
            pass_number = index + 1

            if self._should_cancel():
                logger.info(f"Scan cancelled before pass {pass_number}")
                outcome.cancelled = True
                break

            if pass_number > 1 and config.startup_delay_seconds > 0:
                logger.debug(
                    f"Waiting {config.startup_delay_seconds:.1f}s "
                    f"before pass {pass_number}"
                )
                self._sleep(config.startup_delay_seconds)

            stats = self._run_pass(pass_number, config, outcome)
            outcome.passes.append(stats)

            logger.info(
                f"Pass {pass_number}: {stats.api_calls} calls, "
                f"{stats.groups_received} groups received, "
                f"{stats.new_admin_groups} new admin groups "
                f"(stopped: {stats.stop_reason.value})"
            )

            if stats.had_errors:
                outcome.had_transient_errors = True

            if stats.stop_reason is StopReason.CANCELLED:
                outcome.cancelled = True
                break

            if stats.new_admin_groups == 0 and self._found:
                logger.info(
                    f"Pass {pass_number} found nothing new, "
                    f"stopping with {len(self._found)} groups"
                )
                break

        for result in self.cache.all_approved_groups():
            self._found.setdefault(result.group_id, result)

        outcome.groups = list(self._found.values())
        outcome.groups_scanned = len(self._seen)
        return outcome

    def _spacing_delay(self, config: PassConfig, calls_made: int) -> float:
        """Delay before the next list call of a pass (0 before its first)."""
        if calls_made == 0:
            return 0.0
        delay = config.delay_seconds + config.delay_increment * (calls_made - 1)
        return min(delay, max(self.max_delay, config.delay_seconds))

    def _run_pass(
        self, pass_number: int, config: PassConfig, outcome: FetchOutcome
    ) -> PassStats:
        """Page through the group list once under one pass configuration."""
        stats = PassStats(pass_number=pass_number)
        offset = 0
        consecutive_empty = 0
        last_call_failed = False
        skip_spacing = False

        while stats.api_calls < config.max_calls:
            if self._should_cancel():
                stats.stop_reason = StopReason.CANCELLED
                return stats

            delay = self._spacing_delay(config, stats.api_calls)
            if delay > 0 and not skip_spacing:
                self._sleep(delay)
            skip_spacing = False

            stats.api_calls += 1
            outcome.api_call_count += 1

            try:
                page = self.api.list_groups(count=config.batch_size, offset=offset)
            except GatewayAPIError as e:
                last_call_failed = True
                outcome.errors.append(f"pass {pass_number} offset {offset}: {e}")

                if not e.retryable:
                    logger.error(
                        f"Non-retryable gateway error in pass {pass_number}: {e}"
                    )
                    stats.stop_reason = StopReason.NON_RETRYABLE_ERROR
                    stats.had_errors = True
                    return stats

                if isinstance(e, GatewayNetworkError):
                    backoff = self.network_backoff
                else:
                    backoff = (
                        self.rate_limit_backoff
                        + stats.api_calls * self.backoff_increment
                    )

                logger.warning(
                    f"Gateway error in pass {pass_number} "
                    f"({e.status_code or 'network'}), "
                    f"retrying offset {offset} in {backoff:.1f}s"
                )
                if stats.api_calls < config.max_calls:
                    self._sleep(backoff)
                    skip_spacing = True
                continue

            last_call_failed = False

            if not page:
                consecutive_empty += 1
                if consecutive_empty >= MAX_CONSECUTIVE_EMPTY_PAGES:
                    stats.stop_reason = StopReason.EMPTY_PAGES
                    return stats
                logger.debug(f"Empty page at offset {offset}, retrying once")
                continue

            consecutive_empty = 0
            stats.groups_received += len(page)

            for group_data in page:
                if self._process_group(group_data, outcome):
                    stats.new_admin_groups += 1

            if len(page) < config.batch_size:
                stats.stop_reason = StopReason.SHORT_PAGE
                return stats

            offset += config.batch_size

        stats.stop_reason = StopReason.CALL_BUDGET
        if last_call_failed:
            # Budget spent on failing calls: the listing is incomplete
            stats.had_errors = True
        return stats

    # =========================================================================
    # Per-group handling
    # =========================================================================

    def _needs_classification(self, group_id: str) -> bool:
        """Consult the cache: True when the group must be classified now."""
        status = self.cache.classification_of(group_id)

        if status is None:
            return not self.cache.retries_exhausted(group_id)

        if status is GroupStatus.ADMIN:
            entry = self.cache.get(group_id)
            if entry is not None and entry.result is not None:
                self._found.setdefault(group_id, entry.result)
            return False

        if status is GroupStatus.NO_PARTICIPANTS:
            return self.cache.should_retry(group_id)

        return False

    def _process_group(self, group_data: dict[str, Any], outcome: FetchOutcome) -> bool:
        """
        Classify one listed group, consulting the cache first.

        Returns:
            True if the group is a newly found admin group
        """
        group_id = group_data.get("id")
        if not group_id:
            logger.debug("Skipping group record without id")
            return False

        group_id = str(group_id)
        self._seen.add(group_id)

        if group_id in self._found:
            return False

        if not self._needs_classification(group_id):
            return False

        classification = self.classifier.classify(
            group_data, self.identity, self.user_id
        )

        if (
            classification.skip_reason is SkipReason.NO_PARTICIPANTS_LOADED
            and self.fetch_details
        ):
            detail = self._fetch_detail(group_id, outcome)
            if detail is not None:
                classification = self.classifier.classify(
                    {**group_data, **detail}, self.identity, self.user_id
                )

        return self._record(group_id, group_data, classification, outcome)

    def _fetch_detail(
        self, group_id: str, outcome: FetchOutcome
    ) -> Optional[dict[str, Any]]:
        """Fetch a single group's detail record; None on failure."""
        if self.detail_delay > 0:
            self._sleep(self.detail_delay)

        outcome.api_call_count += 1
        try:
            return self.api.get_group(group_id)
        except GatewayAPIError as e:
            logger.warning(f"Could not fetch detail for group {group_id}: {e}")
            outcome.errors.append(f"detail {group_id}: {e}")
            return None

    def _record(
        self,
        group_id: str,
        group_data: dict[str, Any],
        classification: ClassificationResult,
        outcome: FetchOutcome,
    ) -> bool:
        name = group_display_name(group_data)

        if classification.is_admin_group and classification.result is not None:
            result = classification.result
            self.cache.record(group_id, GroupStatus.ADMIN, result)
            self._found[group_id] = result
            self._scan_logger.info(f"ACCEPT {result.role:<7} {group_id} {name!r}")
            return True

        reason = classification.skip_reason or SkipReason.NOT_MEMBER
        entry = self.cache.record(group_id, SKIP_TO_STATUS[reason])
        outcome.skipped[reason.value] = outcome.skipped.get(reason.value, 0) + 1
        self._scan_logger.info(
            f"SKIP   {reason.value:<22} {group_id} {name!r}"
            + (
                f" (check {entry.retry_count + 1})"
                if reason is SkipReason.NO_PARTICIPANTS_LOADED
                else ""
            )
        )
        return False
