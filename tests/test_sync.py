"""
Tests for the sync orchestrator.

The gateway is replaced by a MagicMock handed out by api_factory; the
database is an in-memory SyncDatabase and time comes from FakeClock.
"""

from unittest.mock import MagicMock, patch

import pytest
from conftest import USER_PHONE, make_group

from wa_group_sync.api.gateway_api import GatewayAPIError
from wa_group_sync.config.sync_config import SyncConfig
from wa_group_sync.sync.engine import (
    RETRY_LATER_RECOMMENDATION,
    SyncOrchestrator,
    SyncReport,
    SyncStatus,
    trigger_sync,
)
from wa_group_sync.sync.fetcher import PassConfig
from wa_group_sync.sync.group import GroupSyncResult

USER = "alice"


def _stored_groups(count):
    return [GroupSyncResult(group_id=f"old{i}", name=f"Old {i}") for i in range(count)]


def _scan_page():
    """12 groups: 1 creator, 8 admin, 2 member-only, 1 without the user."""
    page = [make_group("c0", rank="creator")]
    page += [make_group(f"a{i}", rank="admin") for i in range(8)]
    page += [make_group(f"m{i}", rank="member") for i in range(2)]
    page.append(make_group("x0", member=False))
    return page


@pytest.fixture
def config():
    return SyncConfig(
        passes=[PassConfig(batch_size=50, delay_seconds=0.0, max_calls=3)],
        fetch_group_details=False,
        scan_log_enabled=False,
    )


@pytest.fixture
def api():
    gateway = MagicMock()
    gateway.get_self_phone.return_value = USER_PHONE
    gateway.list_groups.return_value = _scan_page()
    return gateway


@pytest.fixture
def profile(db):
    db.upsert_profile(
        USER,
        gateway_token="tok-123",
        connection_status="connected",
        phone_number="0501234567",
    )
    return db


@pytest.fixture
def orchestrator(db, config, api, clock):
    return SyncOrchestrator(
        db,
        config=config,
        api_factory=lambda token: api,
        sleep=MagicMock(),
        clock=clock,
    )


class TestCommit:
    """Scans that replace the stored group set."""

    def test_end_to_end(self, orchestrator, profile, db):
        db.replace_user_groups(USER, _stored_groups(10))

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.COMMITTED
        assert report.success
        assert report.existing_count == 10
        assert report.groups_count == 9
        assert report.creator_count == 1
        assert report.admin_count == 8
        assert report.skipped == {"member_only": 2, "not_member": 1}
        assert report.groups_scanned == 12
        assert report.api_call_count == 1

        stored = {g.group_id for g in db.get_user_groups(USER)}
        assert stored == {"c0"} | {f"a{i}" for i in range(8)}

    def test_sync_state_recorded(self, orchestrator, profile, db, clock):
        orchestrator.sync_user(USER)

        state = db.get_sync_state(USER)
        assert state["last_status"] == "committed"
        assert state["last_groups_count"] == 9
        assert state["last_api_calls"] == 1
        assert state["last_sync_at"] == clock.now

    def test_first_sync_with_nothing_found(self, orchestrator, profile, db, api):
        api.list_groups.return_value = []

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.COMMITTED
        assert report.groups_count == 0
        assert db.count_user_groups(USER) == 0

    def test_each_run_classifies_from_scratch(self, orchestrator, profile, db, api):
        orchestrator.sync_user(USER)
        demoted = _scan_page()
        demoted[1] = make_group("a0", rank="member")
        api.list_groups.return_value = demoted

        report = orchestrator.sync_user(USER, force=True)

        assert report.status is SyncStatus.COMMITTED
        assert report.groups_count == 8
        assert "a0" not in {g.group_id for g in db.get_user_groups(USER)}

    def test_token_passed_to_factory(self, db, config, api, profile, clock):
        factory = MagicMock(return_value=api)
        orchestrator = SyncOrchestrator(
            db, config=config, api_factory=factory, sleep=MagicMock(), clock=clock
        )

        orchestrator.sync_user(USER)

        factory.assert_called_once_with("tok-123")


class TestReject:
    """Scans the guard refuses to commit."""

    def test_suspicious_drop_keeps_stored_groups(self, orchestrator, profile, db, api):
        db.replace_user_groups(USER, _stored_groups(10))
        api.list_groups.return_value = [make_group("a0", rank="admin")]

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.REJECTED
        assert not report.success
        assert report.reject_reason == "suspicious_drop"
        assert report.recommendation == RETRY_LATER_RECOMMENDATION
        assert report.groups_count == 1
        assert db.count_user_groups(USER) == 10
        assert db.get_sync_state(USER)["last_groups_count"] == 10

    def test_errors_with_empty_result(self, orchestrator, profile, db, api):
        db.replace_user_groups(USER, _stored_groups(5))
        api.list_groups.side_effect = GatewayAPIError("unauthorized", 401)

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.REJECTED
        assert report.reject_reason == "transient_errors_no_results"
        assert report.had_transient_errors
        assert db.count_user_groups(USER) == 5

    def test_first_sync_with_failing_listing(self, orchestrator, profile, db, api):
        api.list_groups.side_effect = GatewayAPIError("unauthorized", 401)

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.REJECTED
        assert not report.success
        assert report.reject_reason == "transient_errors_no_results"
        assert report.existing_count == 0
        assert report.recommendation == RETRY_LATER_RECOMMENDATION
        assert db.count_user_groups(USER) == 0
        assert db.get_sync_state(USER)["last_status"] == "rejected"

    def test_custom_threshold(self, db, api, profile, clock):
        config = SyncConfig(
            passes=[PassConfig(batch_size=50, delay_seconds=0.0, max_calls=1)],
            protection_threshold=1.0,
            scan_log_enabled=False,
        )
        orchestrator = SyncOrchestrator(
            db, config=config, api_factory=lambda t: api, clock=clock
        )
        db.replace_user_groups(USER, _stored_groups(10))

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.REJECTED


class TestConfigurationErrors:
    """Runs that stop before any gateway call."""

    def test_unknown_user(self, orchestrator, db, api):
        report = orchestrator.sync_user("nobody")

        assert report.status is SyncStatus.CONFIGURATION_ERROR
        assert "No profile" in report.message
        assert db.get_sync_state("nobody") is None
        api.list_groups.assert_not_called()

    def test_missing_token(self, orchestrator, db, api):
        db.upsert_profile(USER, connection_status="connected")

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.CONFIGURATION_ERROR
        assert "token" in report.message
        api.list_groups.assert_not_called()

    def test_disconnected_channel(self, orchestrator, db, api):
        db.upsert_profile(USER, gateway_token="tok-123")

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.CONFIGURATION_ERROR
        assert "disconnected" in report.message
        assert db.get_sync_state(USER) is None


class TestCooldown:
    """Minimum spacing between syncs of one user."""

    def test_second_sync_within_cooldown(self, orchestrator, profile, api):
        orchestrator.sync_user(USER)

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.COOLDOWN
        assert "--force" in report.message
        assert api.list_groups.call_count == 1

    def test_force_bypasses_cooldown(self, orchestrator, profile, api):
        orchestrator.sync_user(USER)

        report = orchestrator.sync_user(USER, force=True)

        assert report.status is SyncStatus.COMMITTED
        assert api.list_groups.call_count == 2

    def test_cooldown_expires(self, orchestrator, profile, clock):
        orchestrator.sync_user(USER)
        clock.advance(61)

        assert orchestrator.sync_user(USER).status is SyncStatus.COMMITTED

    def test_cooldown_report_does_not_touch_state(self, orchestrator, profile, db):
        orchestrator.sync_user(USER)
        before = db.get_sync_state(USER)

        orchestrator.sync_user(USER)

        assert db.get_sync_state(USER) == before


class TestDryRun:
    """Dry runs decide without writing."""

    def test_nothing_written(self, orchestrator, profile, db):
        db.replace_user_groups(USER, _stored_groups(10))

        report = orchestrator.sync_user(USER, dry_run=True)

        assert report.status is SyncStatus.COMMITTED
        assert report.dry_run
        assert report.groups_count == 9
        assert "dry run" in report.message
        assert db.count_user_groups(USER) == 10
        assert db.get_sync_state(USER) is None

    def test_resolved_phone_not_stored(self, orchestrator, db, api):
        db.upsert_profile(USER, gateway_token="tok-123", connection_status="connected")

        report = orchestrator.sync_user(USER, dry_run=True)

        assert report.groups_count == 9
        assert db.get_profile(USER)["phone_number"] is None


class TestIdentity:
    """Resolving the user's own phone number."""

    def test_stored_phone_used(self, orchestrator, profile, api):
        orchestrator.sync_user(USER)

        api.get_self_phone.assert_not_called()

    def test_phone_resolved_and_persisted(self, orchestrator, db, api):
        db.upsert_profile(USER, gateway_token="tok-123", connection_status="connected")

        report = orchestrator.sync_user(USER)

        assert report.groups_count == 9
        assert db.get_profile(USER)["phone_number"] == USER_PHONE

    def test_identity_unavailable(self, orchestrator, db, api):
        db.upsert_profile(USER, gateway_token="tok-123", connection_status="connected")
        api.get_self_phone.return_value = None

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.IDENTITY_UNAVAILABLE
        assert report.recommendation
        assert db.get_sync_state(USER)["last_status"] == "identity_unavailable"
        api.list_groups.assert_not_called()

    def test_identity_lookup_error(self, orchestrator, db, api):
        db.upsert_profile(USER, gateway_token="tok-123", connection_status="connected")
        api.get_self_phone.side_effect = GatewayAPIError("down", 503)

        report = orchestrator.sync_user(USER)

        assert report.status is SyncStatus.IDENTITY_UNAVAILABLE


class TestCancellation:
    """Cooperative cancellation."""

    def test_cancelled_keeps_stored_groups(self, orchestrator, profile, db):
        db.replace_user_groups(USER, _stored_groups(3))

        report = orchestrator.sync_user(USER, should_cancel=lambda: True)

        assert report.status is SyncStatus.CANCELLED
        assert report.groups == []
        assert db.count_user_groups(USER) == 3
        assert db.get_sync_state(USER)["last_status"] == "cancelled"


class TestSyncReport:
    """Tests for SyncReport output."""

    def test_to_dict(self, orchestrator, profile):
        data = orchestrator.sync_user(USER).to_dict()

        assert data["status"] == "committed"
        assert data["success"] is True
        assert data["groups_count"] == 9
        assert data["creator_count"] == 1
        assert data["admin_count"] == 8
        assert data["total_members"] == 18
        assert {g["role"] for g in data["groups"]} == {"creator", "admin"}

    def test_summary(self, orchestrator, profile):
        summary = orchestrator.sync_user(USER).summary()

        assert summary.startswith("Sync committed")
        assert "Groups found:     9 (1 creator, 8 admin)" in summary
        assert "member_only: 2" in summary

    def test_counts_on_empty_report(self):
        report = SyncReport(user_id=USER, status=SyncStatus.CANCELLED)

        assert report.groups_count == 0
        assert report.total_members == 0


class TestTriggerSync:
    """Tests for the trigger_sync() convenience wrapper."""

    def test_uses_gateway_client(self, profile, db, config, api):
        with patch("wa_group_sync.sync.engine.GatewayAPI", return_value=api) as cls:
            report = trigger_sync(USER, db, config=config)

        assert report.status is SyncStatus.COMMITTED
        assert cls.call_args.args[0] == "tok-123"
        assert cls.call_args.kwargs["base_url"] == config.gateway_base_url
