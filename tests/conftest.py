"""Shared fixtures for the wa_group_sync test suite."""

import pytest

from wa_group_sync.storage.db import SyncDatabase
from wa_group_sync.sync.phone import build_identity

# Phone number of the test user in gateway (international) form
USER_PHONE = "972501234567"
OTHER_PHONE = "972509999999"


class FakeClock:
    """Manually advanced clock for TTL and cooldown tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_group(group_id, rank=None, member=True, participants=True, **extra):
    """
    Build a raw gateway group record.

    Args:
        group_id: Chat id
        rank: Rank of the test user ("admin", "creator", "member"...)
        member: Include the test user among the participants
        participants: Include a participants list at all
        **extra: Extra group fields
    """
    group = {"id": group_id, "name": f"Group {group_id}", **extra}
    if participants:
        people = [{"id": f"{OTHER_PHONE}@s.whatsapp.net", "rank": "member"}]
        if member:
            people.append(
                {"id": f"{USER_PHONE}@s.whatsapp.net", "rank": rank or "member"}
            )
        group["participants"] = people
    return group


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    return build_identity("0501234567")


@pytest.fixture
def db():
    database = SyncDatabase(":memory:")
    database.initialize()
    return database
