"""
Role classification of one fetched group record.

Given a group record from the gateway and the user's phone identity,
decides whether the user is a member, which role they hold, and produces
either an accepted GroupSyncResult or a skip reason. Pure: no network
calls, no cache access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from wa_group_sync.sync.group import (
    GroupSyncResult,
    get_participants,
    group_display_name,
    participant_identifiers,
)
from wa_group_sync.sync.phone import PhoneIdentity, is_match
from wa_group_sync.utils import normalize_rank

# Ranks that make the user the group's owner
CREATOR_RANKS = frozenset({"creator", "owner", "superadmin"})

# Ranks that grant admin rights
ADMIN_RANKS = frozenset({"admin", "administrator", "moderator"})

# Participant fields carrying a textual rank, in lookup order
RANK_FIELDS = ("rank", "role", "type")

# Participant fields carrying a boolean admin flag, in lookup order
ADMIN_FLAG_FIELDS = ("is_admin", "isAdmin", "admin")

# Group fields naming the owner
CREATOR_FIELDS = ("creator", "owner")

logger = logging.getLogger(__name__)


class SkipReason(str, Enum):
    """Why a group was not accepted as a managed group."""

    NO_PARTICIPANTS_LOADED = "no_participants_loaded"
    NOT_MEMBER = "not_member"
    MEMBER_ONLY = "member_only"


@dataclass
class ClassificationResult:
    """
    Outcome of classifying one group.

    Exactly one of result / skip_reason is set.
    """

    is_admin_group: bool
    result: Optional[GroupSyncResult] = None
    skip_reason: Optional[SkipReason] = None

    @classmethod
    def accepted(cls, result: GroupSyncResult) -> ClassificationResult:
        return cls(is_admin_group=True, result=result)

    @classmethod
    def skipped(cls, reason: SkipReason) -> ClassificationResult:
        return cls(is_admin_group=False, skip_reason=reason)


def _admin_flag(participant: Any) -> Optional[bool]:
    """Boolean admin flag of a participant, or None if it reports none."""
    if not isinstance(participant, dict):
        return None
    for name in ADMIN_FLAG_FIELDS:
        value = participant.get(name)
        if isinstance(value, bool):
            return value
    return None


def _rank(participant: Any) -> str:
    if not isinstance(participant, dict):
        return ""
    for name in RANK_FIELDS:
        rank = normalize_rank(participant.get(name))
        if rank:
            return rank
    return ""


def _group_creator(group_data: dict[str, Any]) -> Optional[str]:
    for name in CREATOR_FIELDS:
        value = group_data.get(name)
        if isinstance(value, str) and value:
            return value
    return None


class GroupRoleClassifier:
    """
    Classifies groups by the current user's role.

    Steps:
        1. No participants list: skip (no_participants_loaded)
        2. No participant matches the identity: skip (not_member)
        3. Rank creator/owner => creator+admin; admin/administrator/
           moderator rank or a true admin flag => admin; else member_only
        4. When the participant carries a boolean admin flag and the group
           names a creator, creator status requires the creator id to equal
           the user's canonical number exactly

    Usage:
        classifier = GroupRoleClassifier()
        outcome = classifier.classify(group_data, identity, user_id)
        if outcome.is_admin_group:
            groups.append(outcome.result)
    """

    def find_participant(
        self, participants: list[Any], identity: PhoneIdentity
    ) -> Optional[Any]:
        """Return the first participant whose identifiers match identity."""
        for participant in participants:
            for identifier in participant_identifiers(participant):
                if is_match(identity, identifier):
                    return participant
        return None

    def classify(
        self,
        group_data: dict[str, Any],
        identity: PhoneIdentity,
        user_id: str,
        synced_at: datetime | None = None,
    ) -> ClassificationResult:
        """
        Classify one group record.

        Args:
            group_data: Group record from the list or detail endpoint
            identity: The current user's phone identity
            user_id: Owner of the sync run (used for logging only)
            synced_at: Timestamp to stamp on an accepted record

        Returns:
            ClassificationResult with an accepted record or a skip reason
        """
        group_id = group_data.get("id", "")
        participants = get_participants(group_data)

        if not participants:
            return ClassificationResult.skipped(SkipReason.NO_PARTICIPANTS_LOADED)

        participant = self.find_participant(participants, identity)
        if participant is None:
            return ClassificationResult.skipped(SkipReason.NOT_MEMBER)

        rank = _rank(participant)
        admin_flag = _admin_flag(participant)

        is_creator = rank in CREATOR_RANKS
        is_admin = is_creator or rank in ADMIN_RANKS or bool(admin_flag)

        creator_id = _group_creator(group_data)
        if admin_flag is not None and creator_id is not None:
            # The flag alone cannot tell the owner from other admins
            is_creator = identity.is_exact(creator_id)
            is_admin = is_admin or is_creator

        if not is_admin:
            return ClassificationResult.skipped(SkipReason.MEMBER_ONLY)

        logger.debug(
            f"User {user_id} is {'creator' if is_creator else 'admin'} of "
            f"{group_display_name(group_data)} ({group_id})"
        )

        return ClassificationResult.accepted(
            GroupSyncResult.from_api_response(
                group_data,
                is_admin=True,
                is_creator=is_creator,
                synced_at=synced_at,
            )
        )
