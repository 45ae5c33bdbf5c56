"""
Managed group data model for WhatsApp admin group synchronization.

Provides:
- GroupSyncResult, the normalized record of a group the user administers
- Participant identifier extractors for the gateway's evolving schema
- Helpers reading participant lists and counts from raw group records
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Fallback display name when the gateway reports neither name nor subject
UNKNOWN_GROUP_NAME = "Unknown Group"

ParticipantExtractor = Callable[[Any], Optional[str]]


def _string_participant(participant: Any) -> str | None:
    """Older payloads list participants as bare identifier strings."""
    return participant if isinstance(participant, str) and participant else None


def _field(name: str) -> ParticipantExtractor:
    """Build an extractor reading one top-level string field."""

    def extract(participant: Any) -> str | None:
        if not isinstance(participant, dict):
            return None
        value = participant.get(name)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value)
            return text or None
        return None

    extract.__name__ = f"extract_{name}"
    return extract


def _contact_id(participant: Any) -> str | None:
    """Nested {"contact": {"id": ...}} form."""
    if not isinstance(participant, dict):
        return None
    contact = participant.get("contact")
    if isinstance(contact, dict):
        value = contact.get("id") or contact.get("phone")
        if isinstance(value, str) and value:
            return value
    return None


# Tried in order; every non-empty result is a candidate identifier
PARTICIPANT_ID_EXTRACTORS: tuple[ParticipantExtractor, ...] = (
    _string_participant,
    _field("id"),
    _field("phone"),
    _field("number"),
    _field("contact_id"),
    _contact_id,
)


def participant_identifiers(participant: Any) -> list[str]:
    """
    Collect every identifier a participant exposes, in extractor order.

    Args:
        participant: One entry of a group's participants array

    Returns:
        List of non-empty identifier strings (duplicates removed)
    """
    identifiers: list[str] = []
    for extractor in PARTICIPANT_ID_EXTRACTORS:
        value = extractor(participant)
        if value and value not in identifiers:
            identifiers.append(value)
    return identifiers


def get_participants(group_data: dict[str, Any]) -> list[Any]:
    """Return the participants array of a group record, or [] if absent."""
    participants = group_data.get("participants")
    if isinstance(participants, list):
        return participants
    return []


def participant_count(group_data: dict[str, Any]) -> int:
    """
    Count members of a group record.

    The participants list length wins; the group-level "size" field is the
    fallback when the list is absent but a count is reported.
    """
    participants = get_participants(group_data)
    if participants:
        return len(participants)

    size = group_data.get("size")
    if isinstance(size, int) and not isinstance(size, bool) and size > 0:
        return size
    return 0


def group_display_name(group_data: dict[str, Any]) -> str:
    """Resolve a group's display name from name/subject."""
    return group_data.get("name") or group_data.get("subject") or UNKNOWN_GROUP_NAME


@dataclass
class GroupSyncResult:
    """
    A group where the current user is an admin or the creator.

    Attributes:
        group_id: Gateway chat id (e.g., "120363025246125888@g.us")
        name: Display name of the group
        description: Group description, if any
        participants_count: Number of members
        is_admin: User holds admin rights (always True for creators)
        is_creator: User created / owns the group
        avatar_url: Group picture reference ("chat_pic")
        last_synced_at: When this record was produced

    Usage:
        result = GroupSyncResult.from_api_response(group_data, is_creator=True)
        row = result.to_record("user-123")
    """

    group_id: str
    name: str
    description: Optional[str] = None
    participants_count: int = 0
    is_admin: bool = True
    is_creator: bool = False
    avatar_url: Optional[str] = None
    last_synced_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        # Creator implies admin
        if self.is_creator:
            self.is_admin = True

    @classmethod
    def from_api_response(
        cls,
        group_data: dict[str, Any],
        is_admin: bool = True,
        is_creator: bool = False,
        synced_at: datetime | None = None,
    ) -> GroupSyncResult:
        """
        Create a GroupSyncResult from a gateway group record.

        Example gateway record::

            {
                "id": "120363025246125888@g.us",
                "name": "Parents 3B",
                "description": "Class updates",
                "participants": [{"id": "972501234567", "rank": "admin"}, ...],
                "size": 41,
                "chat_pic": "https://...",
                "creator": "972509999999"
            }
        """
        return cls(
            group_id=str(group_data.get("id", "")),
            name=group_display_name(group_data),
            description=group_data.get("description") or None,
            participants_count=participant_count(group_data),
            is_admin=is_admin,
            is_creator=is_creator,
            avatar_url=group_data.get("chat_pic") or None,
            last_synced_at=synced_at or datetime.now(timezone.utc),
        )

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> GroupSyncResult:
        """Create a GroupSyncResult from a stored managed_groups row."""
        last_synced = row.get("last_synced_at")
        if isinstance(last_synced, str):
            try:
                last_synced = datetime.fromisoformat(last_synced)
            except ValueError:
                last_synced = None

        return cls(
            group_id=row["group_id"],
            name=row.get("name") or UNKNOWN_GROUP_NAME,
            description=row.get("description"),
            participants_count=row.get("participants_count") or 0,
            is_admin=bool(row.get("is_admin")),
            is_creator=bool(row.get("is_creator")),
            avatar_url=row.get("avatar_url"),
            last_synced_at=last_synced or datetime.now(timezone.utc),
        )

    def to_record(self, user_id: str) -> dict[str, Any]:
        """Convert to a managed_groups row for the given user."""
        return {
            "user_id": user_id,
            "group_id": self.group_id,
            "name": self.name,
            "description": self.description,
            "participants_count": self.participants_count,
            "is_admin": self.is_admin,
            "is_creator": self.is_creator,
            "avatar_url": self.avatar_url,
            "last_synced_at": self.last_synced_at.isoformat(),
        }

    @property
    def role(self) -> str:
        """Role label used in reports: "creator" or "admin"."""
        return "creator" if self.is_creator else "admin"

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"GroupSyncResult(group_id={self.group_id!r}, "
            f"name={self.name!r}, "
            f"role={self.role!r}, "
            f"participants_count={self.participants_count})"
        )
