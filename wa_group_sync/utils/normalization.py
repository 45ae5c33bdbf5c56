"""
String normalization utilities for phone identity matching.

Provides consistent normalization of phone numbers, chat identifiers and
participant role labels as reported by the WhatsApp gateway.
"""

from __future__ import annotations

import re

# Characters that are never part of a phone number ("+", spaces, "@c.us"...)
_NON_DIGITS = re.compile(r"\D", re.ASCII)


def digits_only(value: str | None) -> str:
    """
    Strip everything but ASCII digits from a phone-like identifier.

    Gateway identifiers come in several shapes ("972501234567",
    "+972 50-123-4567", "972501234567@s.whatsapp.net"). Only the digits
    take part in matching.

    Args:
        value: Raw identifier, or None

    Returns:
        The digits of value in order, or "" for empty input
    """
    if not value:
        return ""

    # Drop any "@domain" suffix first so digits in the domain are ignored
    local_part = str(value).split("@", 1)[0]
    return _NON_DIGITS.sub("", local_part)


def normalize_rank(value: object) -> str:
    """
    Normalize a participant rank/role label for comparison.

    Args:
        value: Rank text from the gateway ("Admin", " creator ", None)

    Returns:
        Lowercase, stripped label, or "" when value is not a string
    """
    if not isinstance(value, str):
        return ""
    return value.strip().lower()
