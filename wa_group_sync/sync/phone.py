"""
Phone identity matching for locating the current user among participants.

The gateway and the stored profile rarely agree on phone formatting: one
side says "972501234567", the other "0501234567" or "+972 50-123-4567".
A PhoneIdentity holds every digit-only variant of the user's own number
so a participant identifier can be matched with a set lookup, falling back
to comparing the trailing 9/10 digits.
"""

from __future__ import annotations

from dataclasses import dataclass

from wa_group_sync.utils import digits_only

# Country calling code swapped with the local trunk prefix "0"
DEFAULT_COUNTRY_CODE = "972"

# Suffix lengths used for the fuzzy comparison
SUFFIX_LENGTHS = (9, 10)

# Candidates shorter than this never reach the suffix comparison
MIN_SUFFIX_MATCH_LENGTH = 9


@dataclass(frozen=True)
class PhoneIdentity:
    """
    Immutable set of normalized variants of one phone number.

    Attributes:
        raw: Phone string as stored or reported ("+972 50-123-4567")
        canonical: Digits of raw, no other transformation ("972501234567")
        variants: Canonical plus local/international swapped forms and the
                  last-9/last-10 digit suffix keys
        full_forms: Canonical plus the swapped forms only (no suffix keys)
    """

    raw: str
    canonical: str
    variants: frozenset[str]
    full_forms: frozenset[str] = frozenset()

    def suffixes(self, length: int) -> frozenset[str]:
        """Return the trailing `length` digits of every long-enough variant."""
        return frozenset(v[-length:] for v in self.variants if len(v) >= length)

    def is_exact(self, candidate: str | None) -> bool:
        """True when candidate's digits equal a complete form of the number."""
        cleaned = digits_only(candidate)
        return bool(cleaned) and (
            cleaned == self.canonical or cleaned in self.full_forms
        )


def build_identity(
    raw_phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE
) -> PhoneIdentity:
    """
    Build the variant set for a user's own phone number.

    Args:
        raw_phone: Phone number in any format; non-digits are stripped and
                   an "@domain" suffix is ignored
        country_code: Calling code swapped with a leading "0"

    Returns:
        PhoneIdentity; its variant set is empty when raw_phone has no digits

    Example:
        >>> identity = build_identity("0501234567")
        >>> sorted(identity.variants)
        ['0501234567', '501234567', '972501234567']
    """
    raw = raw_phone or ""
    cleaned = digits_only(raw)

    full_forms: set[str] = set()
    variants: set[str] = set()
    if cleaned:
        full_forms.add(cleaned)

        if country_code and cleaned.startswith(country_code):
            full_forms.add("0" + cleaned[len(country_code) :])
        if country_code and cleaned.startswith("0"):
            full_forms.add(country_code + cleaned[1:])

        variants.update(full_forms)
        for length in SUFFIX_LENGTHS:
            if len(cleaned) >= length:
                variants.add(cleaned[-length:])

    return PhoneIdentity(
        raw=raw,
        canonical=cleaned,
        variants=frozenset(variants),
        full_forms=frozenset(full_forms),
    )


def is_match(identity: PhoneIdentity, candidate_id: str | None) -> bool:
    """
    Check whether a participant identifier belongs to the identity.

    Exact match against any variant first; then, for candidates of at
    least 9 digits, the candidate's last 9 and last 10 digits are compared
    with the same suffixes of every variant.

    Args:
        identity: Identity built with build_identity()
        candidate_id: Participant identifier from the gateway

    Returns:
        True if the candidate is the same phone number
    """
    cleaned = digits_only(candidate_id)
    if not cleaned or not identity.variants:
        return False

    if cleaned in identity.variants:
        return True

    if len(cleaned) < MIN_SUFFIX_MATCH_LENGTH:
        return False

    for length in SUFFIX_LENGTHS:
        if len(cleaned) >= length and cleaned[-length:] in identity.suffixes(length):
            return True

    return False
