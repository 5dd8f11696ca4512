"""
Tier Eligibility Resolver.

Maps a required caregiver tier to the roster entries allowed to serve it,
using an explicit eligibility table over the closed ``CaregiverTier`` enum:

* bronze case -> bronze (or unset) caregivers
* silver case -> silver or gold caregivers
* gold case   -> gold caregivers only

Only active caregivers are considered.  When no active caregiver matches
the tier, the whole active roster is returned instead: having some
caregiver on the case takes precedence over strict tier matching.
"""

from __future__ import annotations

import logging

from rehabtriage.models import Caregiver, CaregiverTier

logger = logging.getLogger(__name__)


# Maps required tier -> caregiver tiers allowed to take the case
_ELIGIBLE_TIERS: dict[CaregiverTier, frozenset[CaregiverTier]] = {
    CaregiverTier.BRONZE: frozenset({CaregiverTier.BRONZE}),
    CaregiverTier.SILVER: frozenset({CaregiverTier.SILVER, CaregiverTier.GOLD}),
    CaregiverTier.GOLD: frozenset({CaregiverTier.GOLD}),
}

_TIER_DESCRIPTIONS: dict[CaregiverTier, str] = {
    CaregiverTier.BRONZE: "Handles low-severity cases (0-5 severity score)",
    CaregiverTier.SILVER: "Handles moderate-severity cases (5-8 severity score)",
    CaregiverTier.GOLD: "Handles extreme-severity cases (8-10 severity score)",
}


def can_serve(caregiver: Caregiver, required_tier: CaregiverTier) -> bool:
    """Whether a caregiver's tier qualifies for the required tier."""
    return caregiver.effective_tier in _ELIGIBLE_TIERS[required_tier]


def active_roster(roster: list[Caregiver]) -> list[Caregiver]:
    return [c for c in roster if c.is_active]


def strictly_eligible(required_tier: CaregiverTier, roster: list[Caregiver]) -> list[Caregiver]:
    """Active caregivers that match the tier table, without the fallback."""
    return [c for c in active_roster(roster) if can_serve(c, required_tier)]


def eligible_for(required_tier: CaregiverTier, roster: list[Caregiver]) -> list[Caregiver]:
    """Return the caregivers allowed to serve a case of ``required_tier``.

    Roster order is preserved.  Never empty while the roster has at least
    one active caregiver.

    Args:
        required_tier: Tier demanded by the severity assessment.
        roster: Roster snapshot (active and inactive entries).

    Returns:
        Tier-eligible active caregivers, or every active caregiver when none
        match the tier.
    """
    active = active_roster(roster)
    matched = [c for c in active if can_serve(c, required_tier)]
    if matched:
        return matched

    if active:
        logger.warning(
            "No active %s-eligible caregiver; falling back to all %d active caregivers.",
            required_tier.value,
            len(active),
        )
    return active


def tier_description(tier: CaregiverTier | None) -> str:
    """Operator-facing description of what a tier handles."""
    if tier is None:
        return "Tier not specified"
    return _TIER_DESCRIPTIONS[tier]
