"""
Tests for rehabtriage.eligibility -- Tier Eligibility Resolver.

Covers: the eligibility table, unset tiers, inactive caregivers, roster
order, the full-roster fallback, and tier descriptions.
"""

from __future__ import annotations

import pytest

from rehabtriage.eligibility import (
    can_serve,
    eligible_for,
    strictly_eligible,
    tier_description,
)
from rehabtriage.models import Caregiver, CaregiverStatus, CaregiverTier


def _make_caregiver(
    caregiver_id: str,
    tier: str | None = "bronze",
    status: CaregiverStatus = CaregiverStatus.ACTIVE,
) -> Caregiver:
    return Caregiver(caregiver_id=caregiver_id, tier=tier, status=status)


def _ids(caregivers: list[Caregiver]) -> list[str]:
    return [c.caregiver_id for c in caregivers]


# ---------------------------------------------------------------------------
# 1. Eligibility table
# ---------------------------------------------------------------------------

class TestEligibilityTable:
    @pytest.mark.parametrize(
        "caregiver_tier,required,expected",
        [
            ("bronze", CaregiverTier.BRONZE, True),
            ("bronze", CaregiverTier.SILVER, False),
            ("bronze", CaregiverTier.GOLD, False),
            ("silver", CaregiverTier.BRONZE, False),
            ("silver", CaregiverTier.SILVER, True),
            ("silver", CaregiverTier.GOLD, False),
            ("gold", CaregiverTier.BRONZE, False),
            ("gold", CaregiverTier.SILVER, True),
            ("gold", CaregiverTier.GOLD, True),
        ],
    )
    def test_can_serve(self, caregiver_tier, required, expected):
        assert can_serve(_make_caregiver("c1", caregiver_tier), required) is expected

    @pytest.mark.parametrize("tier", [None, "", "  "])
    def test_unset_tier_counts_as_bronze(self, tier):
        caregiver = _make_caregiver("c1", tier)
        assert caregiver.effective_tier == CaregiverTier.BRONZE
        assert can_serve(caregiver, CaregiverTier.BRONZE) is True

    def test_mixed_case_tier_is_normalised(self):
        assert _make_caregiver("c1", "Gold").tier == CaregiverTier.GOLD


# ---------------------------------------------------------------------------
# 2. Resolver
# ---------------------------------------------------------------------------

class TestEligibleFor:
    def test_silver_case_accepts_silver_and_gold(self):
        roster = [
            _make_caregiver("b1", "bronze"),
            _make_caregiver("g1", "gold"),
            _make_caregiver("s1", "silver"),
        ]
        assert _ids(eligible_for(CaregiverTier.SILVER, roster)) == ["g1", "s1"]

    def test_bronze_case_includes_unset_tier(self):
        roster = [_make_caregiver("u1", None), _make_caregiver("s1", "silver")]
        assert _ids(eligible_for(CaregiverTier.BRONZE, roster)) == ["u1"]

    def test_inactive_caregivers_excluded(self):
        roster = [
            _make_caregiver("g1", "gold", CaregiverStatus.INACTIVE),
            _make_caregiver("g2", "gold"),
        ]
        assert _ids(eligible_for(CaregiverTier.GOLD, roster)) == ["g2"]

    def test_falls_back_to_active_roster(self):
        roster = [
            _make_caregiver("b1", "bronze"),
            _make_caregiver("g1", "gold", CaregiverStatus.INACTIVE),
            _make_caregiver("s1", "silver"),
        ]
        assert _ids(eligible_for(CaregiverTier.GOLD, roster)) == ["b1", "s1"]
        assert strictly_eligible(CaregiverTier.GOLD, roster) == []

    def test_empty_roster(self):
        assert eligible_for(CaregiverTier.BRONZE, []) == []

    def test_all_inactive_roster(self):
        roster = [_make_caregiver("b1", "bronze", CaregiverStatus.INACTIVE)]
        assert eligible_for(CaregiverTier.BRONZE, roster) == []


class TestTierDescription:
    def test_known_tiers(self):
        assert "0-5" in tier_description(CaregiverTier.BRONZE)
        assert "5-8" in tier_description(CaregiverTier.SILVER)
        assert "8-10" in tier_description(CaregiverTier.GOLD)

    def test_unset_tier(self):
        assert tier_description(None) == "Tier not specified"
