"""
Tests for rehabtriage.severity -- score bands, tier mapping and the keyword
heuristic.

Covers: band boundaries, configurable thresholds, tier/urgency tables,
keyword precedence, the neutral default, and fallback metadata.
"""

from __future__ import annotations

import pytest

from rehabtriage.config import SeverityThresholds
from rehabtriage.models import CaregiverTier, SeverityLevel, Urgency
from rehabtriage.severity import (
    FALLBACK_RISK_FACTOR,
    HEURISTIC_MODEL_NAME,
    heuristic_assessment,
    severity_level_for_score,
    tier_for_level,
    urgency_for_level,
)


# ---------------------------------------------------------------------------
# 1. Score bands
# ---------------------------------------------------------------------------

class TestSeverityBands:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, SeverityLevel.LOW),
            (3.2, SeverityLevel.LOW),
            (5, SeverityLevel.LOW),
            (5.1, SeverityLevel.MODERATE),
            (8, SeverityLevel.MODERATE),
            (8.5, SeverityLevel.EXTREME),
            (10, SeverityLevel.EXTREME),
        ],
    )
    def test_default_bands(self, score, expected):
        assert severity_level_for_score(score) == expected

    def test_custom_thresholds(self):
        thresholds = SeverityThresholds(low_max=3, moderate_max=6)
        assert severity_level_for_score(4, thresholds) == SeverityLevel.MODERATE
        assert severity_level_for_score(7, thresholds) == SeverityLevel.EXTREME


class TestTierAndUrgencyTables:
    def test_tier_for_each_level(self):
        assert tier_for_level(SeverityLevel.LOW) == CaregiverTier.BRONZE
        assert tier_for_level(SeverityLevel.MODERATE) == CaregiverTier.SILVER
        assert tier_for_level(SeverityLevel.EXTREME) == CaregiverTier.GOLD

    def test_urgency_for_each_level(self):
        assert urgency_for_level(SeverityLevel.LOW) == Urgency.LOW
        assert urgency_for_level(SeverityLevel.MODERATE) == Urgency.MEDIUM
        assert urgency_for_level(SeverityLevel.EXTREME) == Urgency.HIGH


# ---------------------------------------------------------------------------
# 2. Keyword heuristic
# ---------------------------------------------------------------------------

class TestHeuristicAssessment:
    def test_high_severity_keyword(self):
        result = heuristic_assessment("Patient is bleeding heavily from the leg")
        assert result.severity_score == 9
        assert result.severity_level == SeverityLevel.EXTREME
        assert result.required_tier == CaregiverTier.GOLD
        assert result.urgency == Urgency.HIGH

    def test_low_severity_keyword(self):
        result = heuristic_assessment("Minor scrape on the knee")
        assert result.severity_score == 3
        assert result.severity_level == SeverityLevel.LOW
        assert result.required_tier == CaregiverTier.BRONZE

    def test_no_keywords_gives_moderate_default(self):
        result = heuristic_assessment("Twisted ankle while walking")
        assert result.severity_score == 5
        assert result.severity_level == SeverityLevel.MODERATE
        assert result.required_tier == CaregiverTier.SILVER
        assert result.urgency == Urgency.MEDIUM
        assert result.risk_factors == [FALLBACK_RISK_FACTOR]

    def test_high_keywords_take_precedence_over_low(self):
        result = heuristic_assessment("Mild headache after head trauma")
        assert result.severity_level == SeverityLevel.EXTREME
        assert "Keyword detected: 'head trauma'" in result.risk_factors
        assert "Keyword detected: 'mild'" not in result.risk_factors

    def test_keyword_match_is_case_insensitive(self):
        result = heuristic_assessment("Suspected FRACTURE of the wrist")
        assert result.required_tier == CaregiverTier.GOLD

    def test_fallback_metadata(self):
        result = heuristic_assessment("  Bruise on the arm  ")
        assert result.is_fallback is True
        assert result.model == HEURISTIC_MODEL_NAME
        assert result.risk_factors[0] == FALLBACK_RISK_FACTOR
        assert result.description == "Bruise on the arm"

    def test_bands_independent_of_score_thresholds(self):
        thresholds = SeverityThresholds(low_max=2, moderate_max=4)
        result = heuristic_assessment("minor cut", thresholds)
        assert result.severity_score == 3
        assert result.severity_level == SeverityLevel.LOW
        assert result.required_tier == CaregiverTier.BRONZE

    def test_custom_keywords(self):
        thresholds = SeverityThresholds(high_severity_keywords=["Seizure"])
        result = heuristic_assessment("Had a seizure this morning", thresholds)
        assert result.severity_level == SeverityLevel.EXTREME
