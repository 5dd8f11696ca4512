"""
Severity rules -- score bands, tier mapping, and the local keyword heuristic.

These are the deterministic pieces of classification.  The classifier
client uses them to normalise whatever the external service reports and
to produce an assessment on its own when the service is unavailable.

Score bands (inclusive upper bounds, configurable):

* 0 -- 5   low       -> bronze caregiver, low urgency
* 5 -- 8   moderate  -> silver caregiver, medium urgency
* 8 -- 10  extreme   -> gold caregiver, high urgency
"""

from __future__ import annotations

from rehabtriage.config import DEFAULT_SETTINGS, SeverityThresholds
from rehabtriage.models import CaregiverTier, SeverityAssessment, SeverityLevel, Urgency


HEURISTIC_MODEL_NAME = "heuristic"

_TIER_FOR_LEVEL: dict[SeverityLevel, CaregiverTier] = {
    SeverityLevel.LOW: CaregiverTier.BRONZE,
    SeverityLevel.MODERATE: CaregiverTier.SILVER,
    SeverityLevel.EXTREME: CaregiverTier.GOLD,
}

_URGENCY_FOR_LEVEL: dict[SeverityLevel, Urgency] = {
    SeverityLevel.LOW: Urgency.LOW,
    SeverityLevel.MODERATE: Urgency.MEDIUM,
    SeverityLevel.EXTREME: Urgency.HIGH,
}

# Score the heuristic assigns to each band.
_HEURISTIC_SCORES: dict[SeverityLevel, float] = {
    SeverityLevel.LOW: 3.0,
    SeverityLevel.MODERATE: 5.0,
    SeverityLevel.EXTREME: 9.0,
}

_HEURISTIC_CARE: dict[SeverityLevel, str] = {
    SeverityLevel.LOW: "Routine care and monitoring by a bronze-tier caregiver.",
    SeverityLevel.MODERATE: "Standard care based on severity level; specialized follow-up recommended.",
    SeverityLevel.EXTREME: "Immediate intensive care; escalate to the supervising clinician.",
}

FALLBACK_RISK_FACTOR = "Fallback assessment used due to classification service failure"


def severity_level_for_score(
    score: float,
    thresholds: SeverityThresholds | None = None,
) -> SeverityLevel:
    """Map a 0-10 score to its severity band."""
    thresholds = thresholds or DEFAULT_SETTINGS.severity
    if score <= thresholds.low_max:
        return SeverityLevel.LOW
    if score <= thresholds.moderate_max:
        return SeverityLevel.MODERATE
    return SeverityLevel.EXTREME


def tier_for_level(level: SeverityLevel) -> CaregiverTier:
    """Caregiver tier required to handle a severity band."""
    return _TIER_FOR_LEVEL[level]


def urgency_for_level(level: SeverityLevel) -> Urgency:
    """Default urgency for a severity band."""
    return _URGENCY_FOR_LEVEL[level]


def _matched_terms(text: str, keywords: list[str]) -> list[str]:
    return [kw for kw in keywords if kw in text]


def heuristic_assessment(
    description: str,
    thresholds: SeverityThresholds | None = None,
) -> SeverityAssessment:
    """Assess a description locally by keyword scan.

    High-severity terms take precedence over low-severity terms; a
    description with neither gets the neutral moderate default (score 5,
    silver, medium).

    Args:
        description: The injury description (already validated non-empty).
        thresholds: Keyword lists to scan for.

    Returns:
        A ``SeverityAssessment`` with ``is_fallback=True``.
    """
    thresholds = thresholds or DEFAULT_SETTINGS.severity
    text = description.lower()

    high = _matched_terms(text, thresholds.high_severity_keywords)
    low = _matched_terms(text, thresholds.low_severity_keywords)

    if high:
        level, matched = SeverityLevel.EXTREME, high
    elif low:
        level, matched = SeverityLevel.LOW, low
    else:
        level, matched = SeverityLevel.MODERATE, []

    # Bands are fixed per keyword class; the neutral default is moderate at
    # score 5 even though 5 is the top of the low band.
    score = _HEURISTIC_SCORES[level]

    risk_factors = [FALLBACK_RISK_FACTOR]
    risk_factors.extend(f"Keyword detected: '{kw}'" for kw in matched)

    return SeverityAssessment(
        severity_score=score,
        severity_level=level,
        urgency=urgency_for_level(level),
        risk_factors=risk_factors,
        recommended_care=_HEURISTIC_CARE[level],
        required_tier=tier_for_level(level),
        is_fallback=True,
        model=HEURISTIC_MODEL_NAME,
        description=description.strip(),
    )
