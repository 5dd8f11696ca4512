"""
Tests for rehabtriage.triage_report -- Triage Report Generator.

Covers: report fields, the reasoning chain for direct and full-roster
assignments, the disclaimer, and the viewer role check.
"""

from __future__ import annotations

from rehabtriage.assignment import TriageOutcome
from rehabtriage.models import (
    Assignment,
    Caregiver,
    CaregiverTier,
    SeverityAssessment,
    SeverityLevel,
    StaffRole,
    Urgency,
)
from rehabtriage.severity import heuristic_assessment
from rehabtriage.triage_report import generate_triage_report


def _make_outcome(
    assessment: SeverityAssessment | None = None,
    fell_back: bool = False,
    attempts: int = 1,
) -> TriageOutcome:
    assessment = assessment or SeverityAssessment(
        severity_score=6.5,
        severity_level=SeverityLevel.MODERATE,
        urgency=Urgency.MEDIUM,
        required_tier=CaregiverTier.SILVER,
        model="llama3-8b-8192",
        description="Sprained knee",
    )
    candidates = [
        Caregiver(caregiver_id="cg_silver", tier="silver"),
        Caregiver(caregiver_id="cg_gold", tier="gold"),
    ]
    assignment = Assignment(
        patient_id="patient_1",
        caregiver_id="cg_gold",
        assigned_tier=assessment.required_tier,
        assessment_id=assessment.assessment_id,
    )
    return TriageOutcome(
        assessment=assessment,
        assignment=assignment,
        candidates=candidates,
        workloads={"cg_silver": 3, "cg_gold": 1},
        fell_back_to_full_roster=fell_back,
        attempts=attempts,
        notifications=[],
    )


class TestReportContent:
    def test_report_fields(self):
        report = generate_triage_report(_make_outcome()).to_dict()

        assert report["report_type"] == "Triage & Caregiver Assignment Report"
        assert report["patient_id"] == "patient_1"
        assert report["caregiver_id"] == "cg_gold"
        assert report["required_tier"] == "silver"
        assert "5-8" in report["tier_description"]
        assert report["eligible_caregivers"] == ["cg_silver", "cg_gold"]
        assert report["workloads"] == {"cg_silver": 3, "cg_gold": 1}
        assert report["assessment"]["severity_level"] == "moderate"
        assert "generated_at" in report

    def test_disclaimer_present(self):
        report = generate_triage_report(_make_outcome()).to_dict()
        assert "does not constitute a clinical assessment or diagnosis" in report["disclaimer"]


class TestReasoningChain:
    def test_service_assessment_reasoning(self):
        steps = generate_triage_report(_make_outcome()).reasoning_chain
        assert "classification service (llama3-8b-8192)" in steps[0]
        assert "silver-tier caregiver" in steps[1]
        assert "2 active caregiver(s) eligible" in steps[2]
        assert "cg_gold" in steps[3] and "(1 active patient(s))" in steps[3]

    def test_fallback_reasoning(self):
        outcome = _make_outcome(
            assessment=heuristic_assessment("bleeding from the scalp"), fell_back=True
        )
        steps = generate_triage_report(outcome).reasoning_chain
        assert "local keyword heuristic" in steps[0]
        assert any("No active gold-eligible caregiver" in s for s in steps)

    def test_retries_mentioned(self):
        steps = generate_triage_report(_make_outcome(attempts=3)).reasoning_chain
        assert "selection repeated 3 times" in steps[-1]


class TestViewerRole:
    def test_allowed_viewer(self):
        report = generate_triage_report(_make_outcome(), StaffRole.NURSE)
        assert report.caregiver_id == "cg_gold"

