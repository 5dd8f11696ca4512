"""
Triage Report Generator.

Summarizes one triage-and-assignment decision for the intake operator and
the care team: the severity assessment, which caregivers were eligible, the
workloads the selection saw, and a reasoning chain explaining each step.

DISCLAIMER: Triage reports are routing summaries for staff review.  They do
not constitute a clinical assessment or diagnosis.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from rehabtriage.assignment import TriageOutcome
from rehabtriage.eligibility import tier_description
from rehabtriage.models import StaffRole
from rehabtriage.rbac import require_permission


class TriageReport:
    """A structured triage report for staff review."""

    def __init__(
        self,
        patient_id: str,
        caregiver_id: str,
        assessment: dict[str, Any],
        required_tier: str,
        tier_description: str,
        eligible_caregivers: list[str],
        workloads: dict[str, int],
        reasoning_chain: list[str],
        generated_at: str,
    ) -> None:
        self.patient_id = patient_id
        self.caregiver_id = caregiver_id
        self.assessment = assessment
        self.required_tier = required_tier
        self.tier_description = tier_description
        self.eligible_caregivers = eligible_caregivers
        self.workloads = workloads
        self.reasoning_chain = reasoning_chain
        self.generated_at = generated_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_type": "Triage & Caregiver Assignment Report",
            "disclaimer": (
                "This report is a routing summary for staff review. "
                "It does not constitute a clinical assessment or diagnosis."
            ),
            "patient_id": self.patient_id,
            "caregiver_id": self.caregiver_id,
            "assessment": self.assessment,
            "required_tier": self.required_tier,
            "tier_description": self.tier_description,
            "eligible_caregivers": self.eligible_caregivers,
            "workloads": self.workloads,
            "reasoning_chain": self.reasoning_chain,
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"TriageReport(patient_id={self.patient_id}, "
            f"caregiver={self.caregiver_id}, tier={self.required_tier})"
        )


def generate_triage_report(
    outcome: TriageOutcome,
    viewer_role: Optional[StaffRole] = None,
) -> TriageReport:
    """Build a ``TriageReport`` from a coordinator outcome.

    Raises:
        Forbidden: If ``viewer_role`` is given and may not view triage reports.
    """
    if viewer_role is not None:
        require_permission(viewer_role, "view_triage_report")
    assessment = outcome.assessment
    tier = assessment.required_tier

    return TriageReport(
        patient_id=outcome.assignment.patient_id,
        caregiver_id=outcome.assignment.caregiver_id,
        assessment=assessment.model_dump(mode="json"),
        required_tier=tier.value,
        tier_description=tier_description(tier),
        eligible_caregivers=[c.caregiver_id for c in outcome.candidates],
        workloads=dict(outcome.workloads),
        reasoning_chain=_build_reasoning(outcome),
        generated_at=datetime.now(timezone.utc).isoformat(),
    )


def _build_reasoning(outcome: TriageOutcome) -> list[str]:
    assessment = outcome.assessment
    chosen = outcome.assignment.caregiver_id
    steps: list[str] = []

    source = (
        "local keyword heuristic (classification service unavailable)"
        if assessment.is_fallback
        else f"classification service ({assessment.model})"
    )
    steps.append(
        f"Severity {assessment.severity_score:g}/10 ({assessment.severity_level.value}, "
        f"urgency {assessment.urgency.value}) from {source}."
    )
    steps.append(
        f"Severity level {assessment.severity_level.value} requires a "
        f"{assessment.required_tier.value}-tier caregiver."
    )
    if outcome.fell_back_to_full_roster:
        steps.append(
            f"No active {assessment.required_tier.value}-eligible caregiver; "
            f"all {len(outcome.candidates)} active caregivers considered."
        )
    else:
        steps.append(f"{len(outcome.candidates)} active caregiver(s) eligible for the tier.")
    steps.append(
        f"Caregiver {chosen} selected with the lowest workload "
        f"({outcome.workloads.get(chosen, 0)} active patient(s))."
    )
    if outcome.attempts > 1:
        steps.append(
            f"Workloads changed during assignment; selection repeated {outcome.attempts} times."
        )
    return steps
