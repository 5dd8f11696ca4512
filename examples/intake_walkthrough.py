"""
Synthetic Scenario: Patient Intake and Progress Approval Walkthrough
===================================================================

Demonstrates the engine end to end with synthetic data only.  Without a
``GROQ_API_KEY`` the classifier runs on its local keyword heuristic, so the
walkthrough works offline.

Steps demonstrated:
  1. Load engine settings from YAML
  2. Build a synthetic caregiver roster
  3. Triage two patients and assign caregivers
  4. Print a triage report
  5. Walk a progress update through self-review and clinician decision
  6. Export the audit trail

Usage:
    python -m examples.intake_walkthrough
    # or: python examples/intake_walkthrough.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rehabtriage.approval import ApprovalWorkflow
from rehabtriage.assignment import AssignmentCoordinator
from rehabtriage.audit import AuditLog
from rehabtriage.classifier import SeverityClassifierClient
from rehabtriage.config import DEFAULT_SETTINGS, load_settings_from_yaml
from rehabtriage.logging_setup import configure_logging
from rehabtriage.models import Caregiver, ProgressPayload, ReviewVerdict, StaffRole
from rehabtriage.notifications import InMemoryNotifier
from rehabtriage.store import InMemoryRecordStore
from rehabtriage.triage_report import generate_triage_report


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    _banner("Rehab Triage Synthetic Walkthrough")
    print("All data in this demo is synthetic.\n")

    # ------------------------------------------------------------------
    # Step 1: Settings
    # ------------------------------------------------------------------
    settings_path = Path(__file__).parent / "settings.yaml"
    settings = load_settings_from_yaml(settings_path) if settings_path.exists() else DEFAULT_SETTINGS
    configure_logging(settings.log_level)

    # ------------------------------------------------------------------
    # Step 2: Roster
    # ------------------------------------------------------------------
    _banner("Step 1: Caregiver Roster")
    store = InMemoryRecordStore([
        Caregiver(caregiver_id="cg_bronze_1", display_name="Synthetic Bronze A", tier="Bronze"),
        Caregiver(caregiver_id="cg_unset_1", display_name="Synthetic New Hire", tier=""),
        Caregiver(caregiver_id="cg_silver_1", display_name="Synthetic Silver A", tier="silver"),
        Caregiver(caregiver_id="cg_gold_1", display_name="Synthetic Gold A", tier="gold",
                  status="inactive"),
    ])
    for caregiver in store.read_roster():
        print(f"  {caregiver.caregiver_id:<12} tier={caregiver.effective_tier.value:<7} "
              f"status={caregiver.status.value}")

    audit_log = AuditLog()
    notifier = InMemoryNotifier()
    coordinator = AssignmentCoordinator(
        classifier=SeverityClassifierClient(settings),
        store=store,
        notifier=notifier,
        audit_log=audit_log,
        settings=settings,
    )

    # ------------------------------------------------------------------
    # Step 3: Intake
    # ------------------------------------------------------------------
    _banner("Step 2: Intake and Assignment")
    outcome = coordinator.triage(
        "patient_001",
        "Minor bruise on forearm, mild discomfort",
        doctor_id="dr_synthetic_001",
        nurse_id="rn_synthetic_001",
    )
    print(f"patient_001 -> {outcome.assignment.caregiver_id} "
          f"({outcome.assessment.severity_level.value}, fallback={outcome.assessment.is_fallback})")

    severe = coordinator.triage(
        "patient_002",
        "Severe head trauma, unconscious, uncontrolled bleeding",
        doctor_id="dr_synthetic_001",
    )
    print(f"patient_002 -> {severe.assignment.caregiver_id} "
          f"(required {severe.assessment.required_tier.value}, "
          f"full roster fallback={severe.fell_back_to_full_roster})")
    print(f"Notifications queued: {len(notifier)}")

    # ------------------------------------------------------------------
    # Step 4: Report
    # ------------------------------------------------------------------
    _banner("Step 3: Triage Report")
    print(json.dumps(generate_triage_report(severe, StaffRole.NURSE).to_dict(), indent=2, default=str))

    # ------------------------------------------------------------------
    # Step 5: Progress approval
    # ------------------------------------------------------------------
    _banner("Step 4: Progress Update Approval")
    workflow = ApprovalWorkflow(store, audit_log)
    caregiver_id = outcome.assignment.caregiver_id
    request = workflow.submit(
        "patient_001",
        caregiver_id,
        ProgressPayload(physical_progress=40, mental_progress=55, pain_level=3, mood=7,
                        notes="(Synthetic) Full range of motion restored."),
    )
    request = workflow.self_annotate(request.request_id, caregiver_id, ReviewVerdict.APPROVE)
    print(f"Submitted {request.request_id}: status={request.status.value}, "
          f"self_review={request.self_review.verdict.value}")

    request = workflow.decide(request.request_id, "dr_synthetic_001", ReviewVerdict.APPROVE,
                              notes="Progress consistent with session notes.")
    print(f"Clinician decision: {request.status.value}")
    print(f"Treatment record: {store.get_treatment_record('patient_001').model_dump(mode='json')}")

    # ------------------------------------------------------------------
    # Step 6: Audit export
    # ------------------------------------------------------------------
    _banner("Step 5: Audit Export")
    export = audit_log.export_as("admin_synthetic_001", StaffRole.ADMIN)
    print(json.dumps(export["export_metadata"], indent=2))


if __name__ == "__main__":
    main()
