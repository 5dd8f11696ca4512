"""
Assignment Coordinator -- end-to-end triage and caregiver assignment.

For one patient the pipeline is strictly sequential:

    classify(description)
      -> eligible_for(required_tier, roster)
      -> select_least_loaded(candidates, assignments)
      -> write Assignment (compare-and-set on the caregiver's workload)
      -> attach assessment, update care team, notify changed roles

**Concurrency:**  Roster and workload snapshots are advisory.  The write is
a compare-and-set against the record store: the chosen caregiver's
workload is recounted under that caregiver's lock and the assignment is
only appended if it still equals the workload the selection was based on.
On a conflict the coordinator re-reads the ledger from the store and
selects again.  After ``max_attempts`` lost races it stops retrying and
has the store select and append in one step under every candidate's lock,
so N concurrent assignments always land, however many writers contend.

**Failures:**  ``InvalidInput`` (empty description or patient id) and
``NoCandidates`` (no active caregiver at all) propagate to the operator.
Notification delivery failures are logged and audited but do not undo the
assignment.
"""

from __future__ import annotations

import logging
from typing import Optional

from rehabtriage.audit import AuditEventType, AuditLog
from rehabtriage.classifier import SeverityClassifierClient
from rehabtriage.config import DEFAULT_SETTINGS, TriageSettings
from rehabtriage.eligibility import eligible_for, strictly_eligible
from rehabtriage.errors import AssignmentConflict, InvalidInput, NoCandidates
from rehabtriage.models import (
    Assignment,
    Caregiver,
    CareTeam,
    NotificationRequest,
    SeverityAssessment,
    StaffRole,
)
from rehabtriage.notifications import Notifier, build_assignment_notification
from rehabtriage.rbac import require_permission
from rehabtriage.selector import select_least_loaded, workload_snapshot
from rehabtriage.store import RecordStore

logger = logging.getLogger(__name__)


class TriageOutcome:
    """Everything the coordinator decided for one patient.

    The presentation layer renders this; ``generate_triage_report`` turns it
    into an operator-facing report.
    """

    def __init__(
        self,
        assessment: SeverityAssessment,
        assignment: Assignment,
        candidates: list[Caregiver],
        workloads: dict[str, int],
        fell_back_to_full_roster: bool,
        attempts: int,
        notifications: list[NotificationRequest],
    ) -> None:
        self.assessment = assessment
        self.assignment = assignment
        self.candidates = candidates
        self.workloads = workloads
        self.fell_back_to_full_roster = fell_back_to_full_roster
        self.attempts = attempts
        self.notifications = notifications

    def __repr__(self) -> str:
        return (
            f"TriageOutcome(patient={self.assignment.patient_id}, "
            f"caregiver={self.assignment.caregiver_id}, "
            f"tier={self.assignment.assigned_tier.value})"
        )


class AssignmentCoordinator:
    """Orchestrates classification, eligibility, selection and the write."""

    def __init__(
        self,
        classifier: SeverityClassifierClient,
        store: RecordStore,
        notifier: Notifier,
        audit_log: AuditLog,
        settings: TriageSettings | None = None,
    ) -> None:
        self._classifier = classifier
        self._store = store
        self._notifier = notifier
        self._audit_log = audit_log
        self._settings = settings or DEFAULT_SETTINGS

    def assign_caregiver(
        self,
        patient_id: str,
        description: str,
        roster: list[Caregiver] | None = None,
        current_assignments: list[Assignment] | None = None,
        *,
        doctor_id: Optional[str] = None,
        nurse_id: Optional[str] = None,
        actor_id: str = "SYSTEM",
        actor_role: StaffRole = StaffRole.RECEPTIONIST,
    ) -> Assignment:
        """Triage a patient and assign a caregiver.

        Args:
            patient_id: Patient being admitted.
            description: Free-text injury description.
            roster: Roster snapshot; read from the store when omitted.
            current_assignments: Assignment snapshot; read from the store
                when omitted.  Advisory either way.
            doctor_id: Clinician assigned alongside, if any.
            nurse_id: Nurse assigned alongside, if any.
            actor_id: Staff member running the intake.
            actor_role: Role of that staff member.

        Returns:
            The written ``Assignment``.

        Raises:
            InvalidInput: Empty description or patient id.
            NoCandidates: No active caregiver exists (or all are at capacity
                while capacity is enforced).
            AssignmentConflict: The store could not lock the candidates within
                ``lock_timeout_seconds``.
            Forbidden: ``actor_role`` may not assign caregivers.
        """
        return self.triage(
            patient_id,
            description,
            roster,
            current_assignments,
            doctor_id=doctor_id,
            nurse_id=nurse_id,
            actor_id=actor_id,
            actor_role=actor_role,
        ).assignment

    def triage(
        self,
        patient_id: str,
        description: str,
        roster: list[Caregiver] | None = None,
        current_assignments: list[Assignment] | None = None,
        *,
        doctor_id: Optional[str] = None,
        nurse_id: Optional[str] = None,
        actor_id: str = "SYSTEM",
        actor_role: StaffRole = StaffRole.RECEPTIONIST,
    ) -> TriageOutcome:
        """Same as ``assign_caregiver`` but returns the full ``TriageOutcome``."""
        if not isinstance(patient_id, str) or not patient_id.strip():
            raise InvalidInput("patient_id is required for caregiver assignment.")
        require_permission(actor_role, "assign_caregiver")

        assessment = self._classifier.classify(description)
        self._audit_log.record(
            AuditEventType.TRIAGE_CLASSIFIED,
            actor_id=actor_id,
            actor_role=actor_role.value,
            target_entity=assessment.assessment_id,
            patient_id=patient_id,
            metadata={
                "severity_score": assessment.severity_score,
                "severity_level": assessment.severity_level.value,
                "required_tier": assessment.required_tier.value,
                "urgency": assessment.urgency.value,
                "is_fallback": assessment.is_fallback,
                "model": assessment.model,
            },
        )

        if roster is None:
            roster = self._store.read_active_caregivers()
        candidates = eligible_for(assessment.required_tier, roster)
        if not candidates:
            self._fail(patient_id, actor_id, actor_role, "No active caregivers on the roster.")
            raise NoCandidates(
                "No active caregivers available for assignment. "
                "Add or activate a caregiver before retrying."
            )
        fell_back = not strictly_eligible(assessment.required_tier, roster)

        assignment, workloads, attempts = self._write_assignment(
            patient_id, assessment, candidates, current_assignments, actor_id, actor_role
        )

        self._store.attach_assessment(patient_id, assessment)
        notifications = self._update_care_team(
            patient_id, assignment.caregiver_id, doctor_id, nurse_id
        )

        logger.info(
            "Assigned caregiver %s to patient %s (%s tier, attempt %d)",
            assignment.caregiver_id,
            patient_id,
            assignment.assigned_tier.value,
            attempts,
        )
        return TriageOutcome(
            assessment=assessment,
            assignment=assignment,
            candidates=candidates,
            workloads=workloads,
            fell_back_to_full_roster=fell_back,
            attempts=attempts,
            notifications=notifications,
        )

    # -- helpers --

    def _write_assignment(
        self,
        patient_id: str,
        assessment: SeverityAssessment,
        candidates: list[Caregiver],
        current_assignments: list[Assignment] | None,
        actor_id: str,
        actor_role: StaffRole,
    ) -> tuple[Assignment, dict[str, int], int]:
        """Select and write, retrying on compare-and-set conflicts.

        Returns the assignment, the workloads it was selected on and the
        number of attempts, counting the serialized write as the last one.
        """
        if current_assignments is not None:
            assignments = list(current_assignments)
            active: Optional[set[str]] = None
        else:
            assignments = self._store.read_assignments()
            active = self._store.active_patient_ids()

        def build(chosen: Caregiver) -> Assignment:
            return Assignment(
                patient_id=patient_id,
                caregiver_id=chosen.caregiver_id,
                assigned_tier=assessment.required_tier,
                assessment_id=assessment.assessment_id,
            )

        max_attempts = self._settings.assignment.max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                chosen = select_least_loaded(
                    candidates,
                    assignments,
                    active_patient_ids=active,
                    enforce_capacity=self._settings.assignment.enforce_capacity,
                )
            except NoCandidates as exc:
                self._fail(patient_id, actor_id, actor_role, str(exc))
                raise

            workloads = workload_snapshot(candidates, assignments, active)
            assignment = build(chosen)
            if self._store.append_assignment_if_workload(
                assignment, workloads[chosen.caregiver_id]
            ):
                self._record_assigned(assignment, chosen, workloads, attempt, actor_id, actor_role)
                return assignment, workloads, attempt

            logger.info(
                "Workload of caregiver %s changed during assignment of %s; reselecting.",
                chosen.caregiver_id,
                patient_id,
            )
            self._audit_log.record(
                AuditEventType.ASSIGNMENT_CONFLICT,
                actor_id=actor_id,
                actor_role=actor_role.value,
                patient_id=patient_id,
                metadata={"caregiver_id": chosen.caregiver_id, "attempt": attempt},
            )
            assignments = self._store.read_assignments()
            active = self._store.active_patient_ids()

        logger.warning(
            "Assignment of %s lost %d compare-and-set races; selecting under lock.",
            patient_id,
            max_attempts,
        )
        timeout = self._settings.assignment.lock_timeout_seconds
        try:
            written = self._store.assign_least_loaded(
                candidates,
                build,
                enforce_capacity=self._settings.assignment.enforce_capacity,
                timeout=timeout,
            )
        except NoCandidates as exc:
            self._fail(patient_id, actor_id, actor_role, str(exc))
            raise
        if written is None:
            self._fail(patient_id, actor_id, actor_role, "Timed out waiting for caregiver locks.")
            raise AssignmentConflict(
                f"Could not assign a caregiver to patient {patient_id}: caregiver "
                f"locks were not available within {timeout} seconds."
            )

        assignment, workloads = written
        chosen = next(c for c in candidates if c.caregiver_id == assignment.caregiver_id)
        self._record_assigned(
            assignment, chosen, workloads, max_attempts + 1, actor_id, actor_role
        )
        return assignment, workloads, max_attempts + 1

    def _record_assigned(
        self,
        assignment: Assignment,
        chosen: Caregiver,
        workloads: dict[str, int],
        attempt: int,
        actor_id: str,
        actor_role: StaffRole,
    ) -> None:
        self._audit_log.record(
            AuditEventType.CAREGIVER_ASSIGNED,
            actor_id=actor_id,
            actor_role=actor_role.value,
            target_entity=assignment.assignment_id,
            patient_id=assignment.patient_id,
            metadata={
                "caregiver_id": chosen.caregiver_id,
                "caregiver_tier": chosen.effective_tier.value,
                "assigned_tier": assignment.assigned_tier.value,
                "workload_before": workloads[chosen.caregiver_id],
                "attempt": attempt,
            },
        )

    def _update_care_team(
        self,
        patient_id: str,
        caregiver_id: str,
        doctor_id: Optional[str],
        nurse_id: Optional[str],
    ) -> list[NotificationRequest]:
        """Save the new care team and notify each role that changed."""
        previous = self._store.get_care_team(patient_id) or CareTeam(patient_id=patient_id)

        changes: list[tuple[StaffRole, str]] = []
        if doctor_id and doctor_id != previous.doctor_id:
            changes.append((StaffRole.CLINICIAN, doctor_id))
        if nurse_id and nurse_id != previous.nurse_id:
            changes.append((StaffRole.NURSE, nurse_id))
        if caregiver_id != previous.caregiver_id:
            changes.append((StaffRole.CAREGIVER, caregiver_id))

        self._store.save_care_team(CareTeam(
            patient_id=patient_id,
            doctor_id=doctor_id or previous.doctor_id,
            nurse_id=nurse_id or previous.nurse_id,
            caregiver_id=caregiver_id,
        ))

        sent = []
        for role, recipient_id in changes:
            request = build_assignment_notification(patient_id, role, recipient_id)
            if self._dispatch(request):
                sent.append(request)
        return sent

    def _dispatch(self, request: NotificationRequest) -> bool:
        try:
            self._notifier.notify(request)
        except Exception as exc:
            # Notifier contract: any transport error is a failed delivery.
            logger.exception(
                "Notification to %s for patient %s failed",
                request.recipient_id,
                request.patient_id,
            )
            self._audit_log.record(
                AuditEventType.NOTIFICATION_FAILED,
                target_entity=request.notification_id,
                patient_id=request.patient_id,
                metadata={
                    "recipient_id": request.recipient_id,
                    "role": request.role.value,
                    "error": str(exc),
                },
            )
            return False

        self._audit_log.record(
            AuditEventType.NOTIFICATION_DISPATCHED,
            target_entity=request.notification_id,
            patient_id=request.patient_id,
            metadata={"recipient_id": request.recipient_id, "role": request.role.value},
        )
        return True

    def _fail(
        self, patient_id: str, actor_id: str, actor_role: StaffRole, reason: str
    ) -> None:
        logger.error("Caregiver assignment for patient %s failed: %s", patient_id, reason)
        self._audit_log.record(
            AuditEventType.ASSIGNMENT_FAILED,
            actor_id=actor_id,
            actor_role=actor_role.value,
            patient_id=patient_id,
            metadata={"reason": reason},
        )
