"""
Progress-Update Approval Workflow.

Caregivers submit progress updates for their patients; a supervising
clinician makes the binding decision.  The lifecycle is an explicit state
machine:

    PENDING_APPROVAL -> APPROVED | REJECTED     (both terminal)

**Self-review:**  The submitting caregiver may attach a self-review
(approve/reject) to their own request while it is pending.  It is an
annotation, never a status change -- a caregiver cannot approve their own
progress claim.  Self-review and the clinician decision are both retained
as audit history.

**Gates enforced in code:**

* ``self_annotate()`` requires the acting caregiver to be the submitter
  (``Forbidden`` otherwise, whatever the status).
* ``decide()`` requires a role allowed to decide and a decider other than
  the submitter.
* Terminal states have no outgoing transitions; a second decision raises
  ``InvalidState`` rather than silently succeeding.
* Writes are compare-and-set on the status in the record store and only
  touch the fields they own, so two racing decisions produce exactly one
  winner and a self-review saved during a decision is kept.

On approval the patient's treatment record is updated from the payload:
overall progress never goes down, and the current pain, mood and energy
readings are replaced when present.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from rehabtriage.audit import AuditEventType, AuditLog
from rehabtriage.errors import Forbidden, InvalidInput, InvalidState
from rehabtriage.models import (
    ApprovalStatus,
    ProgressPayload,
    ProgressUpdateRequest,
    ReviewVerdict,
    SelfReview,
    StaffRole,
    TreatmentRecord,
)
from rehabtriage.rbac import require_permission
from rehabtriage.store import RecordStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Valid state transitions
# ---------------------------------------------------------------------------

_VALID_TRANSITIONS: dict[ApprovalStatus, set[ApprovalStatus]] = {
    ApprovalStatus.PENDING_APPROVAL: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    ApprovalStatus.APPROVED: set(),  # terminal state
    ApprovalStatus.REJECTED: set(),  # terminal state
}

_STATUS_FOR_VERDICT: dict[ReviewVerdict, ApprovalStatus] = {
    ReviewVerdict.APPROVE: ApprovalStatus.APPROVED,
    ReviewVerdict.REJECT: ApprovalStatus.REJECTED,
}


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} is required.")
    return value


def _coerce_verdict(verdict: ReviewVerdict | str) -> ReviewVerdict:
    try:
        return ReviewVerdict(verdict)
    except ValueError:
        raise InvalidInput(
            f"Verdict must be one of {[v.value for v in ReviewVerdict]}, got '{verdict}'."
        ) from None


class ApprovalWorkflow:
    """Runs the approval state machine over requests held in the record store.

    Every operation emits a structured audit event.
    """

    def __init__(self, store: RecordStore, audit_log: AuditLog) -> None:
        self._store = store
        self._audit_log = audit_log

    # -- helpers --

    def _load(self, request_id: str) -> ProgressUpdateRequest:
        _require_id(request_id, "request_id")
        request = self._store.get_progress_request(request_id)
        if request is None:
            raise InvalidInput(f"Unknown progress update request '{request_id}'.")
        return request

    def _validate_transition(
        self, request: ProgressUpdateRequest, target: ApprovalStatus
    ) -> None:
        allowed = _VALID_TRANSITIONS.get(request.status, set())
        if target not in allowed:
            raise InvalidState(
                f"Cannot transition request {request.request_id} from "
                f"{request.status.value} to {target.value}. "
                f"Allowed transitions: {[s.value for s in allowed]}"
            )

    # -- lifecycle operations --

    def submit(
        self,
        patient_id: str,
        caregiver_id: str,
        payload: ProgressPayload | dict[str, Any] | None = None,
        *,
        actor_role: StaffRole = StaffRole.CAREGIVER,
    ) -> ProgressUpdateRequest:
        """Create a progress update in PENDING_APPROVAL.

        Args:
            patient_id: Patient the update is about.
            caregiver_id: Submitting caregiver.
            payload: Progress data, as a model or a dict of its fields.
            actor_role: Role of the submitter.

        Returns:
            The stored ``ProgressUpdateRequest``.

        Raises:
            InvalidInput: If an id is empty or the payload is out of range.
            Forbidden: If the role may not submit progress updates.
        """
        _require_id(patient_id, "patient_id")
        _require_id(caregiver_id, "caregiver_id")
        require_permission(actor_role, "submit_progress_update")

        if payload is None:
            payload = ProgressPayload()
        elif not isinstance(payload, ProgressPayload):
            try:
                payload = ProgressPayload.model_validate(payload)
            except ValidationError as exc:
                raise InvalidInput(f"Invalid progress payload: {exc}") from exc

        request = ProgressUpdateRequest(
            patient_id=patient_id,
            submitted_by=caregiver_id,
            payload=payload,
        )
        self._store.append_or_update_progress_request(request)

        self._audit_log.record(
            AuditEventType.PROGRESS_SUBMITTED,
            actor_id=caregiver_id,
            actor_role=actor_role.value,
            target_entity=request.request_id,
            patient_id=patient_id,
            metadata={"status": request.status.value},
        )
        logger.info("Progress update %s submitted for patient %s", request.request_id, patient_id)
        return request

    def self_annotate(
        self,
        request_id: str,
        acting_caregiver_id: str,
        verdict: ReviewVerdict | str,
        *,
        actor_role: StaffRole = StaffRole.CAREGIVER,
    ) -> ProgressUpdateRequest:
        """Attach the submitter's non-binding self-review.

        Raises:
            Forbidden: If the role may not self-review, or the actor did not
                submit the request.
            InvalidState: If the request is no longer pending.
        """
        verdict = _coerce_verdict(verdict)
        require_permission(actor_role, "self_review_progress_update")
        request = self._load(request_id)

        if acting_caregiver_id != request.submitted_by:
            raise Forbidden(
                f"Caregiver '{acting_caregiver_id}' cannot review request "
                f"{request.request_id}; only its submitter '{request.submitted_by}' can."
            )
        if request.is_terminal:
            raise InvalidState(
                f"Request {request.request_id} is {request.status.value}; "
                "self-review is only allowed while pending approval."
            )

        updated = self._store.compare_and_set_status(
            request.request_id,
            ApprovalStatus.PENDING_APPROVAL,
            {"self_review": SelfReview(verdict=verdict, reviewed_by=acting_caregiver_id)},
        )
        if updated is None:
            raise InvalidState(
                f"Request {request.request_id} was decided before the self-review was saved."
            )

        self._audit_log.record(
            AuditEventType.PROGRESS_SELF_REVIEWED,
            actor_id=acting_caregiver_id,
            actor_role=actor_role.value,
            target_entity=request.request_id,
            patient_id=request.patient_id,
            metadata={"verdict": verdict.value, "status": updated.status.value},
        )
        return updated

    def decide(
        self,
        request_id: str,
        deciding_clinician_id: str,
        verdict: ReviewVerdict | str,
        *,
        notes: str = "",
        actor_role: StaffRole = StaffRole.CLINICIAN,
    ) -> ProgressUpdateRequest:
        """Binding clinician decision: PENDING_APPROVAL -> APPROVED | REJECTED.

        Args:
            request_id: The request to decide.
            deciding_clinician_id: The supervising clinician.
            verdict: ``approve`` or ``reject``.
            notes: Optional decision notes kept on the request.
            actor_role: Role of the decider.

        Returns:
            The updated request.

        Raises:
            Forbidden: If the role may not decide, or the decider submitted
                the request.
            InvalidState: If the request is already approved or rejected.
        """
        verdict = _coerce_verdict(verdict)
        _require_id(deciding_clinician_id, "deciding_clinician_id")
        require_permission(actor_role, "decide_progress_update")

        request = self._load(request_id)
        if deciding_clinician_id == request.submitted_by:
            raise Forbidden("A progress update cannot be decided by its own submitter.")

        target = _STATUS_FOR_VERDICT[verdict]
        self._validate_transition(request, target)

        updated = self._store.compare_and_set_status(
            request.request_id,
            ApprovalStatus.PENDING_APPROVAL,
            {
                "status": target,
                "decided_by": deciding_clinician_id,
                "decided_at": datetime.now(timezone.utc),
                "decision_notes": notes,
            },
        )
        if updated is None:
            current = self._load(request.request_id)
            raise InvalidState(
                f"Request {request.request_id} was already {current.status.value} "
                "by a concurrent decision."
            )

        event = (
            AuditEventType.PROGRESS_APPROVED
            if target == ApprovalStatus.APPROVED
            else AuditEventType.PROGRESS_REJECTED
        )
        self._audit_log.record(
            event,
            actor_id=deciding_clinician_id,
            actor_role=actor_role.value,
            target_entity=request.request_id,
            patient_id=request.patient_id,
            metadata={
                "new_status": target.value,
                "notes": notes,
                "self_review": updated.self_review.verdict.value if updated.self_review else None,
            },
        )
        logger.info(
            "Progress update %s %s by %s", request.request_id, target.value, deciding_clinician_id
        )

        if target == ApprovalStatus.APPROVED:
            self._apply_to_treatment_record(updated)
        return updated

    def _apply_to_treatment_record(self, request: ProgressUpdateRequest) -> None:
        payload = request.payload
        reported = [
            p for p in (payload.physical_progress, payload.mental_progress) if p is not None
        ]
        changes: dict[str, Any] = {
            "last_updated": request.decided_at,
            "last_updated_by": request.decided_by,
        }
        if payload.pain_level is not None:
            changes["current_pain_level"] = payload.pain_level
        if payload.mood is not None:
            changes["current_mood"] = payload.mood
        if payload.energy is not None:
            changes["current_energy"] = payload.energy

        def merge(record: TreatmentRecord) -> TreatmentRecord:
            # Progress never goes down, whatever order approvals land in.
            return record.model_copy(
                update={**changes, "progress": max([record.progress, *reported])}
            )

        record, updated = self._store.update_treatment_record(request.patient_id, merge)

        self._audit_log.record(
            AuditEventType.TREATMENT_RECORD_UPDATED,
            actor_id=request.decided_by or "SYSTEM",
            actor_role=StaffRole.CLINICIAN.value,
            target_entity=request.request_id,
            patient_id=request.patient_id,
            metadata={"previous_progress": record.progress, "progress": updated.progress},
        )

    # -- queries --

    def get(self, request_id: str) -> ProgressUpdateRequest:
        return self._load(request_id)

    def list_for_patient(
        self, patient_id: str, status: Optional[ApprovalStatus] = None
    ) -> list[ProgressUpdateRequest]:
        requests = self._store.list_progress_requests(patient_id)
        if status is not None:
            requests = [r for r in requests if r.status == status]
        return requests

    @staticmethod
    def summary(requests: list[ProgressUpdateRequest]) -> dict[str, int]:
        """Counts by status, as shown on the clinician approval panel."""
        return {
            "total": len(requests),
            "pending": sum(1 for r in requests if r.status == ApprovalStatus.PENDING_APPROVAL),
            "approved": sum(1 for r in requests if r.status == ApprovalStatus.APPROVED),
            "rejected": sum(1 for r in requests if r.status == ApprovalStatus.REJECTED),
        }
