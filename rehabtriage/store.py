"""
Record store interface and an in-memory implementation.

The engine does not own persistence.  It needs a small set of operations
from the record store -- read the active roster, read assignments, append
assignments, append or update progress requests -- plus the writes
that keep concurrent callers consistent:

* ``append_assignment_if_workload`` -- append only if the caregiver's
  workload is still the value the caller selected on, serialized per
  caregiver.
* ``assign_least_loaded`` -- select and append in one step while holding
  every candidate's lock, for writers that keep losing the race above.
* ``compare_and_set_status`` -- apply field changes to a progress request
  only if its status is still the expected one.

``update_treatment_record`` applies a read-modify-write to a treatment
record under the store lock.

``InMemoryRecordStore`` implements the protocol for tests, examples and
single-process deployments.  All reads return copies so callers cannot
mutate stored records behind the store's back.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from contextlib import ExitStack
from typing import Any, Optional, Protocol

from rehabtriage.models import (
    ApprovalStatus,
    Assignment,
    Caregiver,
    CareTeam,
    ProgressUpdateRequest,
    SeverityAssessment,
    TreatmentRecord,
)
from rehabtriage.selector import select_least_loaded, workload_snapshot


class RecordStore(Protocol):
    """Operations the engine requires from the record store."""

    def read_active_caregivers(self) -> list[Caregiver]: ...

    def read_assignments(self) -> list[Assignment]: ...

    def read_assignments_by_caregiver(self, caregiver_id: str) -> list[Assignment]: ...

    def active_patient_ids(self) -> set[str]: ...

    def append_assignment(self, assignment: Assignment) -> Assignment: ...

    def append_assignment_if_workload(
        self, assignment: Assignment, expected_workload: int
    ) -> bool: ...

    def assign_least_loaded(
        self,
        candidates: list[Caregiver],
        build: Callable[[Caregiver], Assignment],
        *,
        enforce_capacity: bool = False,
        timeout: float = -1,
    ) -> Optional[tuple[Assignment, dict[str, int]]]: ...

    def attach_assessment(self, patient_id: str, assessment: SeverityAssessment) -> None: ...

    def get_care_team(self, patient_id: str) -> Optional[CareTeam]: ...

    def save_care_team(self, team: CareTeam) -> None: ...

    def append_or_update_progress_request(self, request: ProgressUpdateRequest) -> None: ...

    def get_progress_request(self, request_id: str) -> Optional[ProgressUpdateRequest]: ...

    def list_progress_requests(
        self, patient_id: Optional[str] = None
    ) -> list[ProgressUpdateRequest]: ...

    def compare_and_set_status(
        self,
        request_id: str,
        expected: ApprovalStatus,
        changes: dict[str, Any],
    ) -> Optional[ProgressUpdateRequest]: ...

    def get_treatment_record(self, patient_id: str) -> TreatmentRecord: ...

    def save_treatment_record(self, record: TreatmentRecord) -> None: ...

    def update_treatment_record(
        self,
        patient_id: str,
        apply: Callable[[TreatmentRecord], TreatmentRecord],
    ) -> tuple[TreatmentRecord, TreatmentRecord]: ...


class InMemoryRecordStore:
    """Thread-safe in-memory record store.

    The assignment ledger is append-only.  A patient's *current* assignment
    is the most recent one; earlier ones are superseded and no longer count
    toward any caregiver's workload.  Discharged patients do not count
    either.
    """

    def __init__(self, caregivers: list[Caregiver] | None = None) -> None:
        self._lock = threading.RLock()
        self._caregiver_locks: dict[str, threading.Lock] = {}
        self._caregivers: dict[str, Caregiver] = {}
        self._assignments: list[Assignment] = []
        self._discharged: set[str] = set()
        self._assessments: dict[str, list[SeverityAssessment]] = {}
        self._care_teams: dict[str, CareTeam] = {}
        self._requests: dict[str, ProgressUpdateRequest] = {}
        self._treatment_records: dict[str, TreatmentRecord] = {}
        for caregiver in caregivers or []:
            self.save_caregiver(caregiver)

    # -- roster --

    def save_caregiver(self, caregiver: Caregiver) -> None:
        """Insert or replace a roster entry (account management flows)."""
        with self._lock:
            self._caregivers[caregiver.caregiver_id] = caregiver.model_copy(deep=True)

    def read_roster(self) -> list[Caregiver]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._caregivers.values()]

    def read_active_caregivers(self) -> list[Caregiver]:
        """Active roster entries in insertion order."""
        return [c for c in self.read_roster() if c.is_active]

    # -- patients --

    def discharge_patient(self, patient_id: str) -> None:
        """Mark a patient inactive; their assignments stop counting as workload."""
        with self._lock:
            self._discharged.add(patient_id)

    def active_patient_ids(self) -> set[str]:
        with self._lock:
            return {a.patient_id for a in self._assignments} - self._discharged

    # -- assignments --

    def _current_assignments(self) -> list[Assignment]:
        latest: dict[str, Assignment] = {}
        for a in self._assignments:
            latest[a.patient_id] = a
        return list(latest.values())

    def read_assignments(self) -> list[Assignment]:
        """Current (non-superseded) assignments."""
        with self._lock:
            return self._current_assignments()

    def read_assignment_history(self) -> list[Assignment]:
        """Every assignment ever written, oldest first."""
        with self._lock:
            return list(self._assignments)

    def read_assignments_by_caregiver(self, caregiver_id: str) -> list[Assignment]:
        with self._lock:
            return [a for a in self._current_assignments() if a.caregiver_id == caregiver_id]

    def workload(self, caregiver_id: str) -> int:
        """Current assignments held by a caregiver for active patients."""
        with self._lock:
            return sum(
                1
                for a in self._current_assignments()
                if a.caregiver_id == caregiver_id and a.patient_id not in self._discharged
            )

    def _caregiver_lock(self, caregiver_id: str) -> threading.Lock:
        with self._lock:
            lock = self._caregiver_locks.get(caregiver_id)
            if lock is None:
                lock = self._caregiver_locks[caregiver_id] = threading.Lock()
            return lock

    def append_assignment(self, assignment: Assignment) -> Assignment:
        with self._lock:
            self._assignments.append(assignment)
        return assignment

    def append_assignment_if_workload(
        self, assignment: Assignment, expected_workload: int
    ) -> bool:
        """Append ``assignment`` only if the caregiver's workload is unchanged.

        Serialized per caregiver: the recount and the append happen under
        the caregiver's lock, so two writers that selected the same
        caregiver from the same snapshot cannot both succeed.

        Returns:
            True if the assignment was written.
        """
        with self._caregiver_lock(assignment.caregiver_id):
            if self.workload(assignment.caregiver_id) != expected_workload:
                return False
            self.append_assignment(assignment)
            return True

    def assign_least_loaded(
        self,
        candidates: list[Caregiver],
        build: Callable[[Caregiver], Assignment],
        *,
        enforce_capacity: bool = False,
        timeout: float = -1,
    ) -> Optional[tuple[Assignment, dict[str, int]]]:
        """Select the least-loaded candidate and append its assignment atomically.

        Every candidate's lock is held, taken in caregiver-id order, while the
        ledger is read, the caregiver chosen and the assignment appended, so
        no compare-and-set writer or other serialized writer can change those
        workloads in between.

        Args:
            candidates: Eligible caregivers.
            build: Makes the assignment for the chosen caregiver.
            enforce_capacity: Passed to ``select_least_loaded``.
            timeout: Seconds to wait for each lock; negative waits forever.

        Returns:
            The written assignment and the workloads it was selected on, or
            None if a lock could not be acquired in time.

        Raises:
            NoCandidates: Nobody is selectable.
        """
        ids = sorted({c.caregiver_id for c in candidates})
        with ExitStack() as stack:
            for caregiver_id in ids:
                lock = self._caregiver_lock(caregiver_id)
                if not lock.acquire(timeout=timeout):
                    return None
                stack.callback(lock.release)

            assignments = self.read_assignments()
            active = self.active_patient_ids()
            chosen = select_least_loaded(
                candidates,
                assignments,
                active_patient_ids=active,
                enforce_capacity=enforce_capacity,
            )
            workloads = workload_snapshot(candidates, assignments, active)
            assignment = self.append_assignment(build(chosen))
            return assignment, workloads

    # -- assessments and care teams --

    def attach_assessment(self, patient_id: str, assessment: SeverityAssessment) -> None:
        with self._lock:
            self._assessments.setdefault(patient_id, []).append(assessment)

    def read_assessments(self, patient_id: str) -> list[SeverityAssessment]:
        with self._lock:
            return list(self._assessments.get(patient_id, []))

    def get_care_team(self, patient_id: str) -> Optional[CareTeam]:
        with self._lock:
            team = self._care_teams.get(patient_id)
            return team.model_copy() if team else None

    def save_care_team(self, team: CareTeam) -> None:
        with self._lock:
            self._care_teams[team.patient_id] = team.model_copy()

    # -- progress requests --

    def append_or_update_progress_request(self, request: ProgressUpdateRequest) -> None:
        with self._lock:
            self._requests[request.request_id] = request.model_copy(deep=True)

    def get_progress_request(self, request_id: str) -> Optional[ProgressUpdateRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return request.model_copy(deep=True) if request else None

    def list_progress_requests(
        self, patient_id: Optional[str] = None
    ) -> list[ProgressUpdateRequest]:
        """Requests in submission order, optionally for one patient."""
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._requests.values()
                if patient_id is None or r.patient_id == patient_id
            ]

    def compare_and_set_status(
        self,
        request_id: str,
        expected: ApprovalStatus,
        changes: dict[str, Any],
    ) -> Optional[ProgressUpdateRequest]:
        """Apply ``changes`` to a request only if its status is still ``expected``.

        Only the named fields are written; everything else keeps the stored
        value, including fields changed after the caller last read it.

        Returns:
            A copy of the updated request, or None if the request is missing
            or its status moved on.
        """
        with self._lock:
            current = self._requests.get(request_id)
            if current is None or current.status != expected:
                return None
            updated = current.model_copy(update=changes, deep=True)
            self._requests[request_id] = updated
            return updated.model_copy(deep=True)

    # -- treatment records --

    def get_treatment_record(self, patient_id: str) -> TreatmentRecord:
        with self._lock:
            record = self._treatment_records.get(patient_id)
            return record.model_copy() if record else TreatmentRecord(patient_id=patient_id)

    def save_treatment_record(self, record: TreatmentRecord) -> None:
        with self._lock:
            self._treatment_records[record.patient_id] = record.model_copy()

    def update_treatment_record(
        self,
        patient_id: str,
        apply: Callable[[TreatmentRecord], TreatmentRecord],
    ) -> tuple[TreatmentRecord, TreatmentRecord]:
        """Replace a treatment record with ``apply(current)`` under the store lock.

        Returns:
            The previous and the new record.
        """
        with self._lock:
            previous = self.get_treatment_record(patient_id)
            updated = apply(previous.model_copy())
            self._treatment_records[patient_id] = updated.model_copy()
            return previous, updated.model_copy()
