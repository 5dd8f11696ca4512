"""
Load-Balanced Selector.

Chooses one caregiver from an eligible set by current workload: the number
of assignments held for patients who are still active.  The candidate with
the strictly smallest workload wins; on a tie the first candidate in
iteration order is kept.

Workloads are computed from the snapshot handed in.  The snapshot is
advisory -- the assignment coordinator re-checks the chosen caregiver's
workload against the record store at write time.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from rehabtriage.errors import NoCandidates
from rehabtriage.models import Assignment, Caregiver


def _counts(
    assignments: Iterable[Assignment],
    active_patient_ids: Optional[set[str]],
) -> dict[str, int]:
    counts: dict[str, int] = {}
    for a in assignments:
        if active_patient_ids is not None and a.patient_id not in active_patient_ids:
            continue
        counts[a.caregiver_id] = counts.get(a.caregiver_id, 0) + 1
    return counts


def workload_for(
    caregiver_id: str,
    assignments: Iterable[Assignment],
    active_patient_ids: Optional[set[str]] = None,
) -> int:
    """Count a caregiver's assignments to active patients.

    ``active_patient_ids=None`` treats every patient as active.
    """
    return _counts(assignments, active_patient_ids).get(caregiver_id, 0)


def workload_snapshot(
    candidates: list[Caregiver],
    assignments: Iterable[Assignment],
    active_patient_ids: Optional[set[str]] = None,
) -> dict[str, int]:
    """Workload per candidate id (zero for candidates with no assignments)."""
    counts = _counts(assignments, active_patient_ids)
    return {c.caregiver_id: counts.get(c.caregiver_id, 0) for c in candidates}


def select_least_loaded(
    candidates: list[Caregiver],
    current_assignments: Iterable[Assignment],
    *,
    active_patient_ids: Optional[set[str]] = None,
    enforce_capacity: bool = False,
) -> Caregiver:
    """Pick the least-loaded candidate.

    Args:
        candidates: Eligible caregivers, in preference order.
        current_assignments: Assignment ledger snapshot.
        active_patient_ids: Patients still under care; ``None`` means all.
        enforce_capacity: Skip candidates whose workload has reached
            ``max_patients``.

    Returns:
        The chosen caregiver.  No candidate has a smaller workload.

    Raises:
        NoCandidates: If ``candidates`` is empty, or every candidate is at
            capacity while capacity is enforced.
    """
    if not candidates:
        raise NoCandidates("No candidate caregivers to select from.")

    workloads = workload_snapshot(candidates, current_assignments, active_patient_ids)

    pool = candidates
    if enforce_capacity:
        pool = [c for c in candidates if workloads[c.caregiver_id] < c.max_patients]
        if not pool:
            raise NoCandidates(
                f"All {len(candidates)} candidate caregivers are at capacity."
            )

    best = pool[0]
    for candidate in pool[1:]:
        if workloads[candidate.caregiver_id] < workloads[best.caregiver_id]:
            best = candidate
    return best
