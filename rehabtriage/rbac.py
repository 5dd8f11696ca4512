"""
Role-Based Access Control for the engine's operations.

The presentation layer authenticates staff; this table decides which role
may perform which engine action.  Ownership rules (a caregiver may only
self-review their *own* request) are enforced by the approval workflow on
top of these role checks.

**Roles:**

* CAREGIVER    -- submits progress updates, self-reviews own submissions.
* NURSE        -- views triage reports.
* CLINICIAN    -- binding approval of progress updates.
* RECEPTIONIST -- patient intake and caregiver assignment.
* ADMIN        -- assignment and audit export.
"""

from __future__ import annotations

from rehabtriage.errors import Forbidden
from rehabtriage.models import StaffRole


_ACTIONS = (
    "assign_caregiver",
    "view_triage_report",
    "submit_progress_update",
    "self_review_progress_update",
    "decide_progress_update",
    "export_audit",
)

# Maps role -> actions allowed; anything not listed is denied
_ALLOWED: dict[StaffRole, frozenset[str]] = {
    StaffRole.CAREGIVER: frozenset({
        "view_triage_report",
        "submit_progress_update",
        "self_review_progress_update",
    }),
    StaffRole.NURSE: frozenset({"view_triage_report"}),
    StaffRole.CLINICIAN: frozenset({
        "view_triage_report",
        "decide_progress_update",
    }),
    StaffRole.RECEPTIONIST: frozenset({
        "assign_caregiver",
        "view_triage_report",
    }),
    StaffRole.ADMIN: frozenset({
        "assign_caregiver",
        "view_triage_report",
        "export_audit",
    }),
}


def check_permission(role: StaffRole, action: str) -> bool:
    """Whether ``role`` may perform ``action``."""
    return action in _ALLOWED.get(role, frozenset())


def require_permission(role: StaffRole, action: str) -> None:
    """Enforce a permission check.

    Raises:
        Forbidden: If the role is not permitted.
    """
    if not check_permission(role, action):
        raise Forbidden(
            f"Role '{role.value}' is not permitted to perform action '{action}'."
        )


def get_permissions_for_role(role: StaffRole) -> dict[str, bool]:
    """Every known action mapped to whether ``role`` may perform it."""
    return {action: check_permission(role, action) for action in _ACTIONS}
