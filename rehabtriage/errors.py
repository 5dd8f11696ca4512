"""
Error taxonomy for the triage engine and approval workflow.

* ``InvalidInput``           -- caller error (empty description, unknown or
  malformed ids).
* ``ExternalServiceFailure`` -- classification service failed; always
  recovered inside the classifier client and never seen by callers.
* ``NoCandidates``           -- no active caregiver can take the assignment.
* ``Forbidden``              -- actor is not allowed to perform the action.
* ``InvalidState``           -- transition attempted on a record in the
  wrong state.
"""

from __future__ import annotations


class TriageError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidInput(TriageError, ValueError):
    """Raised when caller-supplied input is empty or malformed."""
    pass


class ExternalServiceFailure(TriageError):
    """Raised internally when the classification service call fails."""
    pass


class NoCandidates(TriageError):
    """Raised when there is no caregiver to select from."""
    pass


class Forbidden(TriageError, PermissionError):
    """Raised when an actor attempts an action they are not entitled to."""
    pass


class InvalidState(TriageError):
    """Raised when a state transition is not permitted."""
    pass


class AssignmentConflict(InvalidState):
    """Raised when concurrent writers kept invalidating the workload snapshot."""
    pass
