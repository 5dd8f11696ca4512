"""
Care-team notification interface.

The engine emits one ``NotificationRequest`` per staff role whose
assignment changed for a patient.  Delivery (in-app, email) belongs to the
notification subsystem behind the ``Notifier`` protocol; the engine does not
retry failed deliveries.

``InMemoryNotifier`` keeps an outbox and is what tests and the example
walkthrough use.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from rehabtriage.models import NotificationRequest, StaffRole

logger = logging.getLogger(__name__)


_ROLE_LABELS: dict[StaffRole, str] = {
    StaffRole.CLINICIAN: "supervising clinician",
    StaffRole.NURSE: "nurse",
    StaffRole.CAREGIVER: "caregiver",
}


class Notifier(Protocol):
    """Delivers one notification request.

    Implementations wrap mail, push or in-app transports and may raise
    whatever their transport raises.  The assignment coordinator treats any
    exception from ``notify`` as a failed delivery: it is logged and
    audited as ``NOTIFICATION_FAILED`` and never undoes the assignment.
    """

    def notify(self, request: NotificationRequest) -> None: ...


def assignment_message(patient_id: str, role: StaffRole) -> str:
    """Human-readable body for an assignment notification."""
    label = _ROLE_LABELS.get(role, role.value)
    return f"You have been assigned as {label} for patient {patient_id}."


def build_assignment_notification(
    patient_id: str, role: StaffRole, recipient_id: str
) -> NotificationRequest:
    return NotificationRequest(
        patient_id=patient_id,
        role=role,
        recipient_id=recipient_id,
        message=assignment_message(patient_id, role),
    )


class InMemoryNotifier:
    """Collects notification requests in an outbox instead of delivering them."""

    def __init__(self) -> None:
        self._outbox: list[NotificationRequest] = []
        self._lock = threading.Lock()

    def notify(self, request: NotificationRequest) -> None:
        with self._lock:
            self._outbox.append(request)
        logger.debug(
            "Queued %s notification for %s (patient %s)",
            request.role.value,
            request.recipient_id,
            request.patient_id,
        )

    def sent(
        self,
        recipient_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> list[NotificationRequest]:
        with self._lock:
            return [
                n
                for n in self._outbox
                if (recipient_id is None or n.recipient_id == recipient_id)
                and (patient_id is None or n.patient_id == patient_id)
            ]

    def __len__(self) -> int:
        return len(self._outbox)
