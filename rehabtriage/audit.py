"""
Append-Only, Tamper-Evident Audit Trail (Hash-Chained).

Every decision the engine makes -- severity classifications, caregiver
assignments, notification dispatches, progress-update submissions,
self-reviews and clinician decisions -- is recorded as a structured,
append-only audit entry.  Entries are linked via a SHA-256 hash chain: if
any entry is modified after the fact, ``verify_chain()`` detects it.

Progress-update history is never deleted; together with this trail it forms
the audit history of each treatment record.

**Scope note:**  The hash chain gives structural tamper evidence for audit
review.  Durable storage guarantees (WORM storage, object lock) belong to
the record store deployment.
"""

from __future__ import annotations

import enum
import hashlib
import json
import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from rehabtriage.models import StaffRole
from rehabtriage.rbac import require_permission


# ---------------------------------------------------------------------------
# Audit event types
# ---------------------------------------------------------------------------

class AuditEventType(str, enum.Enum):
    """All auditable engine events."""

    # Triage
    TRIAGE_CLASSIFIED = "TRIAGE_CLASSIFIED"

    # Assignment
    CAREGIVER_ASSIGNED = "CAREGIVER_ASSIGNED"
    ASSIGNMENT_CONFLICT = "ASSIGNMENT_CONFLICT"
    ASSIGNMENT_FAILED = "ASSIGNMENT_FAILED"

    # Notifications
    NOTIFICATION_DISPATCHED = "NOTIFICATION_DISPATCHED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"

    # Progress-update workflow
    PROGRESS_SUBMITTED = "PROGRESS_SUBMITTED"
    PROGRESS_SELF_REVIEWED = "PROGRESS_SELF_REVIEWED"
    PROGRESS_APPROVED = "PROGRESS_APPROVED"
    PROGRESS_REJECTED = "PROGRESS_REJECTED"
    TREATMENT_RECORD_UPDATED = "TREATMENT_RECORD_UPDATED"

    # Audit operations
    AUDIT_EXPORTED = "AUDIT_EXPORTED"


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class AuditEntry(BaseModel):
    """A single audit log entry, hash-linked to its predecessor."""

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: str = Field(
        ...,
        description="Who acted (caregiver id, clinician id, or 'SYSTEM').",
    )
    actor_role: str = Field(
        ...,
        description="Role of the actor (caregiver, clinician, receptionist, SYSTEM, ...).",
    )
    event_type: AuditEventType
    target_entity: str = Field(
        default="",
        description="Identifier of the affected record (assignment, request, assessment).",
    )
    patient_id: str = Field(default="")
    metadata: dict[str, Any] = Field(default_factory=dict)
    previous_hash: str = Field(
        default="",
        description="SHA-256 of the previous entry; empty for the first entry.",
    )

    def canonical_bytes(self) -> bytes:
        """Deterministic byte representation used for hashing."""
        data = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "event_type": self.event_type.value,
            "target_entity": self.target_entity,
            "patient_id": self.patient_id,
            "metadata": self.metadata,
            "previous_hash": self.previous_hash,
        }
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# PHI redaction
# ---------------------------------------------------------------------------

_PHI_PATTERNS: dict[str, re.Pattern] = {
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "phone": re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
}

# Patient intake fields that never leave the facility in an export.
_PHI_KEYS = {"name", "patient_name", "first_name", "last_name", "dob", "date_of_birth",
             "email", "phone", "address", "emergency_contact"}


def redact_phi_from_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``metadata`` with PHI-looking values replaced.

    Keys in the PHI key list are replaced with ``[REDACTED]``; string values
    have SSN, phone and email patterns masked.  Nested dicts and lists of
    strings are handled recursively.
    """
    redacted: dict[str, Any] = {}
    for key, value in metadata.items():
        if key.lower() in _PHI_KEYS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = _redact_value(value)
    return redacted


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        for pattern_name, pattern in _PHI_PATTERNS.items():
            value = pattern.sub(f"[REDACTED-{pattern_name.upper()}]", value)
        return value
    if isinstance(value, dict):
        return redact_phi_from_metadata(value)
    if isinstance(value, list):
        return [_redact_value(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only, hash-chained audit log.

    There are no update or delete methods.  ``append`` is thread-safe so
    concurrent assignments produce a single consistent chain.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._hashes: list[str] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Link ``entry`` to the chain and store it."""
        with self._lock:
            entry.previous_hash = self._hashes[-1] if self._hashes else ""
            self._entries.append(entry)
            self._hashes.append(entry.compute_hash())
        return entry

    def record(
        self,
        event_type: AuditEventType,
        *,
        actor_id: str = "SYSTEM",
        actor_role: str = "SYSTEM",
        target_entity: str = "",
        patient_id: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Build and append an entry in one call."""
        return self.append(AuditEntry(
            actor_id=actor_id,
            actor_role=actor_role,
            event_type=event_type,
            target_entity=target_entity,
            patient_id=patient_id,
            metadata=metadata or {},
        ))

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)``; ``broken_at`` is the index of the first
            broken link, or None.
        """
        with self._lock:
            entries = list(self._entries)
            hashes = list(self._hashes)

        for i, entry in enumerate(entries):
            if i == 0:
                if entry.previous_hash != "":
                    return (False, 0)
            elif entry.previous_hash != entries[i - 1].compute_hash():
                return (False, i)

            if hashes[i] != entry.compute_hash():
                return (False, i)

        return (True, None)

    def query(
        self,
        patient_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        target_entity: Optional[str] = None,
        actor_id: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        """Return copies of matching entries in append order."""
        with self._lock:
            entries = list(self._entries)

        results = []
        for entry in entries:
            if patient_id is not None and entry.patient_id != patient_id:
                continue
            if event_type is not None and entry.event_type != event_type:
                continue
            if target_entity is not None and entry.target_entity != target_entity:
                continue
            if actor_id is not None and entry.actor_id != actor_id:
                continue
            if time_start is not None and entry.timestamp < time_start:
                continue
            if time_end is not None and entry.timestamp > time_end:
                continue
            results.append(entry.model_copy(deep=True))
        return results

    def export_for_review(
        self,
        patient_id: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Produce a JSON-serializable, PHI-redacted export bundle."""
        entries = self.query(patient_id=patient_id, time_start=time_start, time_end=time_end)

        redacted_entries = []
        for entry in entries:
            entry_dict = entry.model_dump(mode="json")
            entry_dict["metadata"] = redact_phi_from_metadata(entry.metadata)
            redacted_entries.append(entry_dict)

        chain_valid, broken_at = self.verify_chain()

        return {
            "export_metadata": {
                "patient_id": patient_id,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "entry_count": len(redacted_entries),
                "chain_integrity": "VALID" if chain_valid else f"BROKEN_AT_INDEX_{broken_at}",
            },
            "entries": redacted_entries,
        }

    def export_as(
        self,
        actor_id: str,
        actor_role: StaffRole,
        patient_id: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Export on behalf of a staff member and audit the export itself.

        Raises:
            Forbidden: If ``actor_role`` may not export the audit trail.
        """
        require_permission(actor_role, "export_audit")
        bundle = self.export_for_review(patient_id, time_start=time_start, time_end=time_end)
        self.record(
            AuditEventType.AUDIT_EXPORTED,
            actor_id=actor_id,
            actor_role=actor_role.value,
            patient_id=patient_id or "",
            metadata={
                "entry_count": bundle["export_metadata"]["entry_count"],
                "chain_integrity": bundle["export_metadata"]["chain_integrity"],
            },
        )
        return bundle

    def __len__(self) -> int:
        return len(self._entries)
