"""
Core data models for the Rehab Triage & Care-Team Assignment Engine.

Caregivers are the "medical buddies" of the rehabilitation center: staff
members certified at a capability tier (bronze, silver, gold) who carry a
patient caseload and submit progress updates for clinician approval.

DISCLAIMER: Severity assessments are routing signals for staff review, not
diagnoses or treatment decisions.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SeverityLevel(str, enum.Enum):
    """Severity band derived from the 0-10 severity score.

    * ``LOW``      -- score <= 5; routine care.
    * ``MODERATE`` -- 5 < score <= 8; specialized care recommended.
    * ``EXTREME``  -- score > 8; intensive care required.
    """

    LOW = "low"
    MODERATE = "moderate"
    EXTREME = "extreme"


class Urgency(str, enum.Enum):
    """How quickly the case should be picked up."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CaregiverTier(str, enum.Enum):
    """Certified capability tier of a caregiver.

    Bronze handles low-severity cases, silver moderate, gold extreme.
    """

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class CaregiverStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class StaffRole(str, enum.Enum):
    """Staff roles that interact with the engine."""

    CAREGIVER = "caregiver"
    NURSE = "nurse"
    CLINICIAN = "clinician"
    RECEPTIONIST = "receptionist"
    ADMIN = "admin"


class ReviewVerdict(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApprovalStatus(str, enum.Enum):
    """Authoritative status of a progress update.

    ``PENDING_APPROVAL`` is the only non-terminal state; ``APPROVED`` and
    ``REJECTED`` are terminal and can only be reached through a clinician
    decision.
    """

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Triage records
# ---------------------------------------------------------------------------

class SeverityAssessment(BaseModel):
    """Structured result of classifying one injury description.

    Created once per triage request and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    assessment_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this assessment.",
    )
    severity_score: float = Field(
        ...,
        ge=0,
        le=10,
        description="Severity on a 0-10 scale.",
    )
    severity_level: SeverityLevel = Field(
        ...,
        description="Band derived from severity_score.",
    )
    urgency: Urgency = Field(
        ...,
        description="Reported urgency; correlated with, but independent of, the level.",
    )
    risk_factors: list[str] = Field(
        default_factory=list,
        description="Advisory, non-authoritative risk factors in reported order.",
    )
    recommended_care: str = Field(
        default="",
        description="Free-text care recommendation.",
    )
    required_tier: CaregiverTier = Field(
        ...,
        description="Caregiver tier needed to handle this case.",
    )
    is_fallback: bool = Field(
        default=False,
        description="True when produced by the local keyword heuristic instead of the service.",
    )
    model: str = Field(
        default="",
        description="Classifier model that produced the assessment ('heuristic' for fallbacks).",
    )
    description: str = Field(
        default="",
        description="The trimmed injury description that was classified.",
    )
    assessed_at: datetime = Field(default_factory=_utcnow)


class Caregiver(BaseModel):
    """A roster entry.  Read-only to the engine."""

    caregiver_id: str = Field(
        ...,
        min_length=1,
        description="Unique identifier of the caregiver account.",
    )
    display_name: str = Field(default="")
    tier: Optional[CaregiverTier] = Field(
        default=None,
        description="Certified tier.  Unset is treated as bronze.",
    )
    status: CaregiverStatus = Field(default=CaregiverStatus.ACTIVE)
    max_patients: int = Field(
        default=5,
        ge=1,
        description="Nominal caseload ceiling.  Advisory unless capacity enforcement is enabled.",
    )

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_tier(cls, v: Any) -> Any:
        # Account records store tiers as free strings ("Gold", "", None).
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @property
    def effective_tier(self) -> CaregiverTier:
        return self.tier or CaregiverTier.BRONZE

    @property
    def is_active(self) -> bool:
        return self.status == CaregiverStatus.ACTIVE


class Assignment(BaseModel):
    """A caregiver-to-patient assignment.  Superseded, never mutated."""

    model_config = ConfigDict(frozen=True)

    assignment_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: str = Field(..., min_length=1)
    caregiver_id: str = Field(..., min_length=1)
    assigned_tier: CaregiverTier = Field(
        ...,
        description="Tier the triage required (not necessarily the caregiver's own tier).",
    )
    assessment_id: Optional[str] = Field(
        default=None,
        description="Assessment that drove this assignment.",
    )
    assigned_at: datetime = Field(default_factory=_utcnow)


class CareTeam(BaseModel):
    """Current staff assigned to a patient."""

    patient_id: str = Field(..., min_length=1)
    doctor_id: Optional[str] = None
    nurse_id: Optional[str] = None
    caregiver_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Progress updates
# ---------------------------------------------------------------------------

class ProgressPayload(BaseModel):
    """Progress data submitted by a caregiver.

    Progress areas are percentages (0-100); pain, mood and energy use the
    0-10 scale of the patient check-in forms.
    """

    physical_progress: Optional[float] = Field(default=None, ge=0, le=100)
    mental_progress: Optional[float] = Field(default=None, ge=0, le=100)
    emotional_progress: Optional[float] = Field(default=None, ge=0, le=100)
    social_progress: Optional[float] = Field(default=None, ge=0, le=100)
    pain_level: Optional[float] = Field(default=None, ge=0, le=10)
    mood: Optional[float] = Field(default=None, ge=0, le=10)
    energy: Optional[float] = Field(default=None, ge=0, le=10)
    notes: str = ""
    recommendations: str = ""
    next_steps: str = ""


class SelfReview(BaseModel):
    """Non-binding annotation a caregiver attaches to their own request."""

    model_config = ConfigDict(frozen=True)

    verdict: ReviewVerdict
    reviewed_by: str
    reviewed_at: datetime = Field(default_factory=_utcnow)


class ProgressUpdateRequest(BaseModel):
    """A progress update moving through the approval workflow.

    ``status`` is authoritative and is only changed by a clinician decision.
    ``self_review`` is an orthogonal annotation by the submitter.
    """

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: str = Field(..., min_length=1)
    submitted_by: str = Field(
        ...,
        min_length=1,
        description="Caregiver id of the submitter.",
    )
    submitted_at: datetime = Field(default_factory=_utcnow)
    payload: ProgressPayload = Field(default_factory=ProgressPayload)
    status: ApprovalStatus = Field(default=ApprovalStatus.PENDING_APPROVAL)
    self_review: Optional[SelfReview] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_notes: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status != ApprovalStatus.PENDING_APPROVAL


class TreatmentRecord(BaseModel):
    """Official treatment record fields affected by approved progress updates."""

    patient_id: str = Field(..., min_length=1)
    progress: float = Field(default=0.0, ge=0, le=100)
    current_pain_level: Optional[float] = None
    current_mood: Optional[float] = None
    current_energy: Optional[float] = None
    last_updated: Optional[datetime] = None
    last_updated_by: Optional[str] = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationRequest(BaseModel):
    """Request to tell a staff member about a care-team change.

    Delivery is the notification subsystem's job; the engine only emits the
    request.
    """

    model_config = ConfigDict(frozen=True)

    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: str
    role: StaffRole
    recipient_id: str
    message: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
