"""
Complaint Domain Entities
==========================

Pure Python domain entities for the complaint lifecycle.

These entities carry data and small pieces of domain logic. Status changes
are never made by assigning ``status`` directly; they go through
``ComplaintLifecycle.transition``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from dcms.config import (
    SLA_EXEMPT_STATUSES,
    TERMINAL_STATUSES,
    ComplaintStatus,
    UrgencyLevel,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Location:
    """Where a complaint was reported."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    landmark: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def describe(self) -> Optional[str]:
        """Human readable context passed to the classifier."""
        parts = [p for p in (self.address, self.landmark) if p]
        if self.has_coordinates:
            parts.append(f"({self.lat}, {self.lng})")
        return ", ".join(parts) or None


@dataclass
class Complaint:
    """
    Complaint entity, the central record of the lifecycle.

    ``priority_score`` and ``sla_deadline`` are filled in on approval.
    """

    description: str
    id: UUID = field(default_factory=uuid4)
    user_id: Optional[str] = None
    location: Location = field(default_factory=Location)

    status: ComplaintStatus = ComplaintStatus.SUBMITTED
    urgency: UrgencyLevel = UrgencyLevel.NORMAL
    priority_score: float = 0.0
    department_id: Optional[UUID] = None
    is_critical_area: bool = False

    # SLA tracking
    sla_deadline: Optional[datetime] = None
    sla_breached: bool = False
    sla_breach_notified: bool = False

    # Classifier output
    ai_confidence: Optional[float] = None
    ai_reasoning: Optional[str] = None
    ai_classified_at: Optional[datetime] = None
    ai_model_version: Optional[str] = None
    is_auto_approved: bool = False

    # Review
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    # Assignment and resolution
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    resolution_type: Optional[str] = None

    # Citizen feedback
    citizen_feedback_rating: Optional[int] = None
    citizen_feedback_text: Optional[str] = None

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    approved_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        self.status = ComplaintStatus(self.status)
        self.urgency = UrgencyLevel(self.urgency)
        if not self.description or not self.description.strip():
            raise ValueError("Complaint description cannot be empty")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_sla_tracked(self) -> bool:
        """Whether the SLA sweep looks at this complaint."""
        return self.sla_deadline is not None and self.status not in SLA_EXEMPT_STATUSES

    def apply(self, fields: Dict[str, Any]) -> None:
        """Copy persisted field values onto the entity."""
        for name, value in fields.items():
            if not hasattr(self, name):
                raise AttributeError(f"Complaint has no field '{name}'")
            setattr(self, name, value)


@dataclass
class StatusLog:
    """
    Append-only record of one status transition.

    ``old_status`` is nullable so imported history without a prior status
    can be stored.
    """
    complaint_id: UUID
    old_status: Optional[ComplaintStatus]
    new_status: ComplaintStatus
    changed_by: str
    change_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Department:
    """A municipal department complaints are routed to."""
    name: str
    code: str
    sla_hours: Optional[float] = None
    escalation_email: Optional[str] = None
    is_active: bool = True
    id: UUID = field(default_factory=uuid4)


@dataclass
class CriticalArea:
    """Rectangular geofence; complaints inside an active area get priority."""
    name: str
    lat_min: float
    lat_max: float
    lng_min: float
    lng_max: float
    is_active: bool = True
    id: UUID = field(default_factory=uuid4)

    def contains(self, lat: float, lng: float) -> bool:
        return (
            self.is_active
            and self.lat_min <= lat <= self.lat_max
            and self.lng_min <= lng <= self.lng_max
        )
