"""
Complaint Application DTOs
===========================

Data Transfer Objects for the complaints API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from dcms.complaints.domain import Complaint, Department, StatusLog


# ========== Type Aliases for Literals ==========
ComplaintStatusStr = Literal[
    "submitted", "pending_review", "approved", "rejected", "assigned",
    "in_progress", "resolved", "closed", "escalated"
]
UrgencyLevelStr = Literal["normal", "high", "critical"]
ResolutionTypeStr = Literal["fixed", "duplicate", "invalid", "referred"]


# ========== Request DTOs ==========

class ComplaintCreateRequest(BaseModel):
    """Request model for complaint submission."""
    description: str = Field(..., min_length=10, max_length=5000, description="What happened")
    user_id: Optional[str] = Field(None, description="Submitting citizen")
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    location_address: Optional[str] = Field(None, max_length=500)
    location_landmark: Optional[str] = Field(None, max_length=200)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Reject whitespace-only descriptions."""
        if len(v.strip()) < 10:
            raise ValueError("Description must be at least 10 characters")
        return v.strip()


class ReviewRequest(BaseModel):
    """Request model for manual review of a pending complaint."""
    reviewer_id: str = Field(..., min_length=1)
    approved: bool
    notes: Optional[str] = Field(None, max_length=2000)
    department_id: Optional[UUID] = Field(None, description="Department override")
    urgency: Optional[UrgencyLevelStr] = Field(None, description="Urgency override")


class StatusUpdateRequest(BaseModel):
    """Request model for a department status update."""
    status: ComplaintStatusStr
    updated_by: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=2000)
    resolution_type: Optional[ResolutionTypeStr] = None


class AssignRequest(BaseModel):
    """Request model for assigning a complaint to a field officer."""
    assigned_to: Optional[str] = None
    assigned_by: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    """Request model for citizen feedback."""
    user_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    feedback_text: Optional[str] = Field(None, max_length=1000)


class ComplaintFilterDTO(BaseModel):
    """Query parameters for complaint listing."""
    status: Optional[ComplaintStatusStr] = None
    urgency: Optional[UrgencyLevelStr] = None
    department_id: Optional[UUID] = None
    sla_breached: Optional[bool] = None
    search: Optional[str] = Field(None, max_length=200)
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    def to_filters(self) -> Dict[str, Any]:
        """Filter dict understood by IComplaintRepository.list."""
        return self.model_dump(exclude={"limit", "offset"}, exclude_none=True)


# ========== Response DTOs ==========

class ComplaintResponse(BaseModel):
    """Response model for a complaint."""
    id: UUID
    user_id: Optional[str]
    description: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_address: Optional[str] = None
    location_landmark: Optional[str] = None
    status: ComplaintStatusStr
    urgency: UrgencyLevelStr
    priority_score: float
    department_id: Optional[UUID] = None
    is_critical_area: bool
    sla_deadline: Optional[datetime] = None
    sla_breached: bool
    ai_confidence: Optional[float] = None
    ai_reasoning: Optional[str] = None
    is_auto_approved: bool
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolution_type: Optional[str] = None
    citizen_feedback_rating: Optional[int] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: datetime

    @classmethod
    def from_domain(cls, complaint: Complaint) -> "ComplaintResponse":
        """Create from domain entity."""
        return cls(
            id=complaint.id,
            user_id=complaint.user_id,
            description=complaint.description,
            location_lat=complaint.location.lat,
            location_lng=complaint.location.lng,
            location_address=complaint.location.address,
            location_landmark=complaint.location.landmark,
            status=complaint.status.value,
            urgency=complaint.urgency.value,
            priority_score=complaint.priority_score,
            department_id=complaint.department_id,
            is_critical_area=complaint.is_critical_area,
            sla_deadline=complaint.sla_deadline,
            sla_breached=complaint.sla_breached,
            ai_confidence=complaint.ai_confidence,
            ai_reasoning=complaint.ai_reasoning,
            is_auto_approved=complaint.is_auto_approved,
            assigned_to=complaint.assigned_to,
            resolution_notes=complaint.resolution_notes,
            resolution_type=complaint.resolution_type,
            citizen_feedback_rating=complaint.citizen_feedback_rating,
            created_at=complaint.created_at,
            approved_at=complaint.approved_at,
            resolved_at=complaint.resolved_at,
            closed_at=complaint.closed_at,
            updated_at=complaint.updated_at,
        )


class ComplaintListResponse(BaseModel):
    """Response model for a page of complaints."""
    complaints: List[ComplaintResponse]
    limit: int
    offset: int


class StatusLogResponse(BaseModel):
    """Response model for one status log row."""
    id: UUID
    old_status: Optional[ComplaintStatusStr]
    new_status: ComplaintStatusStr
    changed_by: str
    change_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_domain(cls, log: StatusLog) -> "StatusLogResponse":
        return cls(
            id=log.id,
            old_status=log.old_status.value if log.old_status else None,
            new_status=log.new_status.value,
            changed_by=log.changed_by,
            change_reason=log.change_reason,
            metadata=log.metadata,
            created_at=log.created_at,
        )


class EscalationResponse(BaseModel):
    """Response model for one escalation row."""
    id: UUID
    complaint_id: UUID
    level: str
    previous_level: Optional[str] = None
    reason: str
    is_system: bool
    acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, escalation: Any) -> "EscalationResponse":
        return cls(
            id=escalation.id,
            complaint_id=escalation.complaint_id,
            level=escalation.level.value,
            previous_level=escalation.previous_level.value if escalation.previous_level else None,
            reason=escalation.reason,
            is_system=escalation.is_system,
            acknowledged=escalation.acknowledged,
            acknowledged_by=escalation.acknowledged_by,
            acknowledged_at=escalation.acknowledged_at,
            created_at=escalation.created_at,
        )


class TimelineResponse(BaseModel):
    """Status history and escalations of one complaint, oldest first."""
    status_logs: List[StatusLogResponse]
    escalations: List[EscalationResponse]


class DepartmentResponse(BaseModel):
    """Response model for a department."""
    id: UUID
    name: str
    code: str
    sla_hours: Optional[float] = None
    escalation_email: Optional[str] = None
    is_active: bool

    @classmethod
    def from_domain(cls, department: Department) -> "DepartmentResponse":
        return cls(
            id=department.id,
            name=department.name,
            code=department.code,
            sla_hours=department.sla_hours,
            escalation_email=department.escalation_email,
            is_active=department.is_active,
        )
