"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import date, datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ========== Type Aliases for Literals ==========
InboundEventStr = Literal[
    "complaint_assigned", "status_update", "escalation_acknowledged", "notification_sent"
]


# ========== Request DTOs ==========

class AcknowledgeRequest(BaseModel):
    """Request model for acknowledging an escalation."""
    user_id: str = Field(..., min_length=1, description="Who acknowledges")


class WebhookEventRequest(BaseModel):
    """Inbound event from the workflow engine."""
    event_type: InboundEventStr
    timestamp: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    signature: Optional[str] = None


# ========== Response DTOs ==========

class SLAStatusResponse(BaseModel):
    """Time left until a complaint's SLA deadline."""
    complaint_id: UUID
    sla_deadline: Optional[datetime] = None
    is_breached: bool = False
    hours_remaining: Optional[float] = None
    formatted: Optional[str] = None


class SLACheckResponse(BaseModel):
    """Counts from one SLA sweep."""
    checked: int
    warnings: int
    breaches: int
    escalations: int


class SLAStatisticsResponse(BaseModel):
    """SLA compliance figures."""
    total_complaints: int
    sla_breached: int
    sla_compliance_rate: float
    resolved_on_time: int
    resolution_rate: float


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the workflow engine."""
    success: bool = True
    event_type: str
    message: str


class DepartmentStatisticsResponse(BaseModel):
    """Workload of one department."""
    department_id: UUID
    department_name: str
    department_code: str
    total_complaints: int
    open_complaints: int
    breached_complaints: int
    avg_resolution_hours: Optional[float] = None


class ClassifierPerformanceResponse(BaseModel):
    """Auto-approval figures for one day of classified complaints."""
    day: date
    total_classified: int
    avg_confidence: Optional[float] = None
    auto_approved: int
    manual_review: int
    auto_approval_rate: float
