"""
Complaint Infrastructure Models
================================

SQLAlchemy ORM models for the complaints module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from dcms.config import ComplaintStatus, UrgencyLevel
from dcms.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DepartmentModel(Base):
    """
    Database model for Department entity.

    Maps to the 'departments' table. Reference data, seeded by migrations.
    """
    __tablename__ = "departments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    sla_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=72)
    escalation_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CriticalAreaModel(Base):
    """
    Database model for CriticalArea entity.

    Maps to the 'critical_areas' table (rectangular geofences).
    """
    __tablename__ = "critical_areas"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lat_min: Mapped[float] = mapped_column(Float, nullable=False)
    lat_max: Mapped[float] = mapped_column(Float, nullable=False)
    lng_min: Mapped[float] = mapped_column(Float, nullable=False)
    lng_max: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ComplaintModel(Base):
    """
    Database model for Complaint entity.

    Maps to the 'complaints' table. ``status`` is only ever written by the
    guarded update in SQLAlchemyComplaintRepository.update_status_guarded.
    """
    __tablename__ = "complaints"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Content and location
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location_landmark: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Lifecycle
    status: Mapped[ComplaintStatus] = mapped_column(
        String(50), nullable=False, index=True, default=ComplaintStatus.SUBMITTED.value
    )
    urgency: Mapped[UrgencyLevel] = mapped_column(
        String(50), nullable=False, default=UrgencyLevel.NORMAL.value
    )
    priority_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )
    is_critical_area: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # SLA tracking
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sla_breach_notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Classifier output
    ai_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ai_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_classified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ai_model_version: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Review
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Assignment and resolution
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Citizen feedback
    citizen_feedback_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    citizen_feedback_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class StatusLogModel(Base):
    """
    Database model for StatusLog entity.

    Maps to the 'complaint_status_logs' table. Insert-only.
    """
    __tablename__ = "complaint_status_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    complaint_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("complaints.id"), nullable=False, index=True
    )
    old_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
