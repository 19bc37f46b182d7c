"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from dcms.config import EscalationLevel
from dcms.infrastructure.database import Base


class EscalationModel(Base):
    """
    Database model for Escalation entity.

    Maps to the 'escalations' table. Rows are never deleted; only the
    acknowledgement columns are ever updated. A complaint reaches each
    level at most once.
    """
    __tablename__ = "escalations"
    __table_args__ = (
        UniqueConstraint("complaint_id", "level", name="uq_escalations_complaint_level"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    complaint_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("complaints.id"), nullable=False, index=True
    )

    # Ladder position
    level: Mapped[EscalationLevel] = mapped_column(String(50), nullable=False)
    previous_level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Acknowledgement
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
        default=lambda: datetime.now(timezone.utc)
    )
