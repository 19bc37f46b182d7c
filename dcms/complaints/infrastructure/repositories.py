"""
Complaint Infrastructure Repositories
======================================

Concrete implementations of the complaint repository interfaces using
SQLAlchemy.

Status is written with a conditional UPDATE (``WHERE status = :expected``)
so a concurrent writer can never be silently overwritten.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dcms.complaints.application import (
    IComplaintRepository,
    ICriticalAreaRepository,
    IDepartmentRepository,
    IStatusLogRepository,
    ITransactionManager,
)
from dcms.complaints.domain import Complaint, Department, Location, StatusLog
from dcms.complaints.infrastructure.models import (
    ComplaintModel,
    CriticalAreaModel,
    DepartmentModel,
    StatusLogModel,
)
from dcms.config import SLA_EXEMPT_STATUSES, ComplaintStatus
from dcms.core import RepositoryException

_LOCATION_COLUMNS = {
    "lat": "location_lat",
    "lng": "location_lng",
    "address": "location_address",
    "landmark": "location_landmark",
}


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Map entity field values onto column values."""
    values = {}
    for name, value in fields.items():
        if name == "location":
            for attr, column in _LOCATION_COLUMNS.items():
                values[column] = getattr(value, attr)
            continue
        if isinstance(value, Enum):
            value = value.value
        values[name] = value
    return values


def _to_domain(model: ComplaintModel) -> Complaint:
    return Complaint(
        id=model.id,
        user_id=model.user_id,
        description=model.description,
        location=Location(
            lat=model.location_lat,
            lng=model.location_lng,
            address=model.location_address,
            landmark=model.location_landmark,
        ),
        status=ComplaintStatus(model.status),
        urgency=model.urgency,
        priority_score=model.priority_score,
        department_id=model.department_id,
        is_critical_area=model.is_critical_area,
        sla_deadline=model.sla_deadline,
        sla_breached=model.sla_breached,
        sla_breach_notified=model.sla_breach_notified,
        ai_confidence=model.ai_confidence,
        ai_reasoning=model.ai_reasoning,
        ai_classified_at=model.ai_classified_at,
        ai_model_version=model.ai_model_version,
        is_auto_approved=model.is_auto_approved,
        reviewed_by=model.reviewed_by,
        reviewed_at=model.reviewed_at,
        review_notes=model.review_notes,
        assigned_to=model.assigned_to,
        assigned_at=model.assigned_at,
        resolution_notes=model.resolution_notes,
        resolution_type=model.resolution_type,
        citizen_feedback_rating=model.citizen_feedback_rating,
        citizen_feedback_text=model.citizen_feedback_text,
        created_at=model.created_at,
        approved_at=model.approved_at,
        resolved_at=model.resolved_at,
        closed_at=model.closed_at,
        updated_at=model.updated_at,
    )


class SQLAlchemyComplaintRepository(IComplaintRepository):
    """
    SQLAlchemy implementation of complaint repository.

    Handles persistence of Complaint entities using async SQLAlchemy.
    """

    _ENTITY_ONLY = {"id", "location"}

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, complaint_id: UUID) -> Optional[Complaint]:
        stmt = (
            select(ComplaintModel)
            .where(ComplaintModel.id == complaint_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_domain(model) if model else None

    async def create(self, complaint: Complaint) -> Complaint:
        model = ComplaintModel(
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
            created_at=complaint.created_at,
            updated_at=complaint.updated_at,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create complaint: {e}")
        return complaint

    async def update_fields(self, complaint_id: UUID, fields: Dict[str, Any]) -> None:
        if "status" in fields:
            raise RepositoryException("Status must be written through update_status_guarded")

        stmt = (
            update(ComplaintModel)
            .where(ComplaintModel.id == complaint_id)
            .values(**_column_values(fields))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise RepositoryException(f"Complaint {complaint_id} not found")

    async def update_status_guarded(
        self,
        complaint_id: UUID,
        expected_status: ComplaintStatus,
        new_status: ComplaintStatus,
        fields: Dict[str, Any]
    ) -> bool:
        values = _column_values(fields)
        values["status"] = ComplaintStatus(new_status).value

        stmt = (
            update(ComplaintModel)
            .where(and_(
                ComplaintModel.id == complaint_id,
                ComplaintModel.status == ComplaintStatus(expected_status).value
            ))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def _set_flags_where(self, complaint_id: UUID, condition, **values: Any) -> bool:
        stmt = (
            update(ComplaintModel)
            .where(and_(ComplaintModel.id == complaint_id, condition))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_sla_warned(self, complaint_id: UUID) -> bool:
        return await self._set_flags_where(
            complaint_id,
            and_(
                ComplaintModel.sla_breach_notified.is_(False),
                ComplaintModel.sla_breached.is_(False)
            ),
            sla_breach_notified=True
        )

    async def mark_sla_breached(self, complaint_id: UUID) -> bool:
        return await self._set_flags_where(
            complaint_id,
            ComplaintModel.sla_breached.is_(False),
            sla_breached=True,
            sla_breach_notified=True
        )

    async def list_sla_candidates(self) -> List[Complaint]:
        stmt = (
            select(ComplaintModel)
            .where(and_(
                ComplaintModel.sla_deadline.is_not(None),
                ComplaintModel.status.not_in([s.value for s in SLA_EXEMPT_STATUSES])
            ))
            .order_by(ComplaintModel.sla_deadline.asc())
        )
        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]

    async def list(
        self,
        filters: Dict[str, Any],
        limit: int = 20,
        offset: int = 0,
        oldest_first: bool = False
    ) -> List[Complaint]:
        stmt = select(ComplaintModel)

        conditions = []
        if "status" in filters:
            statuses = filters["status"]
            if isinstance(statuses, (list, tuple, set)):
                conditions.append(ComplaintModel.status.in_([ComplaintStatus(s).value for s in statuses]))
            else:
                conditions.append(ComplaintModel.status == ComplaintStatus(statuses).value)

        if "urgency" in filters:
            conditions.append(ComplaintModel.urgency == getattr(filters["urgency"], "value", filters["urgency"]))

        if "department_id" in filters:
            conditions.append(ComplaintModel.department_id == filters["department_id"])

        if "user_id" in filters:
            conditions.append(ComplaintModel.user_id == filters["user_id"])

        if "sla_breached" in filters:
            conditions.append(ComplaintModel.sla_breached == filters["sla_breached"])

        if filters.get("search"):
            conditions.append(ComplaintModel.description.ilike(f"%{filters['search']}%"))

        if conditions:
            stmt = stmt.where(and_(*conditions))

        order = ComplaintModel.created_at.asc() if oldest_first else ComplaintModel.created_at.desc()
        stmt = stmt.order_by(order).limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]

    async def list_for_statistics(self, department_id: Optional[UUID] = None) -> List[Complaint]:
        stmt = select(ComplaintModel).where(
            ComplaintModel.status.not_in([
                ComplaintStatus.SUBMITTED.value, ComplaintStatus.PENDING_REVIEW.value
            ])
        )
        if department_id is not None:
            stmt = stmt.where(ComplaintModel.department_id == department_id)

        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]

    async def list_classified_since(self, since: datetime) -> List[Complaint]:
        stmt = select(ComplaintModel).where(and_(
            ComplaintModel.ai_classified_at.is_not(None),
            ComplaintModel.created_at >= since
        ))
        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]


class SQLAlchemyStatusLogRepository(IStatusLogRepository):
    """Insert-only status history."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, log: StatusLog) -> StatusLog:
        self._session.add(StatusLogModel(
            id=log.id,
            complaint_id=log.complaint_id,
            old_status=log.old_status.value if log.old_status else None,
            new_status=log.new_status.value,
            changed_by=log.changed_by,
            change_reason=log.change_reason,
            meta=log.metadata,
            created_at=log.created_at,
        ))
        await self._session.flush()
        return log

    async def list_for_complaint(self, complaint_id: UUID) -> List[StatusLog]:
        stmt = (
            select(StatusLogModel)
            .where(StatusLogModel.complaint_id == complaint_id)
            .order_by(StatusLogModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [
            StatusLog(
                id=m.id,
                complaint_id=m.complaint_id,
                old_status=ComplaintStatus(m.old_status) if m.old_status else None,
                new_status=ComplaintStatus(m.new_status),
                changed_by=m.changed_by,
                change_reason=m.change_reason,
                metadata=m.meta or {},
                created_at=m.created_at,
            )
            for m in result.scalars().all()
        ]


class SQLAlchemyDepartmentRepository(IDepartmentRepository):
    """Read-only department lookups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: DepartmentModel) -> Department:
        return Department(
            id=model.id,
            name=model.name,
            code=model.code,
            sla_hours=model.sla_hours,
            escalation_email=model.escalation_email,
            is_active=model.is_active,
        )

    async def get_by_id(self, department_id: UUID) -> Optional[Department]:
        model = await self._session.get(DepartmentModel, department_id)
        return self._to_domain(model) if model else None

    async def get_by_code(self, code: str) -> Optional[Department]:
        stmt = select(DepartmentModel).where(and_(
            DepartmentModel.code == code.upper(),
            DepartmentModel.is_active.is_(True)
        ))
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_active(self) -> List[Department]:
        stmt = (
            select(DepartmentModel)
            .where(DepartmentModel.is_active.is_(True))
            .order_by(DepartmentModel.name)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]


class SQLAlchemyCriticalAreaRepository(ICriticalAreaRepository):
    """Geofence lookups over the critical_areas table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def contains(self, lat: float, lng: float) -> bool:
        stmt = (
            select(CriticalAreaModel.id)
            .where(and_(
                CriticalAreaModel.is_active.is_(True),
                CriticalAreaModel.lat_min <= lat,
                CriticalAreaModel.lat_max >= lat,
                CriticalAreaModel.lng_min <= lng,
                CriticalAreaModel.lng_max >= lng,
            ))
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None


class SQLAlchemyTransactionManager(ITransactionManager):
    """Per-item commits on one session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @asynccontextmanager
    async def item_scope(self) -> AsyncIterator[None]:
        # Each item is its own transaction so row locks end with the item
        try:
            yield
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

    async def commit(self) -> None:
        await self._session.commit()
