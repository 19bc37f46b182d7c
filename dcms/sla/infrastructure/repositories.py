"""
SLA Infrastructure Repositories
=================================

Concrete implementation of the escalation repository using SQLAlchemy.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dcms.complaints.application import IEscalationRepository
from dcms.core import RepositoryException
from dcms.sla.domain import Escalation
from dcms.sla.infrastructure.models import EscalationModel


class SQLAlchemyEscalationRepository(IEscalationRepository):
    """
    SQLAlchemy implementation of escalation repository.

    Rows are appended; only acknowledgement columns are ever updated.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: EscalationModel) -> Escalation:
        return Escalation(
            id=model.id,
            complaint_id=model.complaint_id,
            level=model.level,
            previous_level=model.previous_level,
            reason=model.reason,
            is_system=model.is_system,
            acknowledged=model.acknowledged,
            acknowledged_by=model.acknowledged_by,
            acknowledged_at=model.acknowledged_at,
            created_at=model.created_at,
        )

    @staticmethod
    def _to_model(escalation: Escalation) -> EscalationModel:
        return EscalationModel(
            id=escalation.id,
            complaint_id=escalation.complaint_id,
            level=escalation.level.value,
            previous_level=escalation.previous_level.value if escalation.previous_level else None,
            reason=escalation.reason,
            is_system=escalation.is_system,
            acknowledged=escalation.acknowledged,
            created_at=escalation.created_at,
        )

    async def create(self, escalation: Escalation) -> Escalation:
        self._session.add(self._to_model(escalation))
        await self._session.flush()
        return escalation

    async def create_next(self, escalation: Escalation) -> bool:
        # The unique (complaint_id, level) constraint decides between racing sweeps
        try:
            async with self._session.begin_nested():
                self._session.add(self._to_model(escalation))
        except IntegrityError:
            return False
        return True

    async def get_by_id(self, escalation_id: UUID) -> Optional[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.id == escalation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_latest(self, complaint_id: UUID) -> Optional[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.complaint_id == complaint_id)
            .order_by(EscalationModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_for_complaint(
        self,
        complaint_id: UUID,
        newest_first: bool = False
    ) -> List[Escalation]:
        order = EscalationModel.created_at.desc() if newest_first else EscalationModel.created_at.asc()
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.complaint_id == complaint_id)
            .order_by(order)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def save_acknowledgement(self, escalation: Escalation) -> None:
        stmt = (
            update(EscalationModel)
            .where(EscalationModel.id == escalation.id)
            .values(
                acknowledged=escalation.acknowledged,
                acknowledged_by=escalation.acknowledged_by,
                acknowledged_at=escalation.acknowledged_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise RepositoryException(f"Escalation {escalation.id} not found")
