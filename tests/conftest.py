from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import UUID

import pytest

from dcms.complaints.application import (
    ComplaintService,
    IClassificationDispatcher,
    IComplaintRepository,
    ICriticalAreaRepository,
    IDepartmentRepository,
    IEscalationRepository,
    INotifier,
    IStatusLogRepository,
)
from dcms.complaints.domain import Complaint, CriticalArea, Department, StatusLog
from dcms.config import ComplaintStatus, UrgencyLevel
from dcms.core import RepositoryException
from dcms.sla.application import EscalationService, SLABreachMonitor, SLAStatisticsService
from dcms.sla.domain import Escalation, SLAConfig, StaticSLAConfigProvider
from dcms.triage.application import AutoApprovalGate, IClassifier
from dcms.triage.domain import ClassificationResult

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# ========== In-memory repositories ==========

class InMemoryComplaintRepository(IComplaintRepository):
    """Stores copies so callers never share objects with the store."""

    def __init__(self) -> None:
        self.rows: Dict[UUID, Complaint] = {}
        self.fail_for: Set[UUID] = set()
        # Let other tasks run between reading candidates and acting on them
        self.yield_after_snapshot = False

    async def get_by_id(self, complaint_id: UUID) -> Optional[Complaint]:
        row = self.rows.get(complaint_id)
        return copy.deepcopy(row) if row else None

    async def create(self, complaint: Complaint) -> Complaint:
        self.rows[complaint.id] = copy.deepcopy(complaint)
        return complaint

    async def update_fields(self, complaint_id: UUID, fields: Dict[str, Any]) -> None:
        if complaint_id in self.fail_for:
            raise RepositoryException("simulated write failure")
        if "status" in fields:
            raise RepositoryException("Status must be written through update_status_guarded")
        if complaint_id not in self.rows:
            raise RepositoryException(f"Complaint {complaint_id} not found")
        self.rows[complaint_id].apply(copy.deepcopy(fields))

    async def update_status_guarded(
        self,
        complaint_id: UUID,
        expected_status: ComplaintStatus,
        new_status: ComplaintStatus,
        fields: Dict[str, Any]
    ) -> bool:
        row = self.rows.get(complaint_id)
        if row is None or row.status != expected_status:
            return False
        row.apply(copy.deepcopy(fields))
        row.status = ComplaintStatus(new_status)
        return True

    async def mark_sla_warned(self, complaint_id: UUID) -> bool:
        if complaint_id in self.fail_for:
            raise RepositoryException("simulated write failure")
        row = self.rows[complaint_id]
        if row.sla_breach_notified or row.sla_breached:
            return False
        row.sla_breach_notified = True
        return True

    async def mark_sla_breached(self, complaint_id: UUID) -> bool:
        if complaint_id in self.fail_for:
            raise RepositoryException("simulated write failure")
        row = self.rows[complaint_id]
        if row.sla_breached:
            return False
        row.sla_breached = True
        row.sla_breach_notified = True
        return True

    async def list_sla_candidates(self) -> List[Complaint]:
        rows = [r for r in self.rows.values() if r.is_sla_tracked]
        snapshot = [copy.deepcopy(r) for r in sorted(rows, key=lambda r: r.sla_deadline)]
        if self.yield_after_snapshot:
            await asyncio.sleep(0)
        return snapshot

    async def list(
        self,
        filters: Dict[str, Any],
        limit: int = 20,
        offset: int = 0,
        oldest_first: bool = False
    ) -> List[Complaint]:
        rows = list(self.rows.values())
        if "status" in filters:
            rows = [r for r in rows if r.status == ComplaintStatus(filters["status"])]
        if "urgency" in filters:
            rows = [r for r in rows if r.urgency == UrgencyLevel(filters["urgency"])]
        if "department_id" in filters:
            rows = [r for r in rows if r.department_id == filters["department_id"]]
        if "sla_breached" in filters:
            rows = [r for r in rows if r.sla_breached == filters["sla_breached"]]
        if filters.get("search"):
            rows = [r for r in rows if filters["search"].lower() in r.description.lower()]
        rows.sort(key=lambda r: r.created_at, reverse=not oldest_first)
        return [copy.deepcopy(r) for r in rows[offset:offset + limit]]

    async def list_for_statistics(self, department_id: Optional[UUID] = None) -> List[Complaint]:
        rows = [
            r for r in self.rows.values()
            if r.status not in (ComplaintStatus.SUBMITTED, ComplaintStatus.PENDING_REVIEW)
        ]
        if department_id is not None:
            rows = [r for r in rows if r.department_id == department_id]
        return [copy.deepcopy(r) for r in rows]

    async def list_classified_since(self, since: datetime) -> List[Complaint]:
        return [
            copy.deepcopy(r) for r in self.rows.values()
            if r.ai_classified_at is not None and r.created_at >= since
        ]


class InMemoryStatusLogRepository(IStatusLogRepository):
    def __init__(self) -> None:
        self.rows: List[StatusLog] = []

    async def append(self, log: StatusLog) -> StatusLog:
        self.rows.append(log)
        return log

    async def list_for_complaint(self, complaint_id: UUID) -> List[StatusLog]:
        return [r for r in self.rows if r.complaint_id == complaint_id]

    def for_complaint(self, complaint_id: UUID) -> List[StatusLog]:
        return [r for r in self.rows if r.complaint_id == complaint_id]


class InMemoryEscalationRepository(IEscalationRepository):
    def __init__(self) -> None:
        self.rows: List[Escalation] = []
        self.yield_after_read = False

    async def create(self, escalation: Escalation) -> Escalation:
        self.rows.append(copy.deepcopy(escalation))
        return escalation

    async def create_next(self, escalation: Escalation) -> bool:
        if any(r.level == escalation.level for r in self.for_complaint(escalation.complaint_id)):
            return False
        self.rows.append(copy.deepcopy(escalation))
        return True

    async def get_by_id(self, escalation_id: UUID) -> Optional[Escalation]:
        for row in self.rows:
            if row.id == escalation_id:
                return copy.deepcopy(row)
        return None

    async def get_latest(self, complaint_id: UUID) -> Optional[Escalation]:
        rows = self.for_complaint(complaint_id)
        latest = copy.deepcopy(rows[-1]) if rows else None
        if self.yield_after_read:
            await asyncio.sleep(0)
        return latest

    async def list_for_complaint(
        self,
        complaint_id: UUID,
        newest_first: bool = False
    ) -> List[Escalation]:
        rows = [copy.deepcopy(r) for r in self.for_complaint(complaint_id)]
        return list(reversed(rows)) if newest_first else rows

    async def save_acknowledgement(self, escalation: Escalation) -> None:
        for row in self.rows:
            if row.id == escalation.id:
                row.acknowledged = escalation.acknowledged
                row.acknowledged_by = escalation.acknowledged_by
                row.acknowledged_at = escalation.acknowledged_at

    def for_complaint(self, complaint_id: UUID) -> List[Escalation]:
        rows = [r for r in self.rows if r.complaint_id == complaint_id]
        return sorted(rows, key=lambda r: r.created_at)


class InMemoryDepartmentRepository(IDepartmentRepository):
    def __init__(self, departments: List[Department]) -> None:
        self.rows = {d.id: d for d in departments}

    async def get_by_id(self, department_id: UUID) -> Optional[Department]:
        return self.rows.get(department_id)

    async def get_by_code(self, code: str) -> Optional[Department]:
        for dept in self.rows.values():
            if dept.code == code.upper() and dept.is_active:
                return dept
        return None

    async def list_active(self) -> List[Department]:
        return [d for d in self.rows.values() if d.is_active]


class InMemoryCriticalAreaRepository(ICriticalAreaRepository):
    def __init__(self, areas: List[CriticalArea]) -> None:
        self.areas = areas

    async def contains(self, lat: float, lng: float) -> bool:
        return any(a.is_active and a.contains(lat, lng) for a in self.areas)


# ========== Test doubles ==========

class RecordingNotifier(INotifier):
    def __init__(self) -> None:
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    async def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        self.sent.append((event_type, payload))
        return True

    def events(self) -> List[str]:
        return [event for event, _ in self.sent]


class FakeClassifier(IClassifier):
    def __init__(self) -> None:
        self.result: Optional[ClassificationResult] = None
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[str, Optional[str]]] = []

    def returns(
        self,
        department_code: str = "WATER",
        urgency: str = "high",
        confidence: float = 0.8
    ) -> None:
        self.error = None
        self.result = ClassificationResult(
            department=department_code.title(),
            department_code=department_code,
            urgency=urgency,
            confidence=confidence,
            reasoning="test classification",
            model_used="fake-model",
        )

    def raises(self, error: Exception) -> None:
        self.error = error

    async def classify(
        self,
        description: str,
        location_context: Optional[str] = None
    ) -> ClassificationResult:
        self.calls.append((description, location_context))
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


class RecordingDispatcher(IClassificationDispatcher):
    def __init__(self) -> None:
        self.dispatched: List[UUID] = []

    def dispatch(self, complaint_id: UUID) -> None:
        self.dispatched.append(complaint_id)


# ========== Fixtures ==========

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def water_department() -> Department:
    return Department(name="Water Supply", code="WATER", sla_hours=72)


@pytest.fixture
def roads_department() -> Department:
    return Department(name="Roads", code="ROADS", sla_hours=48)


@pytest.fixture
def critical_area() -> CriticalArea:
    return CriticalArea(name="Hospital district", lat_min=10.0, lat_max=11.0, lng_min=20.0, lng_max=21.0)


@pytest.fixture
def complaint_repo() -> InMemoryComplaintRepository:
    return InMemoryComplaintRepository()


@pytest.fixture
def status_log_repo() -> InMemoryStatusLogRepository:
    return InMemoryStatusLogRepository()


@pytest.fixture
def escalation_repo() -> InMemoryEscalationRepository:
    return InMemoryEscalationRepository()


@pytest.fixture
def department_repo(water_department, roads_department) -> InMemoryDepartmentRepository:
    return InMemoryDepartmentRepository([water_department, roads_department])


@pytest.fixture
def critical_area_repo(critical_area) -> InMemoryCriticalAreaRepository:
    return InMemoryCriticalAreaRepository([critical_area])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def sla_config() -> SLAConfig:
    return SLAConfig()


@pytest.fixture
def config_provider(sla_config) -> StaticSLAConfigProvider:
    return StaticSLAConfigProvider(sla_config)


@pytest.fixture
def complaint_service(
    complaint_repo,
    status_log_repo,
    department_repo,
    critical_area_repo,
    notifier,
    config_provider,
    dispatcher,
    escalation_repo
) -> ComplaintService:
    return ComplaintService(
        complaint_repo,
        status_log_repo,
        department_repo,
        critical_area_repo,
        notifier,
        config_provider,
        dispatcher=dispatcher,
        escalation_repository=escalation_repo
    )


@pytest.fixture
def gate(
    complaint_repo,
    status_log_repo,
    department_repo,
    critical_area_repo,
    classifier,
    notifier,
    config_provider
) -> AutoApprovalGate:
    return AutoApprovalGate(
        complaint_repo,
        status_log_repo,
        department_repo,
        critical_area_repo,
        classifier,
        notifier,
        config_provider
    )


@pytest.fixture
def monitor(
    complaint_repo,
    status_log_repo,
    escalation_repo,
    notifier,
    config_provider
) -> SLABreachMonitor:
    return SLABreachMonitor(
        complaint_repo, status_log_repo, escalation_repo, notifier, config_provider
    )


@pytest.fixture
def escalation_service(escalation_repo, config_provider, complaint_repo) -> EscalationService:
    return EscalationService(escalation_repo, config_provider, complaint_repository=complaint_repo)


@pytest.fixture
def statistics_service(complaint_repo, department_repo) -> SLAStatisticsService:
    return SLAStatisticsService(complaint_repo, department_repo)


@pytest.fixture
def seed_complaint(complaint_repo):
    """Store a complaint directly in a given state."""

    async def _seed(
        status: ComplaintStatus = ComplaintStatus.APPROVED,
        deadline_in_hours: Optional[float] = None,
        created_hours_ago: float = 0,
        **fields: Any
    ) -> Complaint:
        fields.setdefault("description", "Water pipe burst near the market")
        complaint = Complaint(
            status=status,
            created_at=NOW - timedelta(hours=created_hours_ago),
            updated_at=NOW - timedelta(hours=created_hours_ago),
            sla_deadline=NOW + timedelta(hours=deadline_in_hours) if deadline_in_hours is not None else None,
            **fields
        )
        await complaint_repo.create(complaint)
        return complaint

    return _seed
