"""
Complaint Application Services
===============================

Application services orchestrate the complaint lifecycle and coordinate
between domain entities, repositories and the notifier.

Following SOLID principles:
- Single Responsibility: ComplaintLifecycle writes status, ComplaintService
  implements the user-facing operations
- Dependency Inversion: Depend on abstractions (repositories, notifier,
  dispatcher), not concrete implementations
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, AsyncIterator, Dict, List, Optional
from uuid import UUID

from dcms.complaints.domain import (
    Complaint,
    ComplaintStateMachine,
    Department,
    Location,
    StatusLog,
)
from dcms.config import ComplaintStatus, NotificationEvent, UrgencyLevel
from dcms.core import ConflictException, ResourceNotFoundException, ValidationException
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.domain import (
    Escalation,
    ISLAConfigProvider,
    PriorityScorer,
    SLACalculator,
    SLAConfig,
    TimeRemaining,
)

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IComplaintRepository(ABC):
    """Interface for complaint data access."""

    @abstractmethod
    async def get_by_id(self, complaint_id: UUID) -> Optional[Complaint]:
        """Get complaint by ID."""

    @abstractmethod
    async def create(self, complaint: Complaint) -> Complaint:
        """Persist a new complaint."""

    @abstractmethod
    async def update_fields(self, complaint_id: UUID, fields: Dict[str, Any]) -> None:
        """Write non-status fields (SLA flags, priority, feedback)."""

    @abstractmethod
    async def update_status_guarded(
        self,
        complaint_id: UUID,
        expected_status: ComplaintStatus,
        new_status: ComplaintStatus,
        fields: Dict[str, Any]
    ) -> bool:
        """
        Write ``new_status`` and ``fields`` only while the stored status
        still equals ``expected_status``.

        Returns:
            bool: False when no row matched (the status moved underneath us)
        """

    @abstractmethod
    async def mark_sla_warned(self, complaint_id: UUID) -> bool:
        """
        Set ``sla_breach_notified`` unless it is already set or the
        complaint is already breached.

        Returns:
            bool: False when another sweep got there first
        """

    @abstractmethod
    async def mark_sla_breached(self, complaint_id: UUID) -> bool:
        """
        Set ``sla_breached`` and ``sla_breach_notified`` unless the complaint
        is already breached.

        Returns:
            bool: False when another sweep got there first
        """

    @abstractmethod
    async def list_sla_candidates(self) -> List[Complaint]:
        """Complaints with a deadline whose status is still SLA tracked."""

    @abstractmethod
    async def list(
        self,
        filters: Dict[str, Any],
        limit: int = 20,
        offset: int = 0,
        oldest_first: bool = False
    ) -> List[Complaint]:
        """List complaints with filters."""

    @abstractmethod
    async def list_for_statistics(self, department_id: Optional[UUID] = None) -> List[Complaint]:
        """Complaints that have left triage (not submitted or pending review)."""

    @abstractmethod
    async def list_classified_since(self, since: datetime) -> List[Complaint]:
        """Complaints created at or after ``since`` that the classifier has seen."""


class IStatusLogRepository(ABC):
    """Interface for the append-only status history."""

    @abstractmethod
    async def append(self, log: StatusLog) -> StatusLog:
        """Append one status log row."""

    @abstractmethod
    async def list_for_complaint(self, complaint_id: UUID) -> List[StatusLog]:
        """Status history of a complaint, oldest first."""


class IEscalationRepository(ABC):
    """Interface for the append-only escalation history."""

    @abstractmethod
    async def create(self, escalation: Escalation) -> Escalation:
        """Append one escalation row."""

    @abstractmethod
    async def create_next(self, escalation: Escalation) -> bool:
        """
        Append an escalation unless the complaint already has a row at the
        same level.

        Returns:
            bool: False when the level was already recorded
        """

    @abstractmethod
    async def get_by_id(self, escalation_id: UUID) -> Optional[Escalation]:
        """Get escalation by ID."""

    @abstractmethod
    async def get_latest(self, complaint_id: UUID) -> Optional[Escalation]:
        """Most recent escalation of a complaint."""

    @abstractmethod
    async def list_for_complaint(
        self,
        complaint_id: UUID,
        newest_first: bool = False
    ) -> List[Escalation]:
        """Escalation history of a complaint."""

    @abstractmethod
    async def save_acknowledgement(self, escalation: Escalation) -> None:
        """Persist the acknowledgement fields of an escalation."""


class IDepartmentRepository(ABC):
    """Interface for department lookups (read-only)."""

    @abstractmethod
    async def get_by_id(self, department_id: UUID) -> Optional[Department]:
        """Get department by ID."""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Department]:
        """Get active department by code."""

    @abstractmethod
    async def list_active(self) -> List[Department]:
        """List active departments."""


class ICriticalAreaRepository(ABC):
    """Interface for the critical-area geofences (read-only)."""

    @abstractmethod
    async def contains(self, lat: float, lng: float) -> bool:
        """Whether the point lies inside any active critical area."""


class INotifier(ABC):
    """Interface for outbound notifications."""

    @abstractmethod
    async def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver an event. Fire-and-forget: never raises.

        Returns:
            bool: True when the event was delivered
        """


class IClassificationDispatcher(ABC):
    """Schedules classification of a complaint outside the caller's flow."""

    @abstractmethod
    def dispatch(self, complaint_id: UUID) -> None:
        """Schedule ``classify_and_approve`` for a complaint."""


class ITransactionManager(ABC):
    """Unit-of-work control used by services that commit in steps."""

    @abstractmethod
    def item_scope(self) -> AsyncContextManager[None]:
        """
        Scope for one item of a batch: everything written inside is
        committed when the block exits and rolled back if it raises,
        without touching other items.
        """

    @abstractmethod
    async def commit(self) -> None:
        """Make everything written so far durable."""


class NullTransactionManager(ITransactionManager):
    """No-op transaction manager for in-memory repositories."""

    @asynccontextmanager
    async def item_scope(self) -> AsyncIterator[None]:
        yield

    async def commit(self) -> None:
        return None


# ========== Shared helpers ==========

def calculate_approval_fields(
    complaint: Complaint,
    department: Optional[Department],
    urgency: UrgencyLevel,
    config: SLAConfig,
    now: datetime,
    is_critical_area: Optional[bool] = None
) -> Dict[str, Any]:
    """SLA deadline and priority score a complaint gets on approval."""
    if is_critical_area is None:
        is_critical_area = complaint.is_critical_area
    return {
        "sla_deadline": SLACalculator.calculate_deadline(
            complaint.created_at,
            urgency,
            department.sla_hours if department else None,
            config
        ),
        "priority_score": PriorityScorer.calculate(
            urgency,
            complaint.created_at,
            is_critical_area,
            now,
            config.priority_weights
        ),
    }


def notification_payload(complaint: Complaint, **extra: Any) -> Dict[str, Any]:
    """JSON-safe description of a complaint for outbound events."""
    payload = {
        "complaint_id": str(complaint.id),
        "user_id": complaint.user_id,
        "status": complaint.status.value,
        "urgency": complaint.urgency.value,
        "priority_score": complaint.priority_score,
        "department_id": str(complaint.department_id) if complaint.department_id else None,
        "sla_deadline": complaint.sla_deadline.isoformat() if complaint.sla_deadline else None,
    }
    payload.update(extra)
    return payload


async def notify_safely(
    notifier: INotifier,
    event: NotificationEvent,
    payload: Dict[str, Any]
) -> bool:
    """Send through the notifier, logging instead of raising on failure."""
    try:
        return await notifier.send(event.value, payload)
    except Exception as e:
        logger.error(
            "Notification failed",
            extra={
                "event_type": event.value,
                "complaint_id": payload.get("complaint_id"),
                "error": str(e)
            }
        )
        return False


# ========== Application Services ==========

class ComplaintLifecycle:
    """
    The single code path that changes a complaint's status.

    Validates against the state machine, applies side-effect fields, writes
    with a guarded update and appends the audit row.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        status_log_repository: IStatusLogRepository
    ):
        self._complaints = complaint_repository
        self._status_logs = status_log_repository

    async def transition(
        self,
        complaint: Complaint,
        target: ComplaintStatus,
        actor: str,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        changes: Optional[Dict[str, Any]] = None,
        system: bool = False,
        now: Optional[datetime] = None
    ) -> StatusLog:
        """
        Move ``complaint`` to ``target``.

        Args:
            complaint: The complaint, as last read
            target: Requested status
            actor: Who requested the change (recorded in the status log)
            notes: Reason stored in the status log
            metadata: Extra context stored in the status log
            changes: Other fields written together with the status
            system: Allow the system escalation edge
            now: Transition time

        Returns:
            StatusLog: The appended audit row

        Raises:
            InvalidTransitionException: If ``target`` is not reachable
            ConflictException: If the stored status changed since it was read
        """
        now = now or utcnow()
        target = ComplaintStatus(target)
        from_status = complaint.status

        ComplaintStateMachine.validate(from_status, target, system=system)

        fields = dict(changes or {})
        fields["updated_at"] = now
        if target == ComplaintStatus.RESOLVED:
            fields["resolved_at"] = now
            fields.setdefault("resolution_notes", notes)
        elif target == ComplaintStatus.CLOSED:
            fields["closed_at"] = now
        elif target == ComplaintStatus.APPROVED:
            fields.setdefault("approved_at", now)
        elif target == ComplaintStatus.ASSIGNED:
            fields["assigned_at"] = now

        updated = await self._complaints.update_status_guarded(
            complaint.id, from_status, target, fields
        )
        if not updated:
            logger.warning(
                "Status write lost a race",
                extra={
                    "complaint_id": str(complaint.id),
                    "expected_status": from_status.value,
                    "target_status": target.value
                }
            )
            raise ConflictException(
                f"Complaint {complaint.id} is no longer {from_status.value}",
                {"expected": from_status.value, "to": target.value}
            )

        complaint.apply(fields)
        complaint.status = target

        log = StatusLog(
            complaint_id=complaint.id,
            old_status=from_status,
            new_status=target,
            changed_by=actor,
            change_reason=notes,
            metadata=dict(metadata or {}),
            created_at=now,
        )
        await self._status_logs.append(log)

        logger.info(
            "Complaint status changed",
            extra={
                "complaint_id": str(complaint.id),
                "old_status": from_status.value,
                "new_status": target.value,
                "actor": actor,
                "system": system
            }
        )
        return log


class ComplaintService:
    """
    Service for the user-facing complaint operations.

    Submission, review, department status updates, assignment, citizen
    feedback and the read side.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        status_log_repository: IStatusLogRepository,
        department_repository: IDepartmentRepository,
        critical_area_repository: ICriticalAreaRepository,
        notifier: INotifier,
        config_provider: ISLAConfigProvider,
        dispatcher: Optional[IClassificationDispatcher] = None,
        escalation_repository: Optional[IEscalationRepository] = None,
        transaction_manager: Optional[ITransactionManager] = None
    ):
        self._complaints = complaint_repository
        self._status_logs = status_log_repository
        self._departments = department_repository
        self._critical_areas = critical_area_repository
        self._notifier = notifier
        self._config_provider = config_provider
        self._dispatcher = dispatcher
        self._escalations = escalation_repository
        self._tx = transaction_manager or NullTransactionManager()
        self._lifecycle = ComplaintLifecycle(complaint_repository, status_log_repository)

    # ========== Commands ==========

    async def submit_complaint(
        self,
        description: str,
        location: Optional[Location] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Complaint:
        """
        Create a complaint in ``submitted`` and dispatch its classification.

        The complaint is committed before classification is dispatched so
        the background task always finds it.

        Raises:
            ValidationException: If the description is empty
        """
        if not description or not description.strip():
            raise ValidationException("Complaint description cannot be empty")

        now = now or utcnow()
        location = location or Location()

        is_critical_area = False
        if location.has_coordinates:
            is_critical_area = await self._critical_areas.contains(location.lat, location.lng)

        complaint = Complaint(
            description=description.strip(),
            user_id=user_id,
            location=location,
            is_critical_area=is_critical_area,
            created_at=now,
            updated_at=now,
        )
        await self._complaints.create(complaint)
        await self._tx.commit()

        logger.info(
            "Complaint submitted",
            extra={
                "complaint_id": str(complaint.id),
                "user_id": user_id,
                "is_critical_area": is_critical_area
            }
        )

        await notify_safely(
            self._notifier, NotificationEvent.COMPLAINT_CREATED, notification_payload(complaint)
        )

        if self._dispatcher is not None:
            self._dispatcher.dispatch(complaint.id)

        return complaint

    async def review_complaint(
        self,
        complaint_id: UUID,
        reviewer: str,
        approved: bool,
        notes: Optional[str] = None,
        department_override: Optional[UUID] = None,
        urgency_override: Optional[UrgencyLevel] = None,
        now: Optional[datetime] = None
    ) -> Complaint:
        """
        Approve or reject a complaint waiting for manual review.

        Raises:
            ResourceNotFoundException: If the complaint or the override
                department does not exist
            ValidationException: If the complaint is not pending review
        """
        now = now or utcnow()
        complaint = await self.get_complaint(complaint_id)

        if complaint.status != ComplaintStatus.PENDING_REVIEW:
            raise ValidationException(
                "Complaint is not pending review",
                {"status": complaint.status.value}
            )

        changes: Dict[str, Any] = {
            "reviewed_by": reviewer,
            "reviewed_at": now,
            "review_notes": notes,
        }

        if approved:
            department = None
            if department_override is not None:
                department = await self._departments.get_by_id(department_override)
                if department is None:
                    raise ResourceNotFoundException("Department", str(department_override))
            elif complaint.department_id is not None:
                department = await self._departments.get_by_id(complaint.department_id)

            urgency = UrgencyLevel(urgency_override) if urgency_override else complaint.urgency
            config = self._config_provider.get_config()

            changes.update(
                department_id=department.id if department else complaint.department_id,
                urgency=urgency,
                is_auto_approved=False,
                approved_at=now,
                **calculate_approval_fields(complaint, department, urgency, config, now)
            )
            target = ComplaintStatus.APPROVED
        else:
            target = ComplaintStatus.REJECTED

        await self._lifecycle.transition(
            complaint, target, reviewer, notes=notes, changes=changes, now=now
        )

        logger.info(
            "Complaint reviewed",
            extra={
                "complaint_id": str(complaint.id),
                "reviewer": reviewer,
                "approved": approved,
                "new_status": complaint.status.value
            }
        )

        if approved:
            if complaint.department_id is not None:
                await notify_safely(
                    self._notifier,
                    NotificationEvent.COMPLAINT_ROUTING,
                    notification_payload(complaint)
                )
            await notify_safely(
                self._notifier, NotificationEvent.COMPLAINT_APPROVED, notification_payload(complaint)
            )
        else:
            await notify_safely(
                self._notifier, NotificationEvent.COMPLAINT_REJECTED, notification_payload(complaint)
            )

        return complaint

    async def update_status(
        self,
        complaint_id: UUID,
        new_status: ComplaintStatus,
        actor: str,
        notes: Optional[str] = None,
        resolution_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Complaint:
        """
        Department status update.

        Raises:
            ResourceNotFoundException: If the complaint does not exist
            InvalidTransitionException: If the change is not allowed
            ConflictException: If the complaint changed concurrently
        """
        complaint = await self.get_complaint(complaint_id)
        target = ComplaintStatus(new_status)

        changes: Dict[str, Any] = {}
        if target == ComplaintStatus.RESOLVED and resolution_type:
            changes["resolution_type"] = resolution_type

        await self._lifecycle.transition(
            complaint, target, actor, notes=notes, metadata=metadata, changes=changes, now=now
        )

        await notify_safely(
            self._notifier, NotificationEvent.STATUS_UPDATED, notification_payload(complaint)
        )
        return complaint

    async def assign_complaint(
        self,
        complaint_id: UUID,
        assigned_to: Optional[str],
        actor: str,
        now: Optional[datetime] = None
    ) -> Complaint:
        """Assign an approved complaint to a field officer."""
        complaint = await self.get_complaint(complaint_id)

        await self._lifecycle.transition(
            complaint,
            ComplaintStatus.ASSIGNED,
            actor,
            changes={"assigned_to": assigned_to},
            now=now
        )

        await notify_safely(
            self._notifier,
            NotificationEvent.COMPLAINT_ASSIGNED,
            notification_payload(complaint, assigned_to=assigned_to)
        )
        return complaint

    async def add_citizen_feedback(
        self,
        complaint_id: UUID,
        rating: int,
        feedback_text: Optional[str] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Complaint:
        """
        Record the citizen's rating of a finished complaint.

        Raises:
            ResourceNotFoundException: If the complaint does not exist or
                belongs to another citizen
            ValidationException: If the rating is out of range or the
                complaint is not resolved or closed
        """
        if not 1 <= rating <= 5:
            raise ValidationException("Rating must be between 1 and 5", {"rating": rating})

        complaint = await self.get_complaint(complaint_id)
        if complaint.user_id is not None and user_id != complaint.user_id:
            raise ResourceNotFoundException("Complaint", str(complaint_id))

        if complaint.status not in (ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED):
            raise ValidationException(
                "Can only provide feedback on resolved complaints",
                {"status": complaint.status.value}
            )

        fields = {
            "citizen_feedback_rating": rating,
            "citizen_feedback_text": feedback_text,
            "updated_at": now or utcnow(),
        }
        await self._complaints.update_fields(complaint.id, fields)
        complaint.apply(fields)

        logger.info(
            "Citizen feedback added",
            extra={"complaint_id": str(complaint.id), "rating": rating}
        )
        return complaint

    # ========== Queries ==========

    async def get_complaint(self, complaint_id: UUID) -> Complaint:
        """
        Raises:
            ResourceNotFoundException: If the complaint does not exist
        """
        complaint = await self._complaints.get_by_id(complaint_id)
        if complaint is None:
            raise ResourceNotFoundException("Complaint", str(complaint_id))
        return complaint

    async def list_complaints(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[Complaint]:
        return await self._complaints.list(filters or {}, limit=limit, offset=offset)

    async def list_pending_review(self, limit: int = 20, offset: int = 0) -> List[Complaint]:
        """Review queue, oldest first."""
        return await self._complaints.list(
            {"status": ComplaintStatus.PENDING_REVIEW.value},
            limit=limit,
            offset=offset,
            oldest_first=True
        )

    async def get_complaint_timeline(self, complaint_id: UUID) -> Dict[str, list]:
        """Status history and escalations of a complaint, oldest first."""
        complaint = await self.get_complaint(complaint_id)

        status_logs = await self._status_logs.list_for_complaint(complaint.id)
        escalations: List[Escalation] = []
        if self._escalations is not None:
            escalations = await self._escalations.list_for_complaint(complaint.id)

        return {"status_logs": status_logs, "escalations": escalations}

    async def get_time_remaining(
        self,
        complaint_id: UUID,
        now: Optional[datetime] = None
    ) -> Optional[TimeRemaining]:
        """Time left until the SLA deadline, or None before approval."""
        complaint = await self.get_complaint(complaint_id)
        if complaint.sla_deadline is None:
            return None
        return SLACalculator.time_remaining(complaint.sla_deadline, now or utcnow())

    async def list_departments(self) -> List[Department]:
        """Active departments, by name."""
        return await self._departments.list_active()

    async def get_department(self, department_id: UUID) -> Department:
        """
        Raises:
            ResourceNotFoundException: If the department does not exist
        """
        department = await self._departments.get_by_id(department_id)
        if department is None:
            raise ResourceNotFoundException("Department", str(department_id))
        return department
