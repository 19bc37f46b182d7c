"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: The monitor sweeps, the escalation service owns
  the ladder, the statistics service only reads
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from dcms.complaints.application import (
    ComplaintLifecycle,
    IComplaintRepository,
    IDepartmentRepository,
    IEscalationRepository,
    INotifier,
    IStatusLogRepository,
    ITransactionManager,
    NullTransactionManager,
    notification_payload,
    notify_safely,
)
from dcms.complaints.application.services import utcnow
from dcms.complaints.domain import Complaint
from dcms.config import (
    SLA_EXEMPT_STATUSES,
    SYSTEM_ACTOR,
    ComplaintStatus,
    EscalationLevel,
    NotificationEvent,
)
from dcms.core import ResourceNotFoundException
from dcms.shared.infrastructure.logging import get_logger, log_latency
from dcms.sla.domain import (
    Escalation,
    EscalationLadder,
    ISLAConfigProvider,
    PriorityScorer,
    SLACalculator,
    SLAConfig,
)

logger = get_logger(__name__)

BREACH_REASON = "SLA deadline exceeded"
ADVANCE_REASON = "automatic escalation"

# Notifications collected during one item, sent once its writes are committed
Outbox = List[Tuple[NotificationEvent, Dict[str, Any]]]


# ========== Application Services ==========

class EscalationService:
    """
    Service for the escalation ladder.

    Advances breached complaints one level at a time and records
    acknowledgements.
    """

    def __init__(
        self,
        escalation_repository: IEscalationRepository,
        config_provider: ISLAConfigProvider,
        complaint_repository: Optional[IComplaintRepository] = None
    ):
        self._escalations = escalation_repository
        self._config_provider = config_provider
        self._complaints = complaint_repository

    async def advance(
        self,
        complaint: Complaint,
        now: datetime,
        config: Optional[SLAConfig] = None
    ) -> Optional[Escalation]:
        """
        Move a breached complaint up one level when thresholds allow.

        Two sweeps racing on the same complaint cannot both record the
        same level; the loser gets None.

        Returns:
            The new escalation row, or None when nothing changed
        """
        if not complaint.sla_breached or complaint.sla_deadline is None:
            return None

        latest = await self._escalations.get_latest(complaint.id)
        if latest is None:
            return None

        ladder = EscalationLadder(config or self._config_provider.get_config())
        target = ladder.evaluate(latest.level, complaint.sla_deadline, latest.created_at, now)
        if target is None:
            return None

        escalation = Escalation(
            complaint_id=complaint.id,
            level=target,
            previous_level=latest.level,
            reason=ADVANCE_REASON,
            is_system=True,
            created_at=now,
        )
        if not await self._escalations.create_next(escalation):
            logger.info(
                "Escalation level already recorded",
                extra={"complaint_id": str(complaint.id), "level": target.value}
            )
            return None

        logger.warning(
            "Complaint escalated",
            extra={
                "complaint_id": str(complaint.id),
                "previous_level": latest.level.value,
                "level": target.value,
                "hours_overdue": round(-SLACalculator.hours_until(complaint.sla_deadline, now), 2)
            }
        )
        return escalation

    async def acknowledge_escalation(
        self,
        escalation_id: UUID,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Escalation:
        """
        Record that someone has seen an escalation.

        Acknowledging twice keeps the first acknowledgement.

        Raises:
            ResourceNotFoundException: If the escalation does not exist
        """
        escalation = await self._escalations.get_by_id(escalation_id)
        if escalation is None:
            raise ResourceNotFoundException("Escalation", str(escalation_id))

        if escalation.acknowledge(user_id, now or utcnow()):
            await self._escalations.save_acknowledgement(escalation)
            logger.info(
                "Escalation acknowledged",
                extra={"escalation_id": str(escalation.id), "user_id": user_id}
            )
        return escalation

    async def get_escalation_history(self, complaint_id: UUID) -> List[Escalation]:
        """Escalations of a complaint, newest first."""
        if self._complaints is not None:
            if await self._complaints.get_by_id(complaint_id) is None:
                raise ResourceNotFoundException("Complaint", str(complaint_id))
        return await self._escalations.list_for_complaint(complaint_id, newest_first=True)


class SLABreachMonitor:
    """
    Periodic sweep over SLA-tracked complaints.

    Sends warnings before the deadline, escalates on breach and drives the
    escalation ladder afterwards. Run it from the scheduler or on demand.

    Each complaint is committed on its own, and its notifications go out
    only after that commit. Every flag and ladder write is conditional on
    the stored row, so overlapping sweeps never act on a complaint twice.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        status_log_repository: IStatusLogRepository,
        escalation_repository: IEscalationRepository,
        notifier: INotifier,
        config_provider: ISLAConfigProvider,
        transaction_manager: Optional[ITransactionManager] = None
    ):
        self._complaints = complaint_repository
        self._escalations = escalation_repository
        self._notifier = notifier
        self._config_provider = config_provider
        self._tx = transaction_manager or NullTransactionManager()
        self._lifecycle = ComplaintLifecycle(complaint_repository, status_log_repository)
        self._escalation_service = EscalationService(escalation_repository, config_provider)

    async def check_sla_breaches(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run one sweep.

        A failing complaint is logged and skipped; its writes are rolled
        back without affecting the others.

        Returns:
            Counts of checked complaints, warnings, breaches and escalations
        """
        now = now or utcnow()
        config = self._config_provider.get_config()
        counts = {"checked": 0, "warnings": 0, "breaches": 0, "escalations": 0}

        with log_latency(logger, "sla_sweep"):
            candidates = await self._complaints.list_sla_candidates()

            for complaint in candidates:
                counts["checked"] += 1
                outbox: Outbox = []
                try:
                    async with self._tx.item_scope():
                        outcome = await self._check_complaint(complaint, config, now, outbox)
                except Exception as e:
                    logger.error(
                        "SLA check failed for complaint",
                        extra={"complaint_id": str(complaint.id), "error": str(e)},
                        exc_info=True
                    )
                    continue

                for event, payload in outbox:
                    await notify_safely(self._notifier, event, payload)

                if outcome is not None:
                    counts[outcome] += 1

        logger.info("SLA sweep finished", extra=counts)
        return counts

    async def _check_complaint(
        self,
        complaint: Complaint,
        config: SLAConfig,
        now: datetime,
        outbox: Outbox
    ) -> Optional[str]:
        await self._refresh_priority(complaint, config, now)

        hours_left = SLACalculator.hours_until(complaint.sla_deadline, now)

        if hours_left < 0 and not complaint.sla_breached:
            if await self._handle_breach(complaint, now, hours_left, outbox):
                return "breaches"
            return None

        if 0 < hours_left < config.warning_hours and not complaint.sla_breach_notified:
            if not await self._complaints.mark_sla_warned(complaint.id):
                return None
            complaint.apply({"sla_breach_notified": True})

            logger.info(
                "SLA warning",
                extra={"complaint_id": str(complaint.id), "hours_remaining": round(hours_left, 2)}
            )
            outbox.append((
                NotificationEvent.SLA_WARNING,
                notification_payload(complaint, hours_remaining=round(hours_left, 2))
            ))
            return "warnings"

        if complaint.sla_breached and not complaint.is_terminal:
            escalation = await self._escalation_service.advance(complaint, now, config)
            if escalation is not None:
                outbox.append((
                    NotificationEvent.ESCALATION_CREATED,
                    notification_payload(
                        complaint,
                        escalation_id=str(escalation.id),
                        level=escalation.level.value,
                        previous_level=escalation.previous_level.value,
                        reason=ADVANCE_REASON
                    )
                ))
                return "escalations"

        return None

    async def _refresh_priority(self, complaint: Complaint, config: SLAConfig, now: datetime) -> None:
        # Time component grows with age
        score = PriorityScorer.calculate(
            complaint.urgency,
            complaint.created_at,
            complaint.is_critical_area,
            now,
            config.priority_weights
        )
        if score != complaint.priority_score:
            fields = {"priority_score": score}
            await self._complaints.update_fields(complaint.id, fields)
            complaint.apply(fields)

    async def _handle_breach(
        self,
        complaint: Complaint,
        now: datetime,
        hours_left: float,
        outbox: Outbox
    ) -> bool:
        if not await self._complaints.mark_sla_breached(complaint.id):
            logger.info("SLA breach already recorded", extra={"complaint_id": str(complaint.id)})
            return False
        complaint.apply({"sla_breached": True, "sla_breach_notified": True})

        if complaint.status != ComplaintStatus.ESCALATED:
            await self._lifecycle.transition(
                complaint,
                ComplaintStatus.ESCALATED,
                SYSTEM_ACTOR,
                notes=BREACH_REASON,
                metadata={"hours_overdue": round(-hours_left, 2)},
                system=True,
                now=now
            )

        escalation = Escalation(
            complaint_id=complaint.id,
            level=EscalationLevel.LEVEL_1,
            reason=BREACH_REASON,
            is_system=True,
            created_at=now,
        )
        await self._escalations.create(escalation)

        logger.warning(
            "SLA breached",
            extra={
                "complaint_id": str(complaint.id),
                "sla_deadline": complaint.sla_deadline.isoformat(),
                "hours_overdue": round(-hours_left, 2)
            }
        )

        outbox.append((
            NotificationEvent.SLA_BREACH,
            notification_payload(
                complaint,
                escalation_id=str(escalation.id),
                level=EscalationLevel.LEVEL_1.value,
                hours_overdue=round(-hours_left, 2)
            )
        ))
        return True


def _percent(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


class SLAStatisticsService:
    """Read-only SLA compliance, department and classifier figures."""

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        department_repository: IDepartmentRepository
    ):
        self._complaints = complaint_repository
        self._departments = department_repository

    async def get_sla_statistics(self, department_id: Optional[UUID] = None) -> Dict[str, float]:
        """
        Compliance over complaints that have left triage.

        Rates are percentages; an empty set counts as fully compliant.
        """
        complaints = await self._complaints.list_for_statistics(department_id)

        total = len(complaints)
        breached = sum(1 for c in complaints if c.sla_breached)
        resolved = sum(1 for c in complaints if c.resolved_at is not None)
        resolved_on_time = sum(
            1 for c in complaints if c.resolved_at is not None and not c.sla_breached
        )

        return {
            "total_complaints": total,
            "sla_breached": breached,
            "sla_compliance_rate": round((total - breached) / total * 100, 2) if total else 100.0,
            "resolved_on_time": resolved_on_time,
            "resolution_rate": _percent(resolved, total),
        }

    async def get_department_statistics(self) -> List[Dict[str, Any]]:
        """
        Workload per active department, busiest first.

        ``avg_resolution_hours`` is None for a department that has not
        resolved anything yet.
        """
        departments = await self._departments.list_active()
        complaints = await self._complaints.list_for_statistics()

        by_department: Dict[UUID, List[Complaint]] = defaultdict(list)
        for complaint in complaints:
            if complaint.department_id is not None:
                by_department[complaint.department_id].append(complaint)

        rows = []
        for department in departments:
            owned = by_department.get(department.id, [])
            resolution_hours = [
                (c.resolved_at - c.created_at).total_seconds() / 3600
                for c in owned if c.resolved_at is not None
            ]
            rows.append({
                "department_id": department.id,
                "department_name": department.name,
                "department_code": department.code,
                "total_complaints": len(owned),
                "open_complaints": sum(1 for c in owned if c.status not in SLA_EXEMPT_STATUSES),
                "breached_complaints": sum(1 for c in owned if c.sla_breached),
                "avg_resolution_hours": (
                    round(sum(resolution_hours) / len(resolution_hours), 2)
                    if resolution_hours else None
                ),
            })

        rows.sort(key=lambda r: (-r["total_complaints"], r["department_name"]))
        return rows

    async def get_classifier_performance(
        self,
        days: int = 30,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Daily auto-approval figures for classified complaints, newest day first.

        Days are UTC calendar days of the complaint's creation.
        """
        since = (now or utcnow()) - timedelta(days=days)
        complaints = await self._complaints.list_classified_since(since)

        by_day: Dict[Any, List[Complaint]] = defaultdict(list)
        for complaint in complaints:
            by_day[complaint.created_at.date()].append(complaint)

        rows = []
        for day in sorted(by_day, reverse=True):
            batch = by_day[day]
            confidences = [c.ai_confidence for c in batch if c.ai_confidence is not None]
            auto_approved = sum(1 for c in batch if c.is_auto_approved)
            rows.append({
                "day": day,
                "total_classified": len(batch),
                "avg_confidence": (
                    round(sum(confidences) / len(confidences), 4) if confidences else None
                ),
                "auto_approved": auto_approved,
                "manual_review": len(batch) - auto_approved,
                "auto_approval_rate": _percent(auto_approved, len(batch)),
            })
        return rows
