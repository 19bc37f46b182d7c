"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA monitoring, escalations and the inbound workflow
webhook.

Controllers are thin - they delegate to application services. Inbound
webhook events go through the same services as the HTTP API, so they are
subject to the same lifecycle rules.
"""

import hmac
import json
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from dcms.complaints.application import ComplaintService, EscalationResponse, INotifier
from dcms.complaints.infrastructure import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyDepartmentRepository,
    SQLAlchemyStatusLogRepository,
    SQLAlchemyTransactionManager,
)
from dcms.complaints.interfaces import get_complaint_service
from dcms.config import ComplaintStatus, settings
from dcms.core import ValidationException
from dcms.infrastructure.database import get_session
from dcms.shared.api.dependencies import get_config_provider, get_notifier
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.application import (
    AcknowledgeRequest,
    ClassifierPerformanceResponse,
    DepartmentStatisticsResponse,
    EscalationService,
    SLABreachMonitor,
    SLACheckResponse,
    SLAStatisticsResponse,
    SLAStatisticsService,
    WebhookAckResponse,
    WebhookEventRequest,
)
from dcms.sla.domain import ISLAConfigProvider
from dcms.sla.infrastructure import SQLAlchemyEscalationRepository, verify_signature

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])
webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

WORKFLOW_ACTOR = "workflow"


# ========== Dependencies ==========

async def get_breach_monitor(
    session: AsyncSession = Depends(get_session),
    notifier: INotifier = Depends(get_notifier),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
) -> SLABreachMonitor:
    """Get SLA breach monitor bound to the request session."""
    return SLABreachMonitor(
        SQLAlchemyComplaintRepository(session),
        SQLAlchemyStatusLogRepository(session),
        SQLAlchemyEscalationRepository(session),
        notifier,
        config_provider,
        transaction_manager=SQLAlchemyTransactionManager(session)
    )


async def get_escalation_service(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
) -> EscalationService:
    """Get escalation service instance."""
    return EscalationService(
        SQLAlchemyEscalationRepository(session),
        config_provider,
        complaint_repository=SQLAlchemyComplaintRepository(session)
    )


async def get_statistics_service(
    session: AsyncSession = Depends(get_session)
) -> SLAStatisticsService:
    """Get SLA statistics service instance."""
    return SLAStatisticsService(
        SQLAlchemyComplaintRepository(session),
        SQLAlchemyDepartmentRepository(session)
    )


def get_webhook_secret() -> str:
    """Shared secret for inbound webhooks."""
    return settings.webhook_secret


async def verify_webhook(
    request: Request,
    x_webhook_secret: Optional[str] = Header(None),
    x_webhook_signature: Optional[str] = Header(None),
    secret: str = Depends(get_webhook_secret)
) -> None:
    """
    Accept a request carrying the shared secret or a valid HMAC signature.

    The signature covers the JSON body without its ``signature`` field.
    """
    if x_webhook_secret is not None and hmac.compare_digest(x_webhook_secret, secret):
        return

    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError:
        body = None

    if isinstance(body, dict):
        signature = x_webhook_signature or body.get("signature")
        unsigned = {k: v for k, v in body.items() if k != "signature"}
        if verify_signature(secret, unsigned, signature):
            return

    logger.warning(
        "Rejected inbound webhook",
        extra={"path": request.url.path, "client_host": request.client.host if request.client else None}
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid webhook secret or signature"
    )


def _require(data: Dict[str, Any], *fields: str) -> None:
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise ValidationException("Missing webhook fields", {"missing": missing})


def _uuid(data: Dict[str, Any], field: str) -> UUID:
    try:
        return UUID(str(data[field]))
    except ValueError:
        raise ValidationException(f"Invalid {field}", {field: data[field]})


# ========== SLA Route Handlers ==========

@router.post(
    "/check",
    response_model=SLACheckResponse,
    summary="Run the SLA sweep now",
    description="""
    Run one SLA sweep immediately (the scheduler runs it periodically).

    Sends warnings for deadlines less than `warning_hours` away, escalates
    breached complaints and advances the escalation ladder. Running it
    twice in a row has no additional effect.
    """
)
async def run_sla_check(
    monitor: SLABreachMonitor = Depends(get_breach_monitor)
):
    counts = await monitor.check_sla_breaches()
    return SLACheckResponse(**counts)


@router.get(
    "/statistics",
    response_model=SLAStatisticsResponse,
    summary="SLA compliance statistics"
)
async def get_sla_statistics(
    department_id: Optional[UUID] = Query(None, description="Limit to one department"),
    service: SLAStatisticsService = Depends(get_statistics_service)
):
    stats = await service.get_sla_statistics(department_id)
    return SLAStatisticsResponse(**stats)


@router.get(
    "/statistics/departments",
    response_model=List[DepartmentStatisticsResponse],
    summary="Workload per department",
    description="Total, open and breached complaints and average resolution time per active department, busiest first."
)
async def get_department_statistics(
    service: SLAStatisticsService = Depends(get_statistics_service)
):
    rows = await service.get_department_statistics()
    return [DepartmentStatisticsResponse(**row) for row in rows]


@router.get(
    "/statistics/classifier",
    response_model=List[ClassifierPerformanceResponse],
    summary="Classifier auto-approval performance",
    description="Daily auto-approval rate and average confidence of classified complaints, newest day first."
)
async def get_classifier_performance(
    days: int = Query(30, ge=1, le=365, description="How many days back to look"),
    service: SLAStatisticsService = Depends(get_statistics_service)
):
    rows = await service.get_classifier_performance(days)
    return [ClassifierPerformanceResponse(**row) for row in rows]


@router.get(
    "/complaints/{complaint_id}/escalations",
    response_model=List[EscalationResponse],
    summary="Escalation history",
    description="Escalations of a complaint, newest first."
)
async def get_escalation_history(
    complaint_id: UUID,
    service: EscalationService = Depends(get_escalation_service)
):
    escalations = await service.get_escalation_history(complaint_id)
    return [EscalationResponse.from_domain(e) for e in escalations]


@router.post(
    "/escalations/{escalation_id}/acknowledge",
    response_model=EscalationResponse,
    summary="Acknowledge an escalation",
    responses={404: {"description": "Escalation not found"}}
)
async def acknowledge_escalation(
    escalation_id: UUID,
    request: AcknowledgeRequest,
    service: EscalationService = Depends(get_escalation_service)
):
    escalation = await service.acknowledge_escalation(escalation_id, request.user_id)
    return EscalationResponse.from_domain(escalation)


# ========== Webhook Route Handlers ==========

@webhook_router.post(
    "/inbound",
    response_model=WebhookAckResponse,
    dependencies=[Depends(verify_webhook)],
    summary="Inbound workflow event",
    description="""
    Events reported back by the workflow engine.

    Requires `X-Webhook-Secret` or a valid `X-Webhook-Signature`.

    **Events**: `complaint_assigned`, `status_update`, `escalation_acknowledged`,
    `notification_sent`
    """
)
async def handle_inbound_webhook(
    event: WebhookEventRequest,
    complaint_service: ComplaintService = Depends(get_complaint_service),
    escalation_service: EscalationService = Depends(get_escalation_service)
):
    data = event.data
    logger.info("Inbound webhook received", extra={"event_type": event.event_type})

    if event.event_type == "complaint_assigned":
        _require(data, "complaint_id")
        await complaint_service.assign_complaint(
            _uuid(data, "complaint_id"),
            data.get("assigned_to"),
            actor=data.get("assigned_by") or WORKFLOW_ACTOR
        )
        message = "Complaint assigned"

    elif event.event_type == "status_update":
        _require(data, "complaint_id", "status")
        try:
            new_status = ComplaintStatus(data["status"])
        except ValueError:
            raise ValidationException("Unknown status", {"status": data["status"]})
        await complaint_service.update_status(
            _uuid(data, "complaint_id"),
            new_status,
            actor=data.get("updated_by") or WORKFLOW_ACTOR,
            notes=data.get("notes"),
            resolution_type=data.get("resolution_type"),
            metadata={"source": "webhook"}
        )
        message = "Status updated"

    elif event.event_type == "escalation_acknowledged":
        _require(data, "escalation_id", "user_id")
        await escalation_service.acknowledge_escalation(
            _uuid(data, "escalation_id"), data["user_id"]
        )
        message = "Escalation acknowledged"

    else:
        logger.info(
            "Workflow notification delivered",
            extra={"complaint_id": data.get("complaint_id"), "channel": data.get("channel")}
        )
        message = "Notification recorded"

    return WebhookAckResponse(event_type=event.event_type, message=message)


@webhook_router.post(
    "/sla-check",
    response_model=SLACheckResponse,
    dependencies=[Depends(verify_webhook)],
    summary="Run the SLA sweep from the workflow engine"
)
async def webhook_sla_check(
    monitor: SLABreachMonitor = Depends(get_breach_monitor)
):
    counts = await monitor.check_sla_breaches()
    return SLACheckResponse(**counts)
