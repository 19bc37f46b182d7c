"""
Complaint Controllers (API Routes)
===================================

FastAPI routes for complaint intake, review and the department workflow.

Controllers are thin - they delegate to application services. Domain
exceptions are mapped to HTTP responses by the shared exception handlers.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dcms.complaints.application import (
    AssignRequest,
    ComplaintCreateRequest,
    ComplaintFilterDTO,
    ComplaintListResponse,
    ComplaintResponse,
    ComplaintService,
    DepartmentResponse,
    EscalationResponse,
    FeedbackRequest,
    INotifier,
    ReviewRequest,
    StatusLogResponse,
    StatusUpdateRequest,
    TimelineResponse,
)
from dcms.complaints.domain import Location
from dcms.complaints.infrastructure import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyCriticalAreaRepository,
    SQLAlchemyDepartmentRepository,
    SQLAlchemyStatusLogRepository,
    SQLAlchemyTransactionManager,
)
from dcms.config import ComplaintStatus, UrgencyLevel
from dcms.infrastructure.database import get_session
from dcms.shared.api.dependencies import get_classifier, get_config_provider, get_notifier
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.application import SLAStatusResponse
from dcms.sla.domain import ISLAConfigProvider
from dcms.sla.infrastructure import SQLAlchemyEscalationRepository
from dcms.triage.application import IClassifier
from dcms.triage.infrastructure import BackgroundTasksClassificationDispatcher, ClassificationJob

logger = get_logger(__name__)
router = APIRouter(prefix="/complaints", tags=["Complaints"])
department_router = APIRouter(prefix="/departments", tags=["Departments"])


# ========== Example payloads for Swagger ==========

COMPLAINT_CREATE_EXAMPLE = {
    "description": "Water pipe burst near the market, road is flooding since morning",
    "user_id": "citizen-42",
    "location_lat": 12.9716,
    "location_lng": 77.5946,
    "location_address": "MG Road",
    "location_landmark": "Opposite central market"
}


# ========== Dependencies ==========

async def get_complaint_service(
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    notifier: INotifier = Depends(get_notifier),
    config_provider: ISLAConfigProvider = Depends(get_config_provider),
    classifier: IClassifier = Depends(get_classifier)
) -> ComplaintService:
    """Get complaint service instance bound to the request session."""
    job = ClassificationJob(classifier, notifier, config_provider)
    return ComplaintService(
        SQLAlchemyComplaintRepository(session),
        SQLAlchemyStatusLogRepository(session),
        SQLAlchemyDepartmentRepository(session),
        SQLAlchemyCriticalAreaRepository(session),
        notifier,
        config_provider,
        dispatcher=BackgroundTasksClassificationDispatcher(background_tasks, job),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        transaction_manager=SQLAlchemyTransactionManager(session)
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=ComplaintResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a complaint",
    description="""
    Submit a citizen complaint.

    The complaint is stored as `submitted` and classified in the background.
    High-confidence classifications are approved and routed to a department
    automatically; everything else waits in the manual review queue.
    """,
    responses={201: {"description": "Complaint submitted"}},
    openapi_extra={"requestBody": {"content": {"application/json": {"example": COMPLAINT_CREATE_EXAMPLE}}}}
)
async def submit_complaint(
    request: ComplaintCreateRequest,
    service: ComplaintService = Depends(get_complaint_service)
):
    location = Location(
        lat=request.location_lat,
        lng=request.location_lng,
        address=request.location_address,
        landmark=request.location_landmark,
    )
    complaint = await service.submit_complaint(
        request.description, location=location, user_id=request.user_id
    )
    return ComplaintResponse.from_domain(complaint)


@router.get(
    "",
    response_model=ComplaintListResponse,
    summary="List complaints",
    description="Filter by status, urgency, department, breach flag or a description search."
)
async def list_complaints(
    query: ComplaintFilterDTO = Depends(),
    service: ComplaintService = Depends(get_complaint_service)
):
    complaints = await service.list_complaints(
        query.to_filters(), limit=query.limit, offset=query.offset
    )
    return ComplaintListResponse(
        complaints=[ComplaintResponse.from_domain(c) for c in complaints],
        limit=query.limit,
        offset=query.offset
    )


@router.get(
    "/pending-review",
    response_model=ComplaintListResponse,
    summary="Manual review queue",
    description="Complaints waiting for a reviewer, oldest first."
)
async def list_pending_review(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: ComplaintService = Depends(get_complaint_service)
):
    complaints = await service.list_pending_review(limit=limit, offset=offset)
    return ComplaintListResponse(
        complaints=[ComplaintResponse.from_domain(c) for c in complaints],
        limit=limit,
        offset=offset
    )


@router.get(
    "/{complaint_id}",
    response_model=ComplaintResponse,
    summary="Get a complaint",
    responses={404: {"description": "Complaint not found"}}
)
async def get_complaint(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.get_complaint(complaint_id)
    return ComplaintResponse.from_domain(complaint)


@router.post(
    "/{complaint_id}/review",
    response_model=ComplaintResponse,
    summary="Review a complaint",
    description="""
    Approve or reject a complaint in `pending_review`.

    On approval the reviewer may override the department and urgency; the SLA
    deadline and priority are computed from the final values.
    """,
    responses={
        400: {"description": "Complaint is not pending review"},
        404: {"description": "Complaint or department not found"},
        409: {"description": "Complaint changed concurrently"}
    }
)
async def review_complaint(
    complaint_id: UUID,
    request: ReviewRequest,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.review_complaint(
        complaint_id,
        reviewer=request.reviewer_id,
        approved=request.approved,
        notes=request.notes,
        department_override=request.department_id,
        urgency_override=UrgencyLevel(request.urgency) if request.urgency else None
    )
    return ComplaintResponse.from_domain(complaint)


@router.patch(
    "/{complaint_id}/status",
    response_model=ComplaintResponse,
    summary="Update complaint status",
    description="Department workflow update. Only transitions allowed by the lifecycle are accepted.",
    responses={
        400: {"description": "Transition not allowed"},
        404: {"description": "Complaint not found"},
        409: {"description": "Complaint changed concurrently"}
    }
)
async def update_status(
    complaint_id: UUID,
    request: StatusUpdateRequest,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.update_status(
        complaint_id,
        ComplaintStatus(request.status),
        actor=request.updated_by,
        notes=request.notes,
        resolution_type=request.resolution_type
    )
    return ComplaintResponse.from_domain(complaint)


@router.post(
    "/{complaint_id}/assign",
    response_model=ComplaintResponse,
    summary="Assign a complaint to a field officer"
)
async def assign_complaint(
    complaint_id: UUID,
    request: AssignRequest,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.assign_complaint(
        complaint_id, request.assigned_to, actor=request.assigned_by
    )
    return ComplaintResponse.from_domain(complaint)


@router.post(
    "/{complaint_id}/feedback",
    response_model=ComplaintResponse,
    summary="Rate a resolved complaint"
)
async def add_feedback(
    complaint_id: UUID,
    request: FeedbackRequest,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.add_citizen_feedback(
        complaint_id,
        rating=request.rating,
        feedback_text=request.feedback_text,
        user_id=request.user_id
    )
    return ComplaintResponse.from_domain(complaint)


@router.get(
    "/{complaint_id}/timeline",
    response_model=TimelineResponse,
    summary="Status history and escalations"
)
async def get_timeline(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service)
):
    timeline = await service.get_complaint_timeline(complaint_id)
    return TimelineResponse(
        status_logs=[StatusLogResponse.from_domain(log) for log in timeline["status_logs"]],
        escalations=[EscalationResponse.from_domain(e) for e in timeline["escalations"]]
    )


@router.get(
    "/{complaint_id}/sla-status",
    response_model=SLAStatusResponse,
    summary="Time left until the SLA deadline"
)
async def get_sla_status(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service)
):
    complaint = await service.get_complaint(complaint_id)
    remaining = await service.get_time_remaining(complaint_id)
    if remaining is None:
        return SLAStatusResponse(complaint_id=complaint_id)

    return SLAStatusResponse(
        complaint_id=complaint_id,
        sla_deadline=complaint.sla_deadline,
        is_breached=remaining.is_breached,
        hours_remaining=remaining.hours_remaining,
        formatted=remaining.formatted
    )


# ========== Department Route Handlers ==========

@department_router.get(
    "",
    response_model=List[DepartmentResponse],
    summary="List departments",
    description="Active departments complaints can be routed to, by name."
)
async def list_departments(
    service: ComplaintService = Depends(get_complaint_service)
):
    departments = await service.list_departments()
    return [DepartmentResponse.from_domain(d) for d in departments]


@department_router.get(
    "/{department_id}",
    response_model=DepartmentResponse,
    summary="Get a department",
    responses={404: {"description": "Department not found"}}
)
async def get_department(
    department_id: UUID,
    service: ComplaintService = Depends(get_complaint_service)
):
    department = await service.get_department(department_id)
    return DepartmentResponse.from_domain(department)
