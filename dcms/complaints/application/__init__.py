"""
Complaints Application Layer
============================

Contains:
- Services: ComplaintLifecycle (the only status writer) and ComplaintService
- Interfaces: repositories, notifier, classification dispatcher, transactions
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and on abstractions,
but not on concrete infrastructure implementations.
"""

from dcms.complaints.application.dto import (
    AssignRequest,
    ComplaintCreateRequest,
    ComplaintFilterDTO,
    ComplaintListResponse,
    ComplaintResponse,
    DepartmentResponse,
    EscalationResponse,
    FeedbackRequest,
    ReviewRequest,
    StatusLogResponse,
    StatusUpdateRequest,
    TimelineResponse,
)
from dcms.complaints.application.services import (
    ComplaintLifecycle,
    ComplaintService,
    IClassificationDispatcher,
    IComplaintRepository,
    ICriticalAreaRepository,
    IDepartmentRepository,
    IEscalationRepository,
    INotifier,
    IStatusLogRepository,
    ITransactionManager,
    NullTransactionManager,
    calculate_approval_fields,
    notification_payload,
    notify_safely,
)

__all__ = [
    # DTOs
    "AssignRequest",
    "ComplaintCreateRequest",
    "ComplaintFilterDTO",
    "ComplaintListResponse",
    "ComplaintResponse",
    "DepartmentResponse",
    "EscalationResponse",
    "FeedbackRequest",
    "ReviewRequest",
    "StatusLogResponse",
    "StatusUpdateRequest",
    "TimelineResponse",
    # Services
    "ComplaintLifecycle",
    "ComplaintService",
    # Interfaces
    "IClassificationDispatcher",
    "IComplaintRepository",
    "ICriticalAreaRepository",
    "IDepartmentRepository",
    "IEscalationRepository",
    "INotifier",
    "IStatusLogRepository",
    "ITransactionManager",
    "NullTransactionManager",
    # Helpers
    "calculate_approval_fields",
    "notification_payload",
    "notify_safely",
]
