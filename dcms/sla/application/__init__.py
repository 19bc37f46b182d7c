"""
SLA Application Layer
======================

Application layer for SLA monitoring module.

Contains:
- Services: breach sweep, escalation ladder, statistics
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from dcms.sla.application.dto import (
    AcknowledgeRequest,
    ClassifierPerformanceResponse,
    DepartmentStatisticsResponse,
    SLACheckResponse,
    SLAStatisticsResponse,
    SLAStatusResponse,
    WebhookAckResponse,
    WebhookEventRequest,
)
from dcms.sla.application.services import (
    EscalationService,
    SLABreachMonitor,
    SLAStatisticsService,
)

__all__ = [
    # DTOs
    "AcknowledgeRequest",
    "ClassifierPerformanceResponse",
    "DepartmentStatisticsResponse",
    "SLACheckResponse",
    "SLAStatisticsResponse",
    "SLAStatusResponse",
    "WebhookAckResponse",
    "WebhookEventRequest",
    # Services
    "EscalationService",
    "SLABreachMonitor",
    "SLAStatisticsService",
]
