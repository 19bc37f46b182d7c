"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: External service integrations (webhooks, config watcher, scheduler)
"""

from dcms.sla.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SLAConfigManager,
    SLAScheduler,
    WebhookNotifier,
    compute_signature,
    verify_signature,
)
from dcms.sla.infrastructure.models import EscalationModel
from dcms.sla.infrastructure.repositories import SQLAlchemyEscalationRepository

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "EscalationModel",
    "SLAConfigManager",
    "SLAScheduler",
    "SQLAlchemyEscalationRepository",
    "WebhookNotifier",
    "compute_signature",
    "verify_signature",
]
