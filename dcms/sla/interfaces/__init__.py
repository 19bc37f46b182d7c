"""SLA API routes."""

from dcms.sla.interfaces.controllers import (
    get_breach_monitor,
    get_escalation_service,
    get_statistics_service,
    get_webhook_secret,
    router,
    webhook_router,
)

__all__ = [
    "get_breach_monitor",
    "get_escalation_service",
    "get_statistics_service",
    "get_webhook_secret",
    "router",
    "webhook_router",
]
