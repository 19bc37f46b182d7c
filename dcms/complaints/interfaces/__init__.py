"""Complaint and department API routes."""

from dcms.complaints.interfaces.controllers import (
    department_router,
    get_complaint_service,
    router,
)

__all__ = ["department_router", "get_complaint_service", "router"]
