"""
Complaints Domain Layer
=======================

Contains:
- Entities: Complaint, StatusLog, Department, CriticalArea, Location
- State machine: the lifecycle transition table and its validation

This layer is framework-agnostic and contains pure business logic.
"""

from dcms.complaints.domain.entities import (
    Complaint,
    CriticalArea,
    Department,
    Location,
    StatusLog,
)
from dcms.complaints.domain.state_machine import (
    TRANSITIONS,
    ComplaintStateMachine,
)

__all__ = [
    "Complaint",
    "CriticalArea",
    "Department",
    "Location",
    "StatusLog",
    "TRANSITIONS",
    "ComplaintStateMachine",
]
