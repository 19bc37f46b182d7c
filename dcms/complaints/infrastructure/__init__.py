"""
Complaints Infrastructure Layer
===============================

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations and the transaction manager
"""

from dcms.complaints.infrastructure.models import (
    ComplaintModel,
    CriticalAreaModel,
    DepartmentModel,
    StatusLogModel,
)
from dcms.complaints.infrastructure.repositories import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyCriticalAreaRepository,
    SQLAlchemyDepartmentRepository,
    SQLAlchemyStatusLogRepository,
    SQLAlchemyTransactionManager,
)

__all__ = [
    "ComplaintModel",
    "CriticalAreaModel",
    "DepartmentModel",
    "StatusLogModel",
    "SQLAlchemyComplaintRepository",
    "SQLAlchemyCriticalAreaRepository",
    "SQLAlchemyDepartmentRepository",
    "SQLAlchemyStatusLogRepository",
    "SQLAlchemyTransactionManager",
]
