"""
Core Exceptions
================

Custom exceptions for the complaint lifecycle service.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries (HTTP handlers, the background
classification task and the SLA sweep).
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    code = "DATABASE_ERROR"


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    code = "VALIDATION_ERROR"


class InvalidTransitionException(ValidationException):
    """Raised when a status change is not an edge of the lifecycle table."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: Any, to_status: Any):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot transition from {self.from_status} to {self.to_status}",
            {"from": self.from_status, "to": self.to_status}
        )


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConflictException(ApplicationException):
    """Raised when a guarded write loses a race; re-read and retry."""

    code = "CONFLICT"


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    code = "CONFIGURATION_ERROR"


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class ClassificationException(LLMException):
    """Classifier returned empty or malformed output."""

    code = "CLASSIFICATION_ERROR"
