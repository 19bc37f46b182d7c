"""
Triage Application Layer
========================

Contains:
- Services: ClassificationService (LLM-backed classifier), AutoApprovalGate
- Interfaces: ILLMClient, IClassifier

This layer depends on the domain layer and abstractions only.
"""

from dcms.triage.application.services import (
    CLASSIFICATION_FAILED_NOTE,
    AutoApprovalGate,
    ClassificationService,
    IClassifier,
    ILLMClient,
)

__all__ = [
    "CLASSIFICATION_FAILED_NOTE",
    "AutoApprovalGate",
    "ClassificationService",
    "IClassifier",
    "ILLMClient",
]
