"""
Triage Infrastructure Layer
===========================

Contains:
- External: LLM client adapter, the classification job and its dispatcher
"""

from dcms.triage.infrastructure.external import (
    BackgroundTasksClassificationDispatcher,
    ClassificationJob,
    LLMClientAdapter,
)

__all__ = [
    "BackgroundTasksClassificationDispatcher",
    "ClassificationJob",
    "LLMClientAdapter",
]
