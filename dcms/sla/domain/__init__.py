"""
SLA Domain Layer
================

Domain layer for the SLA module.

Contains:
- Entities: Escalation
- Value Objects: SLAConfig, PriorityWeights, TimeRemaining
- Domain Services: PriorityScorer, SLACalculator, EscalationLadder

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from dcms.sla.domain.entities import Escalation
from dcms.sla.domain.value_objects import (
    EscalationLadder,
    ISLAConfigProvider,
    PriorityScorer,
    PriorityWeights,
    SLACalculator,
    SLAConfig,
    StaticSLAConfigProvider,
    TimeRemaining,
)

__all__ = [
    # Entities
    "Escalation",
    # Value Objects & Services
    "SLAConfig",
    "PriorityWeights",
    "TimeRemaining",
    "PriorityScorer",
    "SLACalculator",
    "EscalationLadder",
    # Configuration access
    "ISLAConfigProvider",
    "StaticSLAConfigProvider",
]
