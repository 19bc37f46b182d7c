"""
SLA Domain Entities
====================

Pure Python domain entities for SLA escalation tracking.

Escalation rows are an append-only audit trail: once written only the
acknowledgement fields may change.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from dcms.config import ESCALATION_ORDER, EscalationLevel


@dataclass
class Escalation:
    """
    One step of a complaint up the escalation ladder.

    ``previous_level`` is None for the first (breach) escalation.
    """
    complaint_id: UUID
    level: EscalationLevel
    reason: str
    previous_level: Optional[EscalationLevel] = None
    is_system: bool = True
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate that the ladder only moves upward."""
        self.level = EscalationLevel(self.level)
        if self.previous_level is not None:
            self.previous_level = EscalationLevel(self.previous_level)
            if ESCALATION_ORDER.index(self.level) <= ESCALATION_ORDER.index(self.previous_level):
                raise ValueError("Escalation level must be above the previous level")

    def acknowledge(self, user_id: str, timestamp: datetime) -> bool:
        """
        Mark the escalation acknowledged.

        Returns:
            bool: False when it was already acknowledged (nothing changes)
        """
        if self.acknowledged:
            return False
        self.acknowledged = True
        self.acknowledged_by = user_id
        self.acknowledged_at = timestamp
        return True
