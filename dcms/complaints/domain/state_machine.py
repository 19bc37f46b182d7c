"""
Complaint State Machine
========================

The lifecycle transition table and its validation.

The table is the only source of truth for which status changes exist.
Writing a validated change is the job of
``dcms.complaints.application.services.ComplaintLifecycle``.
"""

from typing import Dict, FrozenSet

from dcms.config import ComplaintStatus
from dcms.core import InvalidTransitionException

S = ComplaintStatus

TRANSITIONS: Dict[ComplaintStatus, FrozenSet[ComplaintStatus]] = {
    S.SUBMITTED: frozenset({S.PENDING_REVIEW, S.APPROVED}),
    S.PENDING_REVIEW: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.ASSIGNED}),
    S.ASSIGNED: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.RESOLVED, S.ESCALATED}),
    S.ESCALATED: frozenset({S.IN_PROGRESS, S.RESOLVED}),
    S.RESOLVED: frozenset({S.CLOSED}),
    S.REJECTED: frozenset(),
    S.CLOSED: frozenset(),
}

# No outgoing edges for the system escalation either
NON_ESCALATABLE: FrozenSet[ComplaintStatus] = frozenset({S.RESOLVED, S.CLOSED, S.REJECTED})


class ComplaintStateMachine:
    """Validates status changes against the transition table."""

    @staticmethod
    def allowed_targets(
        from_status: ComplaintStatus,
        system: bool = False
    ) -> FrozenSet[ComplaintStatus]:
        """
        Statuses reachable from ``from_status``.

        The system edge (any non-terminal status to ``escalated``) is only
        included when ``system`` is True.
        """
        from_status = ComplaintStatus(from_status)
        targets = TRANSITIONS[from_status]
        if system and from_status not in NON_ESCALATABLE and from_status != S.ESCALATED:
            targets = targets | {S.ESCALATED}
        return targets

    @classmethod
    def can_transition(
        cls,
        from_status: ComplaintStatus,
        to_status: ComplaintStatus,
        system: bool = False
    ) -> bool:
        return ComplaintStatus(to_status) in cls.allowed_targets(from_status, system)

    @classmethod
    def validate(
        cls,
        from_status: ComplaintStatus,
        to_status: ComplaintStatus,
        system: bool = False
    ) -> None:
        """
        Raises:
            InvalidTransitionException: If the change is not an edge
        """
        if not cls.can_transition(from_status, to_status, system):
            raise InvalidTransitionException(from_status, to_status)
