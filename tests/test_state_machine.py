from __future__ import annotations

from itertools import product

import pytest

from dcms.complaints.application import ComplaintLifecycle
from dcms.complaints.domain import TRANSITIONS, ComplaintStateMachine
from dcms.config import ComplaintStatus
from dcms.core import ConflictException, InvalidTransitionException

S = ComplaintStatus

ALLOWED = {
    (S.SUBMITTED, S.PENDING_REVIEW),
    (S.SUBMITTED, S.APPROVED),
    (S.PENDING_REVIEW, S.APPROVED),
    (S.PENDING_REVIEW, S.REJECTED),
    (S.APPROVED, S.ASSIGNED),
    (S.ASSIGNED, S.IN_PROGRESS),
    (S.IN_PROGRESS, S.RESOLVED),
    (S.IN_PROGRESS, S.ESCALATED),
    (S.ESCALATED, S.IN_PROGRESS),
    (S.ESCALATED, S.RESOLVED),
    (S.RESOLVED, S.CLOSED),
}


def test_transition_table_matches_lifecycle() -> None:
    table = {(src, dst) for src, targets in TRANSITIONS.items() for dst in targets}

    assert table == ALLOWED


@pytest.mark.parametrize("src,dst", sorted(product(S, S)))
def test_can_transition_only_along_edges(src, dst) -> None:
    assert ComplaintStateMachine.can_transition(src, dst) == ((src, dst) in ALLOWED)


def test_terminal_statuses_have_no_exits() -> None:
    for terminal in (S.CLOSED, S.REJECTED):
        assert ComplaintStateMachine.allowed_targets(terminal, system=True) == frozenset()


def test_system_edge_reaches_escalated_from_open_statuses() -> None:
    for src in (S.SUBMITTED, S.PENDING_REVIEW, S.APPROVED, S.ASSIGNED, S.IN_PROGRESS):
        assert ComplaintStateMachine.can_transition(src, S.ESCALATED, system=True)

    assert not ComplaintStateMachine.can_transition(S.APPROVED, S.ESCALATED)
    assert not ComplaintStateMachine.can_transition(S.RESOLVED, S.ESCALATED, system=True)
    assert not ComplaintStateMachine.can_transition(S.ESCALATED, S.ESCALATED, system=True)


def test_no_reopen_after_resolution() -> None:
    with pytest.raises(InvalidTransitionException):
        ComplaintStateMachine.validate(S.RESOLVED, S.IN_PROGRESS)


@pytest.mark.parametrize("src,dst", sorted(ALLOWED))
async def test_every_edge_appends_one_status_log(
    src, dst, complaint_repo, status_log_repo, seed_complaint, now
) -> None:
    complaint = await seed_complaint(status=src)
    lifecycle = ComplaintLifecycle(complaint_repo, status_log_repo)

    log = await lifecycle.transition(complaint, dst, "officer-1", notes="moving on", now=now)

    stored = complaint_repo.rows[complaint.id]
    assert stored.status == dst
    assert complaint.status == dst
    assert status_log_repo.for_complaint(complaint.id) == [log]
    assert (log.old_status, log.new_status, log.changed_by) == (src, dst, "officer-1")


async def test_disallowed_edge_leaves_complaint_unchanged(
    complaint_repo, status_log_repo, seed_complaint, now
) -> None:
    complaint = await seed_complaint(status=S.SUBMITTED)
    lifecycle = ComplaintLifecycle(complaint_repo, status_log_repo)

    with pytest.raises(InvalidTransitionException):
        await lifecycle.transition(complaint, S.RESOLVED, "officer-1", now=now)

    assert complaint_repo.rows[complaint.id].status == S.SUBMITTED
    assert status_log_repo.rows == []


async def test_transition_sets_side_effect_timestamps(
    complaint_repo, status_log_repo, seed_complaint, now
) -> None:
    complaint = await seed_complaint(status=S.IN_PROGRESS)
    lifecycle = ComplaintLifecycle(complaint_repo, status_log_repo)

    await lifecycle.transition(complaint, S.RESOLVED, "officer-1", notes="pipe fixed", now=now)

    stored = complaint_repo.rows[complaint.id]
    assert stored.resolved_at == now
    assert stored.resolution_notes == "pipe fixed"
    assert stored.updated_at == now


async def test_stale_status_raises_conflict(
    complaint_repo, status_log_repo, seed_complaint, now
) -> None:
    complaint = await seed_complaint(status=S.APPROVED)
    stale = await complaint_repo.get_by_id(complaint.id)
    lifecycle = ComplaintLifecycle(complaint_repo, status_log_repo)

    await lifecycle.transition(complaint, S.ASSIGNED, "officer-1", now=now)

    with pytest.raises(ConflictException):
        await lifecycle.transition(stale, S.ASSIGNED, "officer-2", now=now)

    assert len(status_log_repo.rows) == 1
