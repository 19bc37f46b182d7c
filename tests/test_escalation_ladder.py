from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from dcms.config import ESCALATION_ORDER, ComplaintStatus, EscalationLevel
from dcms.core import ResourceNotFoundException
from dcms.sla.domain import Escalation, EscalationLadder, SLAConfig

from tests.conftest import NOW

L = EscalationLevel


def test_next_level_walks_the_ladder() -> None:
    assert EscalationLadder.next_level(L.LEVEL_1) == L.LEVEL_2
    assert EscalationLadder.next_level(L.LEVEL_3) == L.EXECUTIVE
    assert EscalationLadder.next_level(L.EXECUTIVE) is None


@pytest.mark.parametrize(
    "level,hours_overdue,expected",
    [
        (L.LEVEL_1, 24, None),
        (L.LEVEL_1, 25, L.LEVEL_2),
        (L.LEVEL_2, 48, None),
        (L.LEVEL_2, 49, L.LEVEL_3),
        (L.LEVEL_3, 73, L.EXECUTIVE),
        (L.EXECUTIVE, 500, None),
    ],
)
def test_thresholds_are_strict(level, hours_overdue, expected) -> None:
    ladder = EscalationLadder(SLAConfig())
    deadline = NOW - timedelta(hours=hours_overdue)

    assert ladder.evaluate(level, deadline, NOW - timedelta(hours=20), NOW) == expected


def test_cool_down_blocks_then_allows() -> None:
    ladder = EscalationLadder(SLAConfig())
    escalated_at = NOW - timedelta(hours=9)
    deadline = NOW - timedelta(hours=30)

    assert ladder.evaluate(L.LEVEL_1, deadline, escalated_at, NOW) is None

    later = NOW + timedelta(hours=4)
    assert ladder.evaluate(L.LEVEL_1, deadline, escalated_at, later) == L.LEVEL_2


def test_configured_thresholds_and_cool_down() -> None:
    config = SLAConfig(
        escalation_thresholds={"level_1": 1, "level_2": 2, "level_3": 3},
        escalation_cooldown_hours=0
    )
    ladder = EscalationLadder(config)

    assert ladder.evaluate(L.LEVEL_1, NOW - timedelta(hours=2), NOW, NOW) == L.LEVEL_2


def test_escalation_entity_only_moves_up() -> None:
    with pytest.raises(ValueError):
        Escalation(complaint_id=uuid4(), level=L.LEVEL_1, previous_level=L.LEVEL_2, reason="x")
    with pytest.raises(ValueError):
        Escalation(complaint_id=uuid4(), level=L.LEVEL_2, previous_level=L.LEVEL_2, reason="x")


async def test_cool_down_through_the_sweep(
    monitor, seed_complaint, escalation_repo, now
) -> None:
    complaint = await seed_complaint(
        status=ComplaintStatus.ESCALATED, deadline_in_hours=-30, sla_breached=True, sla_breach_notified=True
    )
    await escalation_repo.create(Escalation(
        complaint_id=complaint.id,
        level=L.LEVEL_1,
        reason="SLA deadline exceeded",
        created_at=now - timedelta(hours=9)
    ))

    blocked = await monitor.check_sla_breaches(now)
    allowed = await monitor.check_sla_breaches(now + timedelta(hours=4))

    assert blocked["escalations"] == 0
    assert allowed["escalations"] == 1
    latest = escalation_repo.for_complaint(complaint.id)[-1]
    assert (latest.previous_level, latest.level, latest.reason) == (
        L.LEVEL_1, L.LEVEL_2, "automatic escalation"
    )


async def test_level_never_decreases_or_passes_executive(
    monitor, seed_complaint, escalation_repo, now
) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.IN_PROGRESS, deadline_in_hours=-1)

    seen = []
    for hour in range(0, 24 * 20, 6):
        await monitor.check_sla_breaches(now + timedelta(hours=hour))
        rows = escalation_repo.for_complaint(complaint.id)
        seen.append(ESCALATION_ORDER.index(rows[-1].level))

    assert seen == sorted(seen)
    levels = [e.level for e in escalation_repo.for_complaint(complaint.id)]
    assert levels == ESCALATION_ORDER
    # One level per sweep
    assert len(set(e.created_at for e in escalation_repo.rows)) == len(escalation_repo.rows)


async def test_acknowledge_escalation(escalation_service, escalation_repo, now) -> None:
    escalation = Escalation(complaint_id=uuid4(), level=L.LEVEL_1, reason="SLA deadline exceeded")
    await escalation_repo.create(escalation)

    first = await escalation_service.acknowledge_escalation(escalation.id, "manager-1", now)
    again = await escalation_service.acknowledge_escalation(
        escalation.id, "manager-2", now + timedelta(hours=1)
    )

    stored = escalation_repo.rows[0]
    assert first.acknowledged is True
    assert (stored.acknowledged_by, stored.acknowledged_at) == ("manager-1", now)
    assert again.acknowledged_by == "manager-1"


async def test_acknowledge_unknown_escalation(escalation_service) -> None:
    with pytest.raises(ResourceNotFoundException):
        await escalation_service.acknowledge_escalation(uuid4(), "manager-1")


async def test_acknowledged_escalation_still_advances(
    monitor, escalation_service, seed_complaint, escalation_repo, now
) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.IN_PROGRESS, deadline_in_hours=-1)
    await monitor.check_sla_breaches(now)
    [first] = escalation_repo.for_complaint(complaint.id)
    await escalation_service.acknowledge_escalation(first.id, "manager-1", now)

    counts = await monitor.check_sla_breaches(now + timedelta(hours=30))

    assert counts["escalations"] == 1


async def test_escalation_history_newest_first(
    monitor, escalation_service, seed_complaint, now
) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.IN_PROGRESS, deadline_in_hours=-1)
    await monitor.check_sla_breaches(now)
    await monitor.check_sla_breaches(now + timedelta(hours=30))

    history = await escalation_service.get_escalation_history(complaint.id)

    assert [e.level for e in history] == [L.LEVEL_2, L.LEVEL_1]

    with pytest.raises(ResourceNotFoundException):
        await escalation_service.get_escalation_history(uuid4())
