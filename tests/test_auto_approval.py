from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from dcms.complaints.domain import Location
from dcms.config import ComplaintStatus, UrgencyLevel
from dcms.core import ClassificationException, LLMException
from dcms.triage.application import CLASSIFICATION_FAILED_NOTE


async def test_high_confidence_auto_approves(
    gate, classifier, seed_complaint, complaint_repo, water_department, status_log_repo, notifier, now
) -> None:
    classifier.returns("WATER", "high", confidence=0.80)
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    result = await gate.classify_and_approve(complaint.id, now=now)

    stored = complaint_repo.rows[complaint.id]
    assert result.status == ComplaintStatus.APPROVED
    assert stored.status == ComplaintStatus.APPROVED
    assert stored.is_auto_approved is True
    assert stored.department_id == water_department.id
    assert stored.urgency == UrgencyLevel.HIGH
    assert stored.ai_confidence == 0.80
    assert stored.ai_model_version == "fake-model"
    assert stored.approved_at == now
    # 72h x 0.5 high multiplier
    assert stored.sla_deadline == complaint.created_at + timedelta(hours=36)
    assert stored.priority_score == 28.0
    assert status_log_repo.for_complaint(complaint.id)[0].changed_by == "system"
    assert notifier.events() == ["complaint_routing"]


async def test_low_confidence_goes_to_review(
    gate, classifier, seed_complaint, complaint_repo, water_department, notifier, now
) -> None:
    classifier.returns("WATER", "high", confidence=0.60)
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    await gate.classify_and_approve(complaint.id, now=now)

    stored = complaint_repo.rows[complaint.id]
    assert stored.status == ComplaintStatus.PENDING_REVIEW
    assert stored.is_auto_approved is False
    assert stored.sla_deadline is None
    # The suggestion is kept for the reviewer
    assert stored.department_id == water_department.id
    assert stored.ai_confidence == 0.60
    assert notifier.sent == []


async def test_confidence_equal_to_threshold_approves(gate, classifier, seed_complaint, complaint_repo, now) -> None:
    classifier.returns("WATER", "normal", confidence=0.75)
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    await gate.classify_and_approve(complaint.id, now=now)

    assert complaint_repo.rows[complaint.id].status == ComplaintStatus.APPROVED


async def test_unknown_department_goes_to_review(
    gate, classifier, seed_complaint, complaint_repo, status_log_repo, now
) -> None:
    classifier.returns("SANITATION", "normal", confidence=0.95)
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    await gate.classify_and_approve(complaint.id, now=now)

    stored = complaint_repo.rows[complaint.id]
    assert stored.status == ComplaintStatus.PENDING_REVIEW
    assert stored.department_id is None
    log = status_log_repo.for_complaint(complaint.id)[0]
    assert log.change_reason == "Department not found for classifier code"
    assert log.metadata["department_code"] == "SANITATION"


async def test_classifier_failure_falls_back_to_review(
    gate, classifier, seed_complaint, complaint_repo, now
) -> None:
    classifier.raises(ClassificationException("Empty response from classifier"))
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    result = await gate.classify_and_approve(complaint.id, now=now)

    stored = complaint_repo.rows[complaint.id]
    assert result.status == ComplaintStatus.PENDING_REVIEW
    assert stored.status == ComplaintStatus.PENDING_REVIEW
    assert stored.ai_reasoning == CLASSIFICATION_FAILED_NOTE


async def test_provider_outage_falls_back_to_review(gate, classifier, seed_complaint, complaint_repo, now) -> None:
    classifier.raises(LLMException("connection refused"))
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    await gate.classify_and_approve(complaint.id, now=now)

    assert complaint_repo.rows[complaint.id].status == ComplaintStatus.PENDING_REVIEW


async def test_already_triaged_complaint_is_left_alone(gate, classifier, seed_complaint, status_log_repo, now) -> None:
    classifier.returns("WATER", "high", confidence=0.9)
    complaint = await seed_complaint(status=ComplaintStatus.PENDING_REVIEW)

    result = await gate.classify_and_approve(complaint.id, now=now)

    assert result.status == ComplaintStatus.PENDING_REVIEW
    assert classifier.calls == []
    assert status_log_repo.rows == []


async def test_unknown_complaint_does_not_raise(gate, classifier, now) -> None:
    classifier.returns()

    assert await gate.classify_and_approve(uuid4(), now=now) is None


async def test_critical_area_recomputed_from_coordinates(
    gate, classifier, seed_complaint, complaint_repo, now
) -> None:
    classifier.returns("WATER", "critical", confidence=0.9)
    complaint = await seed_complaint(
        status=ComplaintStatus.SUBMITTED,
        location=Location(lat=10.2, lng=20.8, address="Ward 4")
    )

    await gate.classify_and_approve(complaint.id, now=now)

    stored = complaint_repo.rows[complaint.id]
    assert stored.is_critical_area is True
    assert stored.priority_score == 65.0
    assert classifier.calls[0][1] == "Ward 4, (10.2, 20.8)"


async def test_threshold_comes_from_config(
    gate, classifier, seed_complaint, complaint_repo, sla_config, now
) -> None:
    sla_config.auto_approval_threshold = 0.9
    classifier.returns("WATER", "high", confidence=0.8)
    complaint = await seed_complaint(status=ComplaintStatus.SUBMITTED)

    await gate.classify_and_approve(complaint.id, now=now)

    assert complaint_repo.rows[complaint.id].status == ComplaintStatus.PENDING_REVIEW
