from __future__ import annotations

import httpx
import pytest

from dcms.complaints.interfaces import get_complaint_service
from dcms.config import ComplaintStatus
from dcms.main import app
from dcms.sla.infrastructure import compute_signature
from dcms.sla.interfaces import (
    get_breach_monitor,
    get_escalation_service,
    get_statistics_service,
    get_webhook_secret,
)

WEBHOOK_SECRET = "hook-secret"


@pytest.fixture
async def client(complaint_service, monitor, escalation_service, statistics_service):
    app.dependency_overrides[get_complaint_service] = lambda: complaint_service
    app.dependency_overrides[get_breach_monitor] = lambda: monitor
    app.dependency_overrides[get_escalation_service] = lambda: escalation_service
    app.dependency_overrides[get_statistics_service] = lambda: statistics_service
    app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


async def test_submit_complaint(client, dispatcher) -> None:
    response = await client.post(
        "/complaints",
        json={"description": "Water pipe burst near the market", "user_id": "citizen-1"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "submitted"
    assert body["user_id"] == "citizen-1"
    assert len(dispatcher.dispatched) == 1
    assert "X-Correlation-ID" in response.headers


async def test_submit_validates_description(client) -> None:
    response = await client.post("/complaints", json={"description": "short"})

    assert response.status_code == 422


async def test_unknown_complaint_is_404(client) -> None:
    response = await client.get("/complaints/7b0e8f4c-3c1e-4a55-9d55-2f6f0b2f8a10")

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_invalid_transition_is_400(client, seed_complaint) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.APPROVED)

    response = await client.patch(
        f"/complaints/{complaint.id}/status",
        json={"status": "resolved", "updated_by": "officer-1"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TRANSITION"


async def test_pending_review_queue(client, seed_complaint) -> None:
    queued = await seed_complaint(status=ComplaintStatus.PENDING_REVIEW)
    await seed_complaint(status=ComplaintStatus.APPROVED)

    response = await client.get("/complaints/pending-review")

    assert response.status_code == 200
    assert [c["id"] for c in response.json()["complaints"]] == [str(queued.id)]


async def test_sla_check_returns_counts(client, seed_complaint) -> None:
    await seed_complaint(status=ComplaintStatus.IN_PROGRESS, deadline_in_hours=-2)

    response = await client.post("/sla/check")

    assert response.status_code == 200
    assert response.json() == {"checked": 1, "warnings": 0, "breaches": 1, "escalations": 0}


async def test_statistics_endpoint(client) -> None:
    response = await client.get("/sla/statistics")

    assert response.status_code == 200
    assert response.json()["sla_compliance_rate"] == 100.0


async def test_inbound_webhook_requires_credentials(client, seed_complaint) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.APPROVED)
    event = {
        "event_type": "complaint_assigned",
        "data": {"complaint_id": str(complaint.id), "assigned_to": "officer-9"},
    }

    missing = await client.post("/webhooks/inbound", json=event)
    wrong = await client.post("/webhooks/inbound", json=event, headers={"X-Webhook-Secret": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401


async def test_inbound_assignment_with_shared_secret(client, seed_complaint, complaint_repo, status_log_repo) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.APPROVED)

    response = await client.post(
        "/webhooks/inbound",
        json={
            "event_type": "complaint_assigned",
            "data": {"complaint_id": str(complaint.id), "assigned_to": "officer-9"},
        },
        headers={"X-Webhook-Secret": WEBHOOK_SECRET}
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    stored = complaint_repo.rows[complaint.id]
    assert stored.status == ComplaintStatus.ASSIGNED
    assert stored.assigned_to == "officer-9"
    assert status_log_repo.for_complaint(complaint.id)[0].changed_by == "workflow"


async def test_inbound_status_update_with_body_signature(client, seed_complaint, complaint_repo) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.ASSIGNED)
    event = {
        "event_type": "status_update",
        "timestamp": "2025-03-01T12:00:00+00:00",
        "data": {"complaint_id": str(complaint.id), "status": "in_progress"},
    }
    event["signature"] = compute_signature(WEBHOOK_SECRET, event)

    response = await client.post("/webhooks/inbound", json=event)

    assert response.status_code == 200
    assert complaint_repo.rows[complaint.id].status == ComplaintStatus.IN_PROGRESS


async def test_inbound_event_goes_through_lifecycle_rules(client, seed_complaint) -> None:
    complaint = await seed_complaint(status=ComplaintStatus.APPROVED)

    response = await client.post(
        "/webhooks/inbound",
        json={
            "event_type": "status_update",
            "data": {"complaint_id": str(complaint.id), "status": "closed"},
        },
        headers={"X-Webhook-Secret": WEBHOOK_SECRET}
    )

    assert response.status_code == 400


async def test_inbound_event_missing_fields(client) -> None:
    response = await client.post(
        "/webhooks/inbound",
        json={"event_type": "status_update", "data": {}},
        headers={"X-Webhook-Secret": WEBHOOK_SECRET}
    )

    assert response.status_code == 400
    assert response.json()["details"] == {"missing": ["complaint_id", "status"]}


async def test_health(client) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_list_departments(client) -> None:
    response = await client.get("/departments")

    assert response.status_code == 200
    assert {d["code"] for d in response.json()} == {"WATER", "ROADS"}


async def test_get_department(client, water_department) -> None:
    found = await client.get(f"/departments/{water_department.id}")
    missing = await client.get("/departments/7b0e8f4c-3c1e-4a55-9d55-2f6f0b2f8a10")

    assert found.status_code == 200
    assert found.json()["name"] == "Water Supply"
    assert found.json()["sla_hours"] == 72
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


async def test_department_statistics_endpoint(client, seed_complaint, roads_department) -> None:
    await seed_complaint(status=ComplaintStatus.IN_PROGRESS, department_id=roads_department.id)

    response = await client.get("/sla/statistics/departments")

    assert response.status_code == 200
    body = response.json()
    assert body[0]["department_code"] == "ROADS"
    assert body[0]["open_complaints"] == 1
    assert body[1]["total_complaints"] == 0


async def test_classifier_statistics_endpoint(client) -> None:
    response = await client.get("/sla/statistics/classifier", params={"days": 7})

    assert response.status_code == 200
    assert response.json() == []
