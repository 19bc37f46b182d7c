from __future__ import annotations

import json

import httpx
import pytest

from dcms.core import ConfigurationException
from dcms.sla.infrastructure import (
    CircuitBreaker,
    CircuitState,
    SLAConfigManager,
    SLAScheduler,
    WebhookNotifier,
    compute_signature,
    verify_signature,
)

SECRET = "test-secret"


class Recorder:
    """MockTransport handler that records requests and replays status codes."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses) or [200]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"ok": status < 400})


def _notifier(handler, **kwargs) -> WebhookNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return WebhookNotifier("http://workflow.local/webhook/", SECRET, http_client=client, **kwargs)


@pytest.mark.parametrize(
    "event_type,path",
    [
        ("complaint_routing", "/webhook/complaint-routing"),
        ("sla_warning", "/webhook/sla-warning"),
        ("sla_breach", "/webhook/sla-breach"),
        ("escalation_created", "/webhook/sla-breach"),
        ("complaint_created", "/webhook/notification"),
    ],
)
async def test_events_are_routed_to_their_endpoint(event_type, path) -> None:
    handler = Recorder()
    notifier = _notifier(handler)

    assert await notifier.send(event_type, {"complaint_id": "c-1"}) is True
    assert handler.requests[0].url.path == path


async def test_body_is_signed() -> None:
    handler = Recorder()
    notifier = _notifier(handler)

    await notifier.send("sla_breach", {"complaint_id": "c-1", "hours_overdue": 2.0})

    request = handler.requests[0]
    body = json.loads(request.content)
    unsigned = {k: v for k, v in body.items() if k != "signature"}
    assert body["event_type"] == "sla_breach"
    assert body["data"] == {"complaint_id": "c-1", "hours_overdue": 2.0}
    assert request.headers["X-Webhook-Signature"] == body["signature"]
    assert request.headers["X-Webhook-Event"] == "sla_breach"
    assert verify_signature(SECRET, unsigned, body["signature"])
    assert not verify_signature("other-secret", unsigned, body["signature"])


async def test_generic_events_are_wrapped_as_notifications() -> None:
    handler = Recorder()
    notifier = _notifier(handler)

    await notifier.send("complaint_rejected", {"complaint_id": "c-1"})

    body = json.loads(handler.requests[0].content)
    assert body["event_type"] == "notification"
    assert body["data"]["notification_type"] == "complaint_rejected"
    assert body["data"]["title"] == "Complaint Rejected"
    assert body["data"]["complaint_id"] == "c-1"


async def test_retries_then_succeeds() -> None:
    handler = Recorder(500, 502, 200)
    notifier = _notifier(handler)

    assert await notifier.send("sla_warning", {"complaint_id": "c-1"}) is True
    assert len(handler.requests) == 3


async def test_gives_up_after_max_retries() -> None:
    handler = Recorder(503)
    notifier = _notifier(handler, max_retries=2)

    assert await notifier.send("sla_warning", {"complaint_id": "c-1"}) is False
    assert len(handler.requests) == 2


@pytest.mark.parametrize("status", [400, 401, 404, 422])
async def test_client_errors_are_not_retried(status) -> None:
    handler = Recorder(status)
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    notifier = _notifier(handler, circuit_breaker=breaker)

    assert await notifier.send("sla_breach", {"complaint_id": "c-1"}) is False
    assert len(handler.requests) == 1
    assert breaker.state == CircuitState.CLOSED


async def test_transport_errors_are_not_raised() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    notifier = _notifier(handler, max_retries=2)

    assert await notifier.send("sla_breach", {"complaint_id": "c-1"}) is False
    assert len(calls) == 2


async def test_no_base_url_skips_sending() -> None:
    notifier = WebhookNotifier(None, SECRET)

    assert await notifier.send("sla_breach", {"complaint_id": "c-1"}) is False


async def test_open_circuit_short_circuits_requests() -> None:
    handler = Recorder(500)
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
    notifier = _notifier(handler, max_retries=1, circuit_breaker=breaker)

    await notifier.send("sla_breach", {"complaint_id": "c-1"})
    await notifier.send("sla_breach", {"complaint_id": "c-2"})
    assert breaker.state == CircuitState.OPEN

    assert await notifier.send("sla_breach", {"complaint_id": "c-3"}) is False
    assert len(handler.requests) == 2


def test_circuit_breaker_half_open_after_timeout() -> None:
    clock = [100.0]
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=lambda: clock[0])

    breaker.record_failure()
    assert breaker.allow_request() is False

    clock[0] += 30
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.allow_request() is True

    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN

    clock[0] += 30
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


def test_signature_covers_exact_encoding() -> None:
    assert compute_signature(SECRET, {"a": 1, "b": 2}) != compute_signature(SECRET, {"b": 2, "a": 1})
    assert verify_signature(SECRET, {"a": 1}, "") is False


# ========== Lifecycle policy file ==========

def test_config_manager_loads_yaml(tmp_path) -> None:
    path = tmp_path / "sla_config.yaml"
    path.write_text("warning_hours: 4\nurgency_multipliers:\n  high: 0.4\n")

    manager = SLAConfigManager()
    config = manager.load(path)

    assert config.warning_hours == 4
    assert config.get_multiplier("high") == 0.4
    assert config.get_multiplier("critical") == 0.25
    assert manager.get_config() is config


def test_config_manager_defaults_when_missing(tmp_path) -> None:
    manager = SLAConfigManager()

    config = manager.load(tmp_path / "missing.yaml")

    assert config.default_sla_hours == 72
    assert config.auto_approval_threshold == 0.75


def test_config_manager_rejects_invalid_file(tmp_path) -> None:
    path = tmp_path / "sla_config.yaml"
    path.write_text("auto_approval_threshold: 3\n")

    with pytest.raises(ConfigurationException):
        SLAConfigManager().load(path)


def test_reload_keeps_previous_config_on_error(tmp_path) -> None:
    path = tmp_path / "sla_config.yaml"
    path.write_text("warning_hours: 4\n")
    manager = SLAConfigManager()
    manager.load(path)

    path.write_text("priority_weights:\n  urgency: 90\n  time: 90\n  location: 90\n")
    assert manager.reload() is False
    assert manager.config.warning_hours == 4

    path.write_text("warning_hours: 2\n")
    assert manager.reload() is True
    assert manager.config.warning_hours == 2


def test_config_must_be_loaded_first() -> None:
    with pytest.raises(RuntimeError):
        SLAConfigManager().get_config()


# ========== Scheduler ==========

async def test_scheduler_start_and_stop() -> None:
    async def job() -> None:
        return None

    scheduler = SLAScheduler(interval_seconds=60)
    await scheduler.start(job)
    await scheduler.start(job)

    assert scheduler.is_running is True

    await scheduler.stop()
    assert scheduler.is_running is False
