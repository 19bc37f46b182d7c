"""
SLA External Service Integrations
==================================

External services for the complaint lifecycle:
- Signed webhook notifications to the workflow engine
- YAML lifecycle policy file watcher
- APScheduler for the periodic SLA sweep
"""

import asyncio
import hashlib
import hmac
import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from dcms.complaints.application import INotifier
from dcms.config import NotificationEvent
from dcms.core import ConfigurationException
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.domain import ISLAConfigProvider, SLAConfig

logger = get_logger(__name__)


# ========== Lifecycle policy hot reload ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for lifecycle policy file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe lifecycle policy manager with hot-reload support.

    Uses watchdog to monitor file changes and swap the configuration
    without restarting the service. A reload that fails validation keeps
    the previous configuration.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: If the file exists but is invalid
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except Exception as e:
            raise ConfigurationException(f"Invalid SLA config {self._path}: {e}")
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning(
                "SLA config file not found, using defaults",
                extra={"path": str(path)}
            )
            return SLAConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except Exception as e:
            logger.error(
                "Failed to reload SLA config, keeping previous",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skips watching if the file doesn't exist or the platform has no
        file notification support (some containers).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(f"File watching not available, using static config: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    @property
    def config(self) -> SLAConfig:
        return self.get_config()


# ========== Circuit breaker ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


# ========== Webhook notifications ==========

# Workflow engine path per event; unlisted events go to the generic endpoint
WEBHOOK_ENDPOINTS = {
    NotificationEvent.COMPLAINT_ROUTING.value: "complaint-routing",
    NotificationEvent.SLA_WARNING.value: "sla-warning",
    NotificationEvent.SLA_BREACH.value: "sla-breach",
    NotificationEvent.ESCALATION_CREATED.value: "sla-breach",
}
NOTIFICATION_ENDPOINT = "notification"

NOTIFICATION_TITLES = {
    NotificationEvent.COMPLAINT_CREATED.value: "Complaint Submitted",
    NotificationEvent.COMPLAINT_APPROVED.value: "Complaint Approved",
    NotificationEvent.COMPLAINT_REJECTED.value: "Complaint Rejected",
    NotificationEvent.COMPLAINT_ASSIGNED.value: "Complaint Assigned",
    NotificationEvent.STATUS_UPDATED.value: "Status Update",
}


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Compact JSON encoding used for signing."""
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


def compute_signature(secret: str, payload: Dict[str, Any]) -> str:
    """Hex HMAC-SHA256 of the canonical JSON encoding of ``payload``."""
    return hmac.new(secret.encode("utf-8"), canonical_json(payload), hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: Dict[str, Any], signature: Optional[str]) -> bool:
    """Constant-time check of a signature produced by ``compute_signature``."""
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, payload), signature)


class WebhookNotifier(INotifier):
    """
    Workflow engine webhook client with circuit breaker and retry logic.

    Handles sending signed events with:
    - HMAC-SHA256 signature (body field and X-Webhook-Signature header)
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry on 5xx responses and transport errors
    - Timeout handling

    Never raises: every failure is logged and reported as False.
    """

    def __init__(
        self,
        base_url: Optional[str],
        secret: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._base_url = base_url.rstrip("/") if base_url else None
        self._secret = secret
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def build_envelope(self, event_type: str, payload: Dict[str, Any]) -> tuple:
        """
        Build the endpoint and signed body for an event.

        Returns:
            Tuple of (endpoint, body)
        """
        endpoint = WEBHOOK_ENDPOINTS.get(event_type, NOTIFICATION_ENDPOINT)

        if endpoint == NOTIFICATION_ENDPOINT:
            wire_event = NOTIFICATION_ENDPOINT
            data = {
                "notification_type": event_type,
                "title": NOTIFICATION_TITLES.get(event_type, "Notification"),
                **payload,
            }
        else:
            wire_event = event_type
            data = dict(payload)

        body = {
            "event_type": wire_event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
        body["signature"] = compute_signature(self._secret, body)
        return endpoint, body

    async def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Send an event to the workflow engine.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._base_url:
            logger.debug(
                "Webhook base URL not configured, skipping notification",
                extra={"event_type": event_type}
            )
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping webhook notification",
                extra={"event_type": event_type, "complaint_id": payload.get("complaint_id")}
            )
            return False

        try:
            endpoint, body = self.build_envelope(event_type, payload)
        except Exception as e:
            logger.error(
                "Failed to build webhook payload",
                extra={"event_type": event_type, "error": str(e)}
            )
            return False

        url = f"{self._base_url}/{endpoint}"
        content = canonical_json(body)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": body["signature"],
            "X-Webhook-Event": body["event_type"],
        }

        for attempt in range(self._max_retries):
            start_time = time.perf_counter()
            try:
                client = await self._get_client()
                response = await client.post(url, content=content, headers=headers)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Webhook sent successfully",
                        extra={
                            "endpoint": endpoint,
                            "event_type": event_type,
                            "complaint_id": payload.get("complaint_id"),
                            "duration_ms": int((time.perf_counter() - start_time) * 1000)
                        }
                    )
                    return True

                if not response.is_server_error:
                    # The engine rejected the event; resending it cannot help
                    logger.error(
                        "Webhook rejected",
                        extra={
                            "endpoint": endpoint,
                            "event_type": event_type,
                            "status_code": response.status_code,
                            "complaint_id": payload.get("complaint_id")
                        }
                    )
                    return False

                logger.warning(
                    "Webhook returned server error",
                    extra={
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )

            except Exception as e:
                logger.error(
                    "Webhook failed",
                    extra={
                        "endpoint": endpoint,
                        "event_type": event_type,
                        "error": str(e),
                        "attempt": attempt + 1
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# ========== Scheduler ==========

class SLAScheduler:
    """
    Wrapper for APScheduler for the periodic SLA sweep.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 900):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_check",
            name="SLA Breach Check",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
