"""
DCMS - Main Application
========================

Digital complaint management for city services.

Modules:
- Complaints: Intake, review, department workflow and citizen feedback
- Triage: LLM classification and auto-approval
- SLA: Deadlines, breach sweep and escalation ladder

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, LLM, webhooks, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from dcms.config import settings
from dcms.core import ApplicationException

# Infrastructure
from dcms.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from dcms.infrastructure.llm import create_llm_client

# Complaints Module
from dcms.complaints.infrastructure import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyStatusLogRepository,
    SQLAlchemyTransactionManager,
)
from dcms.complaints.interfaces import department_router
from dcms.complaints.interfaces import router as complaints_router

# SLA Module
from dcms.sla.application import SLABreachMonitor
from dcms.sla.infrastructure import (
    SLAConfigManager,
    SLAScheduler,
    SQLAlchemyEscalationRepository,
    WebhookNotifier,
)
from dcms.sla.interfaces import router as sla_router
from dcms.sla.interfaces import webhook_router

# Triage Module
from dcms.triage.application import ClassificationService
from dcms.triage.infrastructure import LLMClientAdapter

# Shared
from dcms.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from dcms.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Load lifecycle policy and watch it for changes
    4. Create webhook notifier and classifier
    5. Start the SLA sweep scheduler

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close webhook client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting complaint service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Development convenience; production schemas come from migrations
    if settings.environment == "development":
        try:
            await create_tables()
        except Exception as e:
            logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    notifier = WebhookNotifier(
        settings.webhook_base_url,
        settings.webhook_secret,
        timeout_seconds=settings.webhook_timeout_seconds
    )
    if not settings.webhook_base_url:
        logger.info("Webhook base URL not configured - notifications disabled")

    logger.info("Initializing LLM client", extra={"provider": settings.llm_provider})
    classifier = ClassificationService(
        LLMClientAdapter(create_llm_client(settings)),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens
    )

    async def sla_sweep_job():
        """Background SLA sweep on its own session."""
        async with get_session_context() as session:
            monitor = SLABreachMonitor(
                SQLAlchemyComplaintRepository(session),
                SQLAlchemyStatusLogRepository(session),
                SQLAlchemyEscalationRepository(session),
                notifier,
                config_manager,
                transaction_manager=SQLAlchemyTransactionManager(session)
            )
            await monitor.check_sla_breaches()

    scheduler = None
    if settings.sla_check_interval_seconds > 0:
        scheduler = SLAScheduler(interval_seconds=settings.sla_check_interval_seconds)
        await scheduler.start(sla_sweep_job)
    else:
        logger.info("SLA scheduler disabled")

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.config_provider = config_manager
    app.state.notifier = notifier
    app.state.classifier = classifier
    app.state.scheduler = scheduler

    logger.info("Complaint service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down complaint service")

    if scheduler:
        await scheduler.stop()

    config_manager.stop_watching()
    await notifier.close()
    await close_database()

    logger.info("Complaint service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="DCMS API",
    description="""
    ## Digital Complaint Management System

    Citizens report problems, an LLM classifier routes them to a department,
    and every complaint is tracked against an SLA deadline.

    ---

    ### Complaints

    - `POST /complaints` - Submit a complaint (classified in the background)
    - `GET /complaints/pending-review` - Manual review queue
    - `POST /complaints/{id}/review` - Approve or reject
    - `PATCH /complaints/{id}/status` - Department status update
    - `GET /complaints/{id}/timeline` - Status history and escalations

    ### SLA

    - `POST /sla/check` - Run the SLA sweep now
    - `GET /sla/statistics` - Compliance figures
    - `POST /sla/escalations/{id}/acknowledge` - Acknowledge an escalation

    ### Webhooks

    - `POST /webhooks/inbound` - Events from the workflow engine
    - `POST /webhooks/sla-check` - Sweep trigger for the workflow engine

    ---

    ### Effective SLA

    `deadline = created_at + department SLA hours x urgency multiplier`

    | Urgency | Multiplier |
    |---------|-----------|
    | critical | 0.25 |
    | high | 0.5 |
    | normal | 1.0 |
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(complaints_router)
app.include_router(department_router)
app.include_router(sla_router)
app.include_router(webhook_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "sla_config": "loaded",
                        "sla_scheduler": "running",
                        "llm_provider": "mock",
                        "webhooks": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - SLA configuration status
    - Scheduler state
    - LLM provider
    - Webhook configuration
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    checks = {
        "sla_config": "loaded" if getattr(request.app.state, "config_provider", None) else "not_loaded",
        "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "llm_provider": settings.llm_provider,
        "webhooks": "configured" if settings.webhook_base_url else "not_configured"
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dcms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
