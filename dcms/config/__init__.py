"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Environment-level settings live here. The complaint lifecycle policy
(weights, multipliers, escalation thresholds) is loaded from YAML into
``dcms.sla.domain.value_objects.SLAConfig`` and injected into services.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="dcms", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/dcms",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to complaint lifecycle policy YAML file"
    )
    sla_check_interval_seconds: int = Field(
        default=900,
        description="Seconds between SLA breach sweeps (0 disables the scheduler)",
        ge=0
    )

    # ========== Webhook Notifications ==========
    webhook_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the workflow engine receiving outbound events"
    )
    webhook_secret: str = Field(
        default="change-me-webhook-secret",
        description="Shared secret for HMAC signing and inbound verification"
    )
    webhook_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for outbound webhook calls",
        ge=0.1,
        le=30
    )

    # ========== LLM Classifier ==========
    llm_provider: str = Field(
        default="mock",
        description="Classifier backend: zai, openai or mock"
    )
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    llm_model: str = Field(
        default="glm-4.7",
        description="Model used for complaint classification"
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Sampling temperature for classification",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=500,
        description="Max tokens for classification output",
        ge=1,
        le=8000
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        allowed = {"zai", "openai", "mock"}
        if v.lower() not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v.lower()

@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()

# Global settings instance
settings = get_settings()

# ========== Constants ==========

class ComplaintStatus(str, Enum):
    """Complaint lifecycle statuses."""
    SUBMITTED = "submitted"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"

class UrgencyLevel(str, Enum):
    """Complaint urgency levels assigned by the classifier or a reviewer."""
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

class EscalationLevel(str, Enum):
    """Escalation ladder levels, lowest first."""
    LEVEL_1 = "level_1"
    LEVEL_2 = "level_2"
    LEVEL_3 = "level_3"
    EXECUTIVE = "executive"

class NotificationEvent(str, Enum):
    """Outbound notification event types."""
    COMPLAINT_CREATED = "complaint_created"
    COMPLAINT_APPROVED = "complaint_approved"
    COMPLAINT_REJECTED = "complaint_rejected"
    COMPLAINT_ASSIGNED = "complaint_assigned"
    COMPLAINT_ROUTING = "complaint_routing"
    STATUS_UPDATED = "status_updated"
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"
    ESCALATION_CREATED = "escalation_created"

# Actor recorded on system-authored status logs
SYSTEM_ACTOR = "system"

# ========== Lists for validation ==========

TERMINAL_STATUSES = [ComplaintStatus.CLOSED, ComplaintStatus.REJECTED]

# Statuses the SLA sweep never looks at
SLA_EXEMPT_STATUSES = [
    ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED, ComplaintStatus.REJECTED
]

ESCALATION_ORDER = [
    EscalationLevel.LEVEL_1, EscalationLevel.LEVEL_2,
    EscalationLevel.LEVEL_3, EscalationLevel.EXECUTIVE
]

DEPARTMENT_CODES = ["WATER", "ELECTRICITY", "SANITATION", "SAFETY", "ROADS", "OTHER"]
