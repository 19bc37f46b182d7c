"""
Triage Application Services
============================

Application services for complaint classification and auto-approval.

The gate is the only consumer of classifier output: it decides between
auto-approval and the manual review queue.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from dcms.complaints.application import (
    ComplaintLifecycle,
    IComplaintRepository,
    ICriticalAreaRepository,
    IDepartmentRepository,
    INotifier,
    IStatusLogRepository,
    calculate_approval_fields,
    notification_payload,
    notify_safely,
)
from dcms.complaints.application.services import utcnow
from dcms.complaints.domain import Complaint
from dcms.config import SYSTEM_ACTOR, ComplaintStatus, NotificationEvent
from dcms.core import LLMException, ResourceNotFoundException
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.domain import ISLAConfigProvider
from dcms.triage.domain import (
    ClassificationPromptBuilder,
    ClassificationResult,
    parse_classification,
)

logger = get_logger(__name__)

CLASSIFICATION_FAILED_NOTE = "Classification failed - requires manual review"


# ========== Interfaces ==========

class ILLMClient(ABC):
    """Interface for LLM operations."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float,
        max_tokens: int,
        operation: str = "chat_completion"
    ) -> Any:
        """Generate chat completion."""


class IClassifier(ABC):
    """Interface for complaint classification."""

    @abstractmethod
    async def classify(
        self,
        description: str,
        location_context: Optional[str] = None
    ) -> ClassificationResult:
        """
        Classify a complaint by department and urgency.

        Raises:
            ClassificationException: On empty or malformed output
            LLMException: When the provider cannot be reached
        """


# ========== Application Services ==========

class ClassificationService(IClassifier):
    """
    Complaint classifier backed by an LLM.

    Coordinates between the prompt builder, the LLM client and the parser.
    """

    def __init__(self, llm_client: ILLMClient, temperature: float = 0.1, max_tokens: int = 500):
        self._llm = llm_client
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def classify(
        self,
        description: str,
        location_context: Optional[str] = None
    ) -> ClassificationResult:
        start_time = time.perf_counter()

        messages = [
            {"role": "system", "content": ClassificationPromptBuilder.get_system_prompt()},
            {"role": "user", "content": ClassificationPromptBuilder.build_prompt(description, location_context)}
        ]

        try:
            response = await self._llm.chat_completion(
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                operation="classification"
            )
        except LLMException:
            raise
        except Exception as e:
            raise LLMException(f"Classification failed: {e}")

        result = parse_classification(response.content, model_used=response.model)
        result.latency_ms = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "Complaint classified",
            extra={
                "department_code": result.department_code,
                "urgency": result.urgency.value,
                "confidence": result.confidence,
                "latency_ms": result.latency_ms
            }
        )
        return result


class AutoApprovalGate:
    """
    Confidence-threshold branch over the classifier.

    High-confidence results with a known department are approved and
    routed; everything else lands in the manual review queue.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        status_log_repository: IStatusLogRepository,
        department_repository: IDepartmentRepository,
        critical_area_repository: ICriticalAreaRepository,
        classifier: IClassifier,
        notifier: INotifier,
        config_provider: ISLAConfigProvider
    ):
        self._complaints = complaint_repository
        self._departments = department_repository
        self._critical_areas = critical_area_repository
        self._classifier = classifier
        self._notifier = notifier
        self._config_provider = config_provider
        self._lifecycle = ComplaintLifecycle(complaint_repository, status_log_repository)

    async def classify_and_approve(
        self,
        complaint_id: UUID,
        now: Optional[datetime] = None
    ) -> Optional[Complaint]:
        """
        Classify a submitted complaint and approve it or queue it for review.

        Never raises: failures are logged and, where the complaint can still
        be moved, it falls back to ``pending_review``.

        Returns:
            The complaint after processing, or None if processing failed
        """
        now = now or utcnow()
        try:
            return await self._process(complaint_id, now)
        except Exception as e:
            logger.error(
                "Auto-approval failed",
                extra={"complaint_id": str(complaint_id), "error": str(e)},
                exc_info=True
            )
            await self._fall_back_to_review(complaint_id, now)
            return None

    async def _process(self, complaint_id: UUID, now: datetime) -> Complaint:
        complaint = await self._complaints.get_by_id(complaint_id)
        if complaint is None:
            raise ResourceNotFoundException("Complaint", str(complaint_id))

        if complaint.status != ComplaintStatus.SUBMITTED:
            logger.info(
                "Skipping classification, complaint already triaged",
                extra={"complaint_id": str(complaint.id), "status": complaint.status.value}
            )
            return complaint

        try:
            result = await self._classifier.classify(
                complaint.description, complaint.location.describe()
            )
        except Exception as e:
            logger.warning(
                "Classification failed, queueing for manual review",
                extra={"complaint_id": str(complaint.id), "error": str(e)}
            )
            await self._lifecycle.transition(
                complaint,
                ComplaintStatus.PENDING_REVIEW,
                SYSTEM_ACTOR,
                notes=CLASSIFICATION_FAILED_NOTE,
                changes={"ai_reasoning": CLASSIFICATION_FAILED_NOTE},
                now=now
            )
            return complaint

        config = self._config_provider.get_config()
        department = await self._departments.get_by_code(result.department_code)

        is_critical_area = complaint.is_critical_area
        if complaint.location.has_coordinates:
            is_critical_area = await self._critical_areas.contains(
                complaint.location.lat, complaint.location.lng
            )

        changes = {
            "department_id": department.id if department else None,
            "urgency": result.urgency,
            "is_critical_area": is_critical_area,
            "ai_confidence": result.confidence,
            "ai_reasoning": result.reasoning,
            "ai_classified_at": now,
            "ai_model_version": result.model_used,
        }
        metadata = {
            "department_code": result.department_code,
            "confidence": result.confidence,
            "threshold": config.auto_approval_threshold,
        }

        if result.confidence >= config.auto_approval_threshold and department is not None:
            changes.update(
                is_auto_approved=True,
                approved_at=now,
                **calculate_approval_fields(
                    complaint, department, result.urgency, config, now, is_critical_area
                )
            )
            await self._lifecycle.transition(
                complaint,
                ComplaintStatus.APPROVED,
                SYSTEM_ACTOR,
                notes="Auto-approved by classifier",
                metadata=metadata,
                changes=changes,
                now=now
            )
            logger.info(
                "Complaint auto-approved",
                extra={
                    "complaint_id": str(complaint.id),
                    "department_code": department.code,
                    "confidence": result.confidence,
                    "priority_score": complaint.priority_score
                }
            )
            await notify_safely(
                self._notifier,
                NotificationEvent.COMPLAINT_ROUTING,
                notification_payload(complaint, department_code=department.code)
            )
            return complaint

        reason = (
            "Department not found for classifier code"
            if department is None
            else "Classifier confidence below auto-approval threshold"
        )
        await self._lifecycle.transition(
            complaint,
            ComplaintStatus.PENDING_REVIEW,
            SYSTEM_ACTOR,
            notes=reason,
            metadata=metadata,
            changes=changes,
            now=now
        )
        logger.info(
            "Complaint queued for manual review",
            extra={
                "complaint_id": str(complaint.id),
                "department_code": result.department_code,
                "confidence": result.confidence,
                "reason": reason
            }
        )
        return complaint

    async def _fall_back_to_review(self, complaint_id: UUID, now: datetime) -> None:
        try:
            complaint = await self._complaints.get_by_id(complaint_id)
            if complaint is None or complaint.status != ComplaintStatus.SUBMITTED:
                return
            await self._lifecycle.transition(
                complaint,
                ComplaintStatus.PENDING_REVIEW,
                SYSTEM_ACTOR,
                notes=CLASSIFICATION_FAILED_NOTE,
                changes={"ai_reasoning": CLASSIFICATION_FAILED_NOTE},
                now=now
            )
        except Exception as e:
            logger.error(
                "Fallback to manual review failed",
                extra={"complaint_id": str(complaint_id), "error": str(e)}
            )
