"""
Triage External Services
=========================

Adapters for external services used by the triage module, and the
background dispatcher that runs classification after submission.
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, List
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from dcms.complaints.application import IClassificationDispatcher, INotifier
from dcms.complaints.infrastructure import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyCriticalAreaRepository,
    SQLAlchemyDepartmentRepository,
    SQLAlchemyStatusLogRepository,
)
from dcms.infrastructure.database import get_session_context
from dcms.infrastructure.llm import ILLMClient as InfraLLMClient
from dcms.shared.infrastructure.logging import get_logger
from dcms.sla.domain import ISLAConfigProvider
from dcms.triage.application import AutoApprovalGate, IClassifier, ILLMClient

logger = get_logger(__name__)


class LLMClientAdapter(ILLMClient):
    """
    Adapter that wraps the infrastructure LLM client.

    Implements the application layer ILLMClient interface using whichever
    provider client ``create_llm_client`` selected.
    """

    def __init__(self, client: InfraLLMClient):
        self._client = client

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 500,
        operation: str = "chat_completion"
    ) -> Any:
        """Generate chat completion."""
        return await self._client.chat_completion(messages, temperature, max_tokens, operation)


class ClassificationJob:
    """
    One classification run on its own database session.

    Callable with a complaint id; never raises.
    """

    def __init__(
        self,
        classifier: IClassifier,
        notifier: INotifier,
        config_provider: ISLAConfigProvider,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session_context
    ):
        self._classifier = classifier
        self._notifier = notifier
        self._config_provider = config_provider
        self._session_factory = session_factory

    async def __call__(self, complaint_id: UUID) -> None:
        try:
            async with self._session_factory() as session:
                gate = AutoApprovalGate(
                    SQLAlchemyComplaintRepository(session),
                    SQLAlchemyStatusLogRepository(session),
                    SQLAlchemyDepartmentRepository(session),
                    SQLAlchemyCriticalAreaRepository(session),
                    self._classifier,
                    self._notifier,
                    self._config_provider
                )
                await gate.classify_and_approve(complaint_id)
        except Exception as e:
            logger.error(
                "Background classification failed",
                extra={"complaint_id": str(complaint_id), "error": str(e)},
                exc_info=True
            )


class BackgroundTasksClassificationDispatcher(IClassificationDispatcher):
    """Runs classification after the HTTP response is sent."""

    def __init__(self, background_tasks: BackgroundTasks, job: Callable[[UUID], Any]):
        self._background_tasks = background_tasks
        self._job = job

    def dispatch(self, complaint_id: UUID) -> None:
        self._background_tasks.add_task(self._job, complaint_id)
        logger.debug("Classification scheduled", extra={"complaint_id": str(complaint_id)})
