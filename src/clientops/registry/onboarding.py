"""OnboardingService -- registers a client and provisions its external handles.

Onboarding assigns the stable identifier, creates the running notes
document and the task project, and marks the record ``setup_complete`` only
once both handles exist. The record is registered before provisioning so a
failed provisioning step leaves a visible, incomplete record rather than
nothing at all.
"""

from __future__ import annotations

import structlog

from src.clientops.core.errors import ExternalServiceFailure
from src.clientops.core.retry import RetryGate
from src.clientops.ledger import ActionType, AuditStatus, Ledger
from src.clientops.registry.repository import ClientRegistry
from src.clientops.registry.schemas import ClientRecord
from src.clientops.services.gsuite.docs import DocsService
from src.clientops.services.tasks import TodoistClient

logger = structlog.get_logger(__name__)


class OnboardingService:
    """Creates client records with their document and task project.

    Args:
        registry: ClientRegistry to write to.
        docs: DocsService for the running notes document.
        tasks: TodoistClient for the task project.
        retry_gate: RetryGate wrapping each external call.
        ledger: Ledger for the onboarding audit record.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        docs: DocsService,
        tasks: TodoistClient,
        retry_gate: RetryGate,
        ledger: Ledger,
    ) -> None:
        self._registry = registry
        self._docs = docs
        self._tasks = tasks
        self._retry = retry_gate
        self._ledger = ledger

    async def onboard(
        self,
        name: str,
        contact_emails: list[str],
        domains: list[str],
        internal_only: bool = False,
    ) -> ClientRecord:
        """Register and provision a new client.

        Returns:
            The stored ClientRecord, with ``setup_complete`` reflecting
            whether both handles were created.
        """
        client_id = await self._registry.next_client_id()
        record = await self._registry.add(
            ClientRecord(
                client_id=client_id,
                name=name,
                contact_emails=contact_emails,
                domains=domains,
                internal_only=internal_only,
            )
        )

        document_id = ""
        project_id = ""
        try:
            document_id = await self._retry.call(
                "docs.create_document",
                self._docs.create_document,
                f"{name} - Client Notes",
            )
            project_id = await self._retry.call(
                "tasks.create_project",
                self._tasks.create_project,
                name,
            )
        except ExternalServiceFailure as exc:
            await self._ledger.audit(
                ActionType.ONBOARDING,
                AuditStatus.ERROR,
                f"provisioning failed: {exc}",
                client_id=client_id,
            )
        finally:
            if document_id or project_id:
                await self._registry.update_handles(client_id, document_id, project_id)

        complete = bool(document_id and project_id)
        if complete:
            await self._ledger.audit(
                ActionType.ONBOARDING,
                AuditStatus.SUCCESS,
                f"onboarded {name}",
                client_id=client_id,
            )
        logger.info("client_onboarded", client_id=client_id, setup_complete=complete)

        return record.model_copy(
            update={
                "document_id": document_id,
                "task_project_id": project_id,
                "setup_complete": complete,
            }
        )
