"""Component wiring shared by the FastAPI lifespan and the sweep CLI.

Builds every collaborator from Settings once per process. Components keep
no state across invocations beyond caches of API client objects; all
workflow state lives in the spreadsheet.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.clientops.config import Settings, WorkflowConfig
from src.clientops.context.aggregator import ContextAggregator
from src.clientops.core.retry import RetryGate
from src.clientops.ledger import Ledger
from src.clientops.meetings.orchestrator import MeetingLifecycleOrchestrator
from src.clientops.meetings.repository import MeetingEventRepository
from src.clientops.outlook.composer import OutlookComposer
from src.clientops.registry.onboarding import OnboardingService
from src.clientops.registry.repository import ClientRegistry
from src.clientops.services.gsuite import (
    DocsService,
    GmailService,
    GoogleCalendarService,
    GSuiteAuthManager,
)
from src.clientops.services.llm import LLMService
from src.clientops.services.tasks import TodoistClient
from src.clientops.storage.sheets import SheetsRowStore

logger = structlog.get_logger(__name__)


class ConfigurationError(RuntimeError):
    """Required settings for wiring the workflow are missing."""


@dataclass
class Components:
    workflow_config: WorkflowConfig
    ledger: Ledger
    registry: ClientRegistry
    orchestrator: MeetingLifecycleOrchestrator
    outlook_composer: OutlookComposer
    onboarding: OnboardingService


def build_components(settings: Settings) -> Components:
    """Wire the workflow from settings.

    Raises:
        ConfigurationError: If Google credentials or the spreadsheet id
            are not configured.
    """
    sa_path = settings.get_service_account_path()
    if not sa_path:
        raise ConfigurationError("Google service account is not configured")
    if not settings.REGISTRY_SPREADSHEET_ID:
        raise ConfigurationError("REGISTRY_SPREADSHEET_ID is not configured")

    config = settings.workflow_config()

    gsuite_auth = GSuiteAuthManager(
        service_account_file=sa_path,
        delegated_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
    )
    gmail = GmailService(
        auth_manager=gsuite_auth,
        default_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
    )
    docs = DocsService(auth_manager=gsuite_auth)
    calendar = GoogleCalendarService(auth_manager=gsuite_auth)
    store = SheetsRowStore(auth_manager=gsuite_auth, spreadsheet_id=settings.REGISTRY_SPREADSHEET_ID)

    tasks = TodoistClient(api_token=settings.TODOIST_API_TOKEN)
    llm = LLMService(
        anthropic_api_key=settings.ANTHROPIC_API_KEY,
        openai_api_key=settings.OPENAI_API_KEY,
        timeout=settings.LLM_TIMEOUT,
    )
    retry_gate = RetryGate(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
    )

    ledger = Ledger(store)
    registry = ClientRegistry(store)
    repository = MeetingEventRepository(store)
    aggregator = ContextAggregator(
        config=config,
        gmail=gmail,
        docs=docs,
        tasks=tasks,
        retry_gate=retry_gate,
        ledger=ledger,
    )

    orchestrator = MeetingLifecycleOrchestrator(
        config=config,
        registry=registry,
        repository=repository,
        ledger=ledger,
        retry_gate=retry_gate,
        gmail=gmail,
        docs=docs,
        tasks=tasks,
        llm=llm,
        calendar=calendar,
        aggregator=aggregator,
    )
    outlook_composer = OutlookComposer(
        config=config,
        registry=registry,
        calendar=calendar,
        aggregator=aggregator,
        gmail=gmail,
        retry_gate=retry_gate,
        ledger=ledger,
    )
    onboarding = OnboardingService(
        registry=registry,
        docs=docs,
        tasks=tasks,
        retry_gate=retry_gate,
        ledger=ledger,
    )

    logger.info(
        "components_built",
        operator=config.operator_email,
        spreadsheet_id=settings.REGISTRY_SPREADSHEET_ID,
        llm_configured=llm.router is not None,
    )
    return Components(
        workflow_config=config,
        ledger=ledger,
        registry=registry,
        orchestrator=orchestrator,
        outlook_composer=outlook_composer,
        onboarding=onboarding,
    )
