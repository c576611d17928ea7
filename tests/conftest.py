"""Shared fixtures wiring the in-memory doubles into real components.

Provides:
- A RetryGate that never sleeps
- A fully wired MeetingLifecycleOrchestrator over the fakes
- Seeded clients: Acme (domain acme.com) and an internal-only Board
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.clientops.config import WorkflowConfig
from src.clientops.context.aggregator import ContextAggregator
from src.clientops.core.retry import RetryGate
from src.clientops.ledger import Ledger
from src.clientops.meetings.orchestrator import MeetingLifecycleOrchestrator
from src.clientops.meetings.repository import MeetingEventRepository
from src.clientops.registry.repository import ClientRegistry
from src.clientops.registry.schemas import ClientRecord, record_to_row
from src.clientops.storage.rowstore import CLIENTS_TABLE
from tests.doubles import (
    OPERATOR,
    FakeCalendar,
    FakeDocs,
    FakeGmail,
    FakeLLM,
    FakeTasks,
    InMemoryRowStore,
    no_sleep,
)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig(operator_email=OPERATOR, assignee_map={"dana": "u-42"})


@pytest.fixture
def store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def acme() -> ClientRecord:
    return ClientRecord(
        client_id="C-0001",
        name="Acme",
        contact_emails=["ceo@acme.com"],
        domains=["acme.com"],
        document_id="doc-acme",
        task_project_id="proj-acme",
        setup_complete=True,
    )


@pytest.fixture
def board() -> ClientRecord:
    return ClientRecord(
        client_id="C-0002",
        name="Board",
        contact_emails=["alice@ourfirm.com", "bob@ourfirm.com"],
        internal_only=True,
        document_id="doc-board",
        task_project_id="proj-board",
        setup_complete=True,
    )


@pytest.fixture
def seeded_store(store, acme, board) -> InMemoryRowStore:
    store.tables[CLIENTS_TABLE] = [record_to_row(acme), record_to_row(board)]
    return store


@pytest.fixture
def gate() -> RetryGate:
    return RetryGate(max_attempts=3, base_delay=0.01, max_delay=0.05, sleep=no_sleep)


@pytest.fixture
def gmail() -> FakeGmail:
    return FakeGmail()


@pytest.fixture
def docs() -> FakeDocs:
    fake = FakeDocs()
    fake.documents["doc-acme"] = ""
    return fake


@pytest.fixture
def tasks() -> FakeTasks:
    return FakeTasks()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def ledger(seeded_store) -> Ledger:
    return Ledger(seeded_store)


@pytest.fixture
def registry(seeded_store) -> ClientRegistry:
    return ClientRegistry(seeded_store)


@pytest.fixture
def repository(seeded_store) -> MeetingEventRepository:
    return MeetingEventRepository(seeded_store)


@pytest.fixture
def aggregator(config, gmail, docs, tasks, gate, ledger) -> ContextAggregator:
    return ContextAggregator(
        config=config,
        gmail=gmail,
        docs=docs,
        tasks=tasks,
        retry_gate=gate,
        ledger=ledger,
    )


@pytest.fixture
def orchestrator(
    config, registry, repository, ledger, gate, gmail, docs, tasks, llm, calendar, aggregator
) -> MeetingLifecycleOrchestrator:
    return MeetingLifecycleOrchestrator(
        config=config,
        registry=registry,
        repository=repository,
        ledger=ledger,
        retry_gate=gate,
        gmail=gmail,
        docs=docs,
        tasks=tasks,
        llm=llm,
        calendar=calendar,
        aggregator=aggregator,
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
