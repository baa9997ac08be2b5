"""Shared fixtures for Ofie Assistant tests."""

import asyncio
import os
from datetime import timedelta
from typing import List

import pytest

# No provider credentials, no database, no typing pauses
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("GOOGLE_API_KEY", "")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("TYPING_DELAY_CAP_SECONDS", "0")
os.environ.setdefault("TOKEN_ESTIMATOR", "heuristic")

from conversation.models import ConversationRecord, SubjectEntity, UserRecord, utcnow  # noqa: E402
from conversation.store import InMemoryConversationStore  # noqa: E402
from llm.providers import ProviderError, ProviderKind  # noqa: E402

BOT_ID = "ofie-assistant"
BOT_NAME = "Ofie Assistant"


def run(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


class RecordingBroadcaster:
    """Collects channel events instead of pushing them to sockets."""

    def __init__(self):
        self.events = []

    async def broadcast(self, conversation_id, event):
        self.events.append((conversation_id, event))

    def types(self) -> List[str]:
        return [event.type.value for _, event in self.events]

    def of_type(self, event_type: str):
        return [event for _, event in self.events if event.type.value == event_type]


class FakeProvider:
    """Provider stand-in returning canned output or raising."""

    def __init__(self, kind=ProviderKind.OPENAI, output="", error=None, model_id="fake-model"):
        self.kind = kind
        self.model_id = model_id
        self.output = output
        self.error = error
        self.calls = 0

    def generate(self, prompt):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def tenant():
    return UserRecord(
        id="tenant-1",
        name="Jane Doe",
        role="tenant",
        email="jane@example.com",
        created_at=utcnow() - timedelta(days=30),
        preferences={"max_budget": 2500, "amenities": ["parking"]},
    )


@pytest.fixture
def landlord():
    return UserRecord(id="landlord-1", name="Sam Lee", role="landlord")


@pytest.fixture
def bot_user():
    return UserRecord(id=BOT_ID, name=BOT_NAME, role="bot", email="bot@ofie.com")


@pytest.fixture
def store(tenant, landlord, bot_user):
    s = InMemoryConversationStore()
    run(s.add_user(tenant))
    run(s.add_user(landlord))
    run(s.add_user(bot_user))
    return s


@pytest.fixture
def bot_conversation(store, tenant):
    conv = ConversationRecord(
        id="conv-bot",
        tenant_id=tenant.id,
        landlord_id=BOT_ID,
        subject=SubjectEntity(
            id="prop-1",
            title="Sunny 2BR near the park",
            location="Downtown",
            price=1900,
            bedrooms=2,
            bathrooms=1,
            property_type="apartment",
        ),
    )
    run(store.add_conversation(conv))
    return conv


@pytest.fixture
def human_conversation(store, tenant, landlord):
    conv = ConversationRecord(id="conv-human", tenant_id=tenant.id, landlord_id=landlord.id)
    run(store.add_conversation(conv))
    return conv


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def good_provider():
    return FakeProvider(
        kind=ProviderKind.ANTHROPIC,
        output="There are several 2 bedroom apartments under $2,000 near downtown. Want me to narrow it down?",
    )


@pytest.fixture
def failing_provider():
    return FakeProvider(kind=ProviderKind.OPENAI, error=ProviderError("openai", "connection reset"))


@pytest.fixture
def disclaimer_provider():
    return FakeProvider(
        kind=ProviderKind.GOOGLE,
        output="As an AI, I cannot browse listings, but you might try the search page.",
    )


@pytest.fixture
def client(store, tenant):
    """FastAPI test client wired to the in-memory store."""
    from fastapi.testclient import TestClient
    from api.main import app
    from api.services import initialize_services

    initialize_services(store=store, providers=[], force=True)
    with TestClient(app) as test_client:
        yield test_client
