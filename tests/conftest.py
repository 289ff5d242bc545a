"""Shared fixtures for the OKR assistant tests."""
import pytest

from okr_assistant.agents.orchestrator import ConversationOrchestrator
from okr_assistant.agents.subagents.intent_analyzer import IntentAnalyzer
from okr_assistant.agents.subagents.intent_execution import IntentExecutionCoordinator
from okr_assistant.agents.subagents.workflow_state import WorkflowStateTracker
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import Provider
from okr_assistant.providers.factory import ProviderSet
from okr_assistant.services.conversation_store import ConversationStore
from okr_assistant.services.memory_service import VectorContextMemory
from tests.fakes import FakeProvider, KeywordEmbedder, RecordingHandlers, StubPdfRenderer, register


@pytest.fixture
def handlers():
    return RecordingHandlers()


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def registry(store, handlers):
    registry = FunctionRegistry(name="test-functions")
    register(registry, "CreateTeam", handlers.succeed("Team", "Team 'Apollo' created successfully.", "team-1"))
    registry.add_listener(store.record_function_result)
    return registry


@pytest.fixture
def user_context():
    return UserContext(
        user_id="user-123",
        user_name="Ada",
        organization_id="org-1",
        role="OrganizationAdmin"
    )


@pytest.fixture
def azure():
    return FakeProvider(
        Provider.AZURE_OPENAI,
        ["Team 'Apollo' created successfully."],
        function_calling=True,
        multi_step=True
    )


@pytest.fixture
def deepseek():
    return FakeProvider(Provider.DEEPSEEK, ["Hello from DeepSeek"])


@pytest.fixture
def cohere():
    return FakeProvider(
        Provider.COHERE,
        ['{"intents": [{"intent": "GeneralConversation", "parameters": {}}]}', "Hi there"]
    )


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def memory(embedder):
    return VectorContextMemory(embedder, min_relevance=0.7, limit=5)


@pytest.fixture
def workflow():
    return WorkflowStateTracker()


@pytest.fixture
def provider_set(azure, deepseek, cohere):
    return ProviderSet({
        Provider.AZURE_OPENAI: azure,
        Provider.DEEPSEEK: deepseek,
        Provider.COHERE: cohere,
    })


@pytest.fixture
def pdf_renderer():
    return StubPdfRenderer()


@pytest.fixture
def orchestrator(store, provider_set, registry, workflow, memory, pdf_renderer):
    return ConversationOrchestrator(
        store=store,
        providers=provider_set,
        analyzer=IntentAnalyzer(entity_references=store.recent_entity_references),
        coordinator=IntentExecutionCoordinator(registry),
        workflow=workflow,
        memory=memory,
        pdf_renderer=pdf_renderer
    )
