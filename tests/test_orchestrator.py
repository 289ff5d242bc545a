"""Tests for chat turn routing, post-processing and recording."""
import asyncio
import base64

import pytest

from okr_assistant.agents.orchestrator import ConversationOrchestrator, post_process
from okr_assistant.agents.skills.error_recovery import (
    CANCELLED_MESSAGE,
    EMPTY_DOCUMENT_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    TIMEOUT_MESSAGE,
)
from okr_assistant.agents.skills.prompts import DOCUMENT_INSTRUCTIONS
from okr_assistant.agents.subagents.intent_analyzer import IntentAnalyzer
from okr_assistant.agents.subagents.intent_execution import IntentExecutionCoordinator
from okr_assistant.agents.subagents.workflow_state import DOCUMENT_ID, WorkflowStep
from okr_assistant.models.message import DEFAULT_SYSTEM_MESSAGE, MessageRole
from okr_assistant.providers.base import Provider
from okr_assistant.providers.factory import ProviderSet
from okr_assistant.services.conversation_repository import ConversationPersistenceError
from okr_assistant.services.conversation_store import ConversationStore
from okr_assistant.services.memory_service import VectorContextMemory
from tests.fakes import FakeProvider, KeywordEmbedder, StubPdfRenderer, failing, register

SESSION_PROPOSAL = (
    "Based on the document, I propose the following OKR session: Q3 Growth.\n\n"
    "Would you like me to create this OKR session? Or would you like to make any adjustments first?"
)


def _orchestrator(store, registry, workflow, memory, azure=None, deepseek=None, cohere=None):
    providers = ProviderSet({
        Provider.AZURE_OPENAI: azure or FakeProvider(Provider.AZURE_OPENAI, function_calling=True, multi_step=True),
        Provider.DEEPSEEK: deepseek or FakeProvider(Provider.DEEPSEEK),
        Provider.COHERE: cohere or FakeProvider(Provider.COHERE),
    })
    return ConversationOrchestrator(
        store=store,
        providers=providers,
        analyzer=IntentAnalyzer(entity_references=store.recent_entity_references),
        coordinator=IntentExecutionCoordinator(registry),
        workflow=workflow,
        memory=memory,
        pdf_renderer=StubPdfRenderer()
    )


@pytest.mark.asyncio
async def test_function_calling_turn_adds_exactly_two_messages(orchestrator, store, azure, user_context):
    before = len(store.get_history("c1").messages)

    result = await orchestrator.handle_message("c1", "Create a team named Apollo", user_context, "azureopenai")

    assert result.using_function_calling is True
    assert result.provider == "azureopenai"
    assert result.intents == ["MultiStepPlan"]
    assert result.response == "Team 'Apollo' created successfully."
    assert result.organization_context == "org-1"
    history = store.get_history("c1").messages
    assert len(history) == before + 2
    assert [m.role for m in history] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert history[0].metadata == {"AuthorName": "Ada", "UserId": "user-123"}
    assert history[1].metadata["AuthorName"] == "AI Assistant (Azure OpenAI)"
    assert history[1].metadata["Provider"] == "azureopenai"

    call = azure.calls[0]
    assert call["kind"] == "multi_step"
    assert call["user_text"] == "Create a team named Apollo"
    assert call["history"] == []
    assert "The current user has the role 'OrganizationAdmin'" in call["system_prompt"]


@pytest.mark.asyncio
async def test_single_turn_policy_uses_function_calling_chat(store, registry, workflow, memory, user_context):
    azure = FakeProvider(Provider.AZURE_OPENAI, ["Listed."], function_calling=True, multi_step=True)
    orchestrator = _orchestrator(store, registry, workflow, memory, azure=azure)
    orchestrator.multi_step = False

    result = await orchestrator.handle_message("c1", "List teams", user_context, "azureopenai")

    assert result.intents == ["AzureOpenAIFunction"]
    assert azure.calls[0]["kind"] == "chat"
    assert azure.calls[0]["functions_enabled"] is True
    assert azure.calls[0]["history"][-1].content == "List teams"


@pytest.mark.asyncio
async def test_prompt_template_replaces_visible_text_and_keeps_payload(store, registry, workflow, memory):
    azure = FakeProvider(
        Provider.AZURE_OPENAI,
        ['```json\n{"PromptTemplate": "Hello", "id": "t-1"}\n```'],
        function_calling=True,
        multi_step=True
    )
    orchestrator = _orchestrator(store, registry, workflow, memory, azure=azure)

    result = await orchestrator.handle_message("c1", "Create a team named Apollo", provider_hint="azureopenai")

    assert result.response == "Hello"
    assert result.function_results == {"PromptTemplate": "Hello", "id": "t-1"}
    assistant = store.get_history("c1").messages[-1]
    assert assistant.content == "Hello"
    assert assistant.parsed_function_output() == {"PromptTemplate": "Hello", "id": "t-1"}


def test_unparseable_fenced_block_is_shown_verbatim():
    raw = "Here:\n```json\n{broken\n```"

    processed = post_process(raw)

    assert processed.text == raw
    assert processed.payload is None


@pytest.mark.asyncio
async def test_secondary_provider_uses_simple_prompt_without_functions(orchestrator, deepseek, user_context):
    result = await orchestrator.handle_message("c1", "What is an OKR?", user_context, "deepseek")

    assert result.response == "Hello from DeepSeek"
    assert result.using_function_calling is False
    assert result.intents == ["GeneralConversation"]
    assert result.chat_history[-1].metadata["AuthorName"] == "AI Assistant (DeepSeek)"
    call = deepseek.calls[0]
    assert call["functions_enabled"] is False
    assert "The user's organization ID is: org-1." in call["system_prompt"]
    assert "OrganizationAdmin" not in call["system_prompt"]


@pytest.mark.asyncio
async def test_intent_path_returns_coordinator_message_without_second_model_call(
    store, registry, workflow, memory, user_context
):
    cohere = FakeProvider(Provider.COHERE, [
        '{"intents": [{"intent": "CreateTeam", "parameters": {"teamName": "Apollo"}}]}'
    ])
    orchestrator = _orchestrator(store, registry, workflow, memory, cohere=cohere)

    result = await orchestrator.handle_message("c1", "Create a team named Apollo", user_context, "cohere")

    assert result.response == "Team 'Apollo' created successfully."
    assert result.intents == ["CreateTeam"]
    assert result.parameters == {"teamName": "Apollo", "organizationId": "org-1"}
    assert result.function_results == [{"id": "team-1", "teamName": "Apollo", "organizationId": "org-1"}]
    assert result.using_function_calling is False
    assert len(cohere.calls) == 1
    assert len(store.get_history("c1").messages) == 2
    assert store.most_recent_entity_id("c1", "Team") == "team-1"


@pytest.mark.asyncio
async def test_intent_path_falls_back_to_conversation(orchestrator, cohere, store):
    result = await orchestrator.handle_message("c1", "Hello!", provider_hint=None)

    assert result.response == "Hi there"
    assert result.provider == "cohere"
    assert result.intents == ["GeneralConversation"]
    assert len(cohere.calls) == 2
    follow_up = cohere.calls[1]
    assert follow_up["system_prompt"].startswith(DEFAULT_SYSTEM_MESSAGE)
    assert follow_up["history"][-1].content == "Hello!"
    assert store.get_history("c1").messages[-1].metadata["AuthorName"] == "AI Assistant"


@pytest.mark.asyncio
async def test_failed_operations_seed_the_conversational_answer(store, registry, workflow, memory, handlers):
    register(registry, "CreateObjective", handlers.fail("Objective title already exists"))
    cohere = FakeProvider(Provider.COHERE, [
        '{"intents": [{"intent": "CreateObjective", "parameters": {"title": "Grow"}}]}',
        "That objective already exists."
    ])
    orchestrator = _orchestrator(store, registry, workflow, memory, cohere=cohere)

    result = await orchestrator.handle_message("c1", "Create objective Grow", provider_hint="cohere")

    assert result.response == "That objective already exists."
    assert "Error processing CreateObjective: Objective title already exists" in cohere.calls[1]["system_prompt"]


@pytest.mark.asyncio
async def test_unknown_provider_hint_uses_default_route(orchestrator, cohere, azure):
    result = await orchestrator.handle_message("c1", "Hello!", provider_hint="gpt-nine")

    assert result.provider == "cohere"
    assert azure.calls == []


@pytest.mark.asyncio
async def test_provider_failure_still_records_a_reply(store, registry, workflow, memory):
    azure = FakeProvider(Provider.AZURE_OPENAI, [failing("HTTP 500")], function_calling=True, multi_step=True)
    orchestrator = _orchestrator(store, registry, workflow, memory, azure=azure)

    result = await orchestrator.handle_message("c1", "Create a team", provider_hint="azureopenai")

    assert result.response == GENERIC_FAILURE_MESSAGE
    history = store.get_history("c1").messages
    assert [m.role for m in history] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert history[1].content == GENERIC_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_timeout_becomes_retry_message(store, registry, workflow, memory):
    azure = FakeProvider(
        Provider.AZURE_OPENAI, ["too late"],
        function_calling=True, multi_step=True, delay=0.5, multi_step_timeout_seconds=0.01
    )
    orchestrator = _orchestrator(store, registry, workflow, memory, azure=azure)

    result = await orchestrator.handle_message("c1", "Create a team", provider_hint="azureopenai")

    assert result.response == TIMEOUT_MESSAGE
    assert len(store.get_history("c1").messages) == 2


@pytest.mark.asyncio
async def test_cancellation_records_reply_and_leaves_workflow_untouched(store, registry, workflow, memory):
    azure = FakeProvider(Provider.AZURE_OPENAI, [SESSION_PROPOSAL], function_calling=True, multi_step=True, delay=1.0)
    orchestrator = _orchestrator(store, registry, workflow, memory, azure=azure)
    workflow.reset_workflow_state("c1")
    workflow.track_workflow_state("c1", DOCUMENT_ID, "doc-1")

    task = asyncio.create_task(orchestrator.handle_message("c1", "Go on", provider_hint="azureopenai"))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    history = store.get_history("c1").messages
    assert [m.content for m in history] == ["Go on", CANCELLED_MESSAGE]
    assert workflow.current_step("c1") == WorkflowStep.DOCUMENT_PROCESSED


@pytest.mark.asyncio
async def test_risk_trigger_runs_analysis_and_returns_pdf(orchestrator, azure, pdf_renderer, store):
    azure.replies = ["overview", "risks", "workload", "redistribution"]

    result = await orchestrator.handle_message("c1", "Please run an OKR Risk Analysis", provider_hint="cohere")

    assert result.intents == ["OKRRiskAnalysis"]
    assert result.provider == "azureopenai"
    assert result.using_function_calling is True
    assert base64.b64decode(result.pdf) == b"%PDF-1.4 stub"
    assert "overview" in result.response and "redistribution" in result.response
    assert len(azure.calls) == 4
    assert all(call["functions_enabled"] for call in azure.calls)
    assert pdf_renderer.rendered[0][0] == "OKR Risk Analysis"
    assistant = store.get_history("c1").messages[-1]
    assert assistant.metadata["AuthorName"] == "AI Assistant (OKR Analysis Orchestrator)"


@pytest.mark.asyncio
async def test_turn_is_saved_to_memory(orchestrator, memory, user_context):
    await orchestrator.handle_message("c1", "Create a team named Apollo", user_context, "azureopenai")

    context = await memory.get_relevant_context("team Apollo", "c1")

    assert context == "User: Create a team named Apollo\nAI: Team 'Apollo' created successfully."


@pytest.mark.asyncio
async def test_memory_outage_does_not_fail_the_turn(store, registry, workflow):
    orchestrator = _orchestrator(store, registry, workflow, VectorContextMemory(KeywordEmbedder(fail=True)))

    result = await orchestrator.handle_message("c1", "Hello", provider_hint="deepseek")

    assert result.response == "ok"


@pytest.mark.asyncio
async def test_document_upload_starts_workflow_and_guides_next_turns(orchestrator, azure, workflow, store, memory):
    azure.replies = [
        SESSION_PROPOSAL,
        "Your OKR session has been created successfully. Session ID: 3f2a9c1e-0000-4000-8000-000000000001",
    ]

    upload = await orchestrator.upload_document(
        "c1", "plan.txt", "text/plain", b"Increase customer satisfaction by 20% in Q3."
    )

    assert upload.document.document_id
    assert upload.response == SESSION_PROPOSAL
    assert workflow.get_workflow_state("c1", DOCUMENT_ID) == upload.document.document_id
    assert workflow.current_step("c1") == WorkflowStep.SESSION_PROPOSED
    history = store.get_history("c1").messages
    assert [m.role for m in history] == [MessageRole.SYSTEM, MessageRole.ASSISTANT]
    assert history[0].content == "Document uploaded: plan.txt. Analysis available for conversation."
    assert history[1].metadata[DOCUMENT_ID] == upload.document.document_id
    assert "DOCUMENT CONTENT:\n\nIncrease customer satisfaction by 20% in Q3." in azure.calls[0]["system_prompt"]

    result = await orchestrator.handle_message("c1", "Yes, create it", provider_hint="azureopenai")

    assert DOCUMENT_INSTRUCTIONS in azure.calls[1]["system_prompt"]
    assert "Now that we've created the OKR session, let's move on to one objective for it." in result.response
    assert workflow.current_step("c1") == WorkflowStep.SESSION_CONFIRMED


@pytest.mark.asyncio
async def test_empty_document_is_reported_without_model_call(orchestrator, azure, workflow):
    upload = await orchestrator.upload_document("c1", "blank.txt", "text/plain", b"   \n\n  ")

    assert upload.response == EMPTY_DOCUMENT_MESSAGE
    assert upload.document.document_id is None
    assert azure.calls == []
    assert not workflow.is_active("c1")


@pytest.mark.asyncio
async def test_reset_clears_history_and_workflow(orchestrator, workflow, store):
    await orchestrator.upload_document("c1", "plan.txt", "text/plain", b"Grow revenue")

    await orchestrator.reset_conversation("c1")

    assert orchestrator.get_history("c1").messages == []
    assert workflow.get_workflow_state("c1", DOCUMENT_ID) is None


@pytest.mark.asyncio
async def test_same_conversation_turns_do_not_interleave(orchestrator, store):
    await asyncio.gather(
        orchestrator.handle_message("c1", "first", provider_hint="deepseek"),
        orchestrator.handle_message("c1", "second", provider_hint="deepseek"),
    )

    roles = [m.role for m in store.get_history("c1").messages]
    assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT]


class BrokenRepository:
    def append_message(self, *args):
        raise ConversationPersistenceError("database is down")


@pytest.mark.asyncio
async def test_storage_failure_propagates(registry, workflow, memory):
    store = ConversationStore(repository=BrokenRepository())
    orchestrator = _orchestrator(store, registry, workflow, memory)

    with pytest.raises(ConversationPersistenceError):
        await orchestrator.handle_message("c1", "Hello", provider_hint="deepseek")


class GatedEmbedder(KeywordEmbedder):
    """Holds document embeddings until released"""

    def __init__(self):
        super().__init__()
        self.saving = asyncio.Event()
        self.release = asyncio.Event()

    async def embed(self, texts, input_type):
        if input_type == "search_document":
            self.saving.set()
            await self.release.wait()
        return await super().embed(texts, input_type)


@pytest.mark.asyncio
async def test_reset_during_memory_save_leaves_no_context(store, registry, workflow):
    embedder = GatedEmbedder()
    memory = VectorContextMemory(embedder)
    deepseek = FakeProvider(Provider.DEEPSEEK, ["Hello from DeepSeek"])
    orchestrator = _orchestrator(store, registry, workflow, memory, deepseek=deepseek)

    turn = asyncio.create_task(
        orchestrator.handle_message("c1", "hello about the document okr", provider_hint="deepseek")
    )
    await embedder.saving.wait()
    reset = asyncio.create_task(orchestrator.reset_conversation("c1"))
    await asyncio.sleep(0)
    assert not reset.done()

    embedder.release.set()
    await turn
    await reset

    assert store.get_history("c1").messages == []
    assert await memory.get_relevant_context("document okr", "c1") == ""
