"""
Service wiring for the OKR assistant.

Builds the object graph once per application and exposes it to routes via
FastAPI dependencies. Nothing here keeps module-level mutable state: the
graph lives on `app.state.services`.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Request

from okr_assistant.agents.orchestrator import ConversationOrchestrator
from okr_assistant.agents.subagents.intent_analyzer import IntentAnalyzer
from okr_assistant.agents.subagents.intent_execution import create_intent_execution_coordinator
from okr_assistant.agents.subagents.workflow_state import WorkflowStateTracker
from okr_assistant.config import Settings
from okr_assistant.functions.okr_api import OkrApiClient, register_okr_api_functions
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.providers.factory import ProviderSet, create_providers
from okr_assistant.services.conversation_repository import ConversationRepository, create_chat_engine
from okr_assistant.services.conversation_store import ConversationStore
from okr_assistant.services.memory_service import CohereEmbedder, VectorContextMemory
from okr_assistant.services.pdf_renderer import PdfRenderer

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Everything the routes need, built once at start-up"""
    settings: Settings
    store: ConversationStore
    registry: FunctionRegistry
    providers: ProviderSet
    workflow: WorkflowStateTracker
    memory: VectorContextMemory
    orchestrator: ConversationOrchestrator


def build_services(
    settings: Settings,
    providers: Optional[ProviderSet] = None,
    memory: Optional[VectorContextMemory] = None,
    registry: Optional[FunctionRegistry] = None
) -> AppServices:
    """
    Build the service graph from settings.

    Providers, memory and registry can be passed in to replace the
    network-backed defaults (tests, local tooling).
    """
    repository = None
    if settings.chat_database_url:
        repository = ConversationRepository(create_chat_engine(settings.chat_database_url))

    store = ConversationStore(repository=repository)
    if repository is not None:
        loaded = store.hydrate()
        logger.info(f"Loaded {loaded} persisted conversations")

    if registry is None:
        registry = FunctionRegistry()
        client = OkrApiClient(settings.okr_api_base_url, timeout=settings.okr_api_timeout_seconds)
        register_okr_api_functions(registry, client, entity_lookup=store.most_recent_entity_id)
    registry.add_listener(store.record_function_result)

    if providers is None:
        providers = create_providers(settings, registry)

    if memory is None:
        memory = VectorContextMemory(
            CohereEmbedder(settings.cohere_api_key, settings.cohere_embed_model),
            min_relevance=settings.memory_min_relevance,
            limit=settings.memory_result_limit
        )

    workflow = WorkflowStateTracker()
    orchestrator = ConversationOrchestrator(
        store=store,
        providers=providers,
        analyzer=IntentAnalyzer(entity_references=store.recent_entity_references),
        coordinator=create_intent_execution_coordinator(registry),
        workflow=workflow,
        memory=memory,
        pdf_renderer=PdfRenderer(),
        document_max_tokens=settings.document_max_tokens
    )

    return AppServices(
        settings=settings,
        store=store,
        registry=registry,
        providers=providers,
        workflow=workflow,
        memory=memory,
        orchestrator=orchestrator
    )


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.services.orchestrator


def get_settings(request: Request) -> Settings:
    return request.app.state.services.settings
