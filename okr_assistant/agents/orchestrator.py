"""
Conversation Orchestrator

Single entry point for chat turns. Routes each message to the risk analysis
report, the function-calling provider, the secondary provider or the intent
pipeline, post-processes the model output and records the turn.

Every handled message appends exactly one user message and one assistant
message to the conversation, including when the upstream call fails, times
out or is cancelled. The conversation lock is held for the whole turn.

Reusability: HTTP chat API, scripted conversations, evaluation harnesses
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import asyncio
import base64
import logging
import time

from okr_assistant.agents.skills.error_recovery import (
    NO_OPERATIONS_MESSAGE,
    error_recovery_skill,
)
from okr_assistant.agents.skills.json_recovery import extract_fenced_json
from okr_assistant.agents.skills.prompts import (
    DOCUMENT_INSTRUCTIONS,
    build_function_calling_prompt,
    build_secondary_prompt,
    has_document_context,
)
from okr_assistant.agents.subagents.document_analysis import (
    DOCUMENT_FILE_NAME,
    DocumentAnalysis,
    DocumentAnalysisSubagent,
)
from okr_assistant.agents.subagents.intent_analyzer import IntentAnalyzer
from okr_assistant.agents.subagents.intent_execution import IntentExecutionCoordinator
from okr_assistant.agents.subagents.risk_analysis import RiskAnalysisOrchestrator, is_risk_analysis_request
from okr_assistant.agents.subagents.workflow_state import DOCUMENT_ID, WorkflowStateTracker
from okr_assistant.models.message import ConversationHistory, Message, MessageRole
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import Provider, ProviderError, ProviderTimeoutError
from okr_assistant.providers.factory import ProviderSet
from okr_assistant.services.conversation_repository import ConversationPersistenceError
from okr_assistant.services.conversation_store import (
    ConversationDiagnostics,
    ConversationSession,
    ConversationStore,
    ConversationSummary,
)
from okr_assistant.services.memory_service import VectorContextMemory
from okr_assistant.services.pdf_renderer import PdfRenderer
from okr_assistant.utils.logger import get_structured_logger

logger = logging.getLogger(__name__)
audit_logger = get_structured_logger("okr_assistant.audit")

RISK_REPORT_TITLE = "OKR Risk Analysis"
RISK_ANALYSIS_AUTHOR = "AI Assistant (OKR Analysis Orchestrator)"
PROMPT_TEMPLATE_FIELD = "PromptTemplate"


@dataclass
class ChatResponse:
    """Everything a caller gets back from one handled message"""
    response: str
    conversation_id: str
    provider: str
    intents: List[str] = field(default_factory=list)
    parameters: Dict[str, str] = field(default_factory=dict)
    function_results: Any = None
    chat_history: List[Message] = field(default_factory=list)
    using_function_calling: bool = False
    organization_context: Optional[str] = None
    pdf: Optional[str] = None  # Base64-encoded PDF bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "intents": self.intents,
            "parameters": self.parameters,
            "functionResults": self.function_results,
            "chatHistory": [message.to_dict() for message in self.chat_history],
            "usingFunctionCalling": self.using_function_calling,
            "provider": self.provider,
            "organizationContext": self.organization_context,
            "pdf": self.pdf,
            "conversationId": self.conversation_id,
        }


@dataclass
class UploadResponse:
    """Result of a document upload"""
    document: DocumentAnalysis
    response: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "response": self.response,
            "message": self.message,
        }


@dataclass
class TurnOutcome:
    """What a route produced, before it is recorded"""
    text: str
    route: str
    provider: Provider
    author_name: str = "AI Assistant"
    intents: List[str] = field(default_factory=list)
    parameters: Dict[str, str] = field(default_factory=dict)
    function_results: Any = None
    structured_payload: Any = None
    using_function_calling: bool = False
    pdf: Optional[str] = None


@dataclass
class PostProcessed:
    text: str
    payload: Any = None


def post_process(raw_text: str) -> PostProcessed:
    """
    Pull a fenced JSON payload out of model output.

    A payload carrying PromptTemplate replaces the visible text; any parsed
    payload is kept as structured output. Unparseable blocks leave the text
    untouched.
    """
    fenced = extract_fenced_json(raw_text or "")
    if not fenced.found or fenced.error is not None:
        return PostProcessed(text=raw_text)
    payload = fenced.payload
    if isinstance(payload, dict) and isinstance(payload.get(PROMPT_TEMPLATE_FIELD), str):
        return PostProcessed(text=payload[PROMPT_TEMPLATE_FIELD], payload=payload)
    return PostProcessed(text=raw_text, payload=payload)


class ConversationOrchestrator:
    """
    Top-level coordinator for chat turns and document uploads

    Responsibilities:
    - Record the user message and exactly one assistant reply per turn
    - Route by trigger phrase and provider capability
    - Retrieve and save conversation memory
    - Drive the document workflow after function-calling replies
    - Turn upstream failures into apologetic replies
    - Expose reset, history and listing operations
    """

    def __init__(
        self,
        store: ConversationStore,
        providers: ProviderSet,
        analyzer: IntentAnalyzer,
        coordinator: IntentExecutionCoordinator,
        workflow: WorkflowStateTracker,
        memory: VectorContextMemory,
        pdf_renderer: Optional[PdfRenderer] = None,
        document_max_tokens: int = 4000,
        multi_step: bool = True
    ):
        self.store = store
        self.providers = providers
        self.analyzer = analyzer
        self.coordinator = coordinator
        self.workflow = workflow
        self.memory = memory
        self.pdf_renderer = pdf_renderer or PdfRenderer()
        self.multi_step = multi_step

        primary = providers.primary
        self.risk_analysis = RiskAnalysisOrchestrator(primary)
        self.documents = DocumentAnalysisSubagent(primary, workflow, memory, max_tokens=document_max_tokens)

        store.add_reset_listener(workflow.clear)
        store.add_reset_listener(memory.forget)

        logger.info("ConversationOrchestrator initialized")

    async def handle_message(
        self,
        conversation_id: str,
        user_text: str,
        user_context: Optional[UserContext] = None,
        provider_hint: Optional[str] = None
    ) -> ChatResponse:
        """
        Handle one user message.

        Args:
            conversation_id: Conversation id supplied by the caller
            user_text: Raw user message
            user_context: Caller identity, role and organization
            provider_hint: Requested LLM provider name

        Returns:
            ChatResponse with the reply and the updated history

        Raises:
            ConversationPersistenceError: The conversation could not be stored
            asyncio.CancelledError: The request was cancelled (after recording a reply)
        """
        user_context = user_context or UserContext()
        provider = self.providers.resolve(provider_hint or user_context.selected_llm_provider)
        started = time.monotonic()
        logger.info(f"Processing message for conversation {conversation_id} with provider {provider.value}")

        async with self.store.session(conversation_id) as session:
            session.append(Message.user(user_text, user_context.display_name, user_context.user_id))

            try:
                outcome = await self._route(session, user_text, user_context, provider)
                status = "success"
            except asyncio.CancelledError:
                strategy = error_recovery_skill.handle_cancellation()
                session.append(Message.assistant(strategy.message, provider=provider.value))
                self._audit(conversation_id, "cancelled", provider, [], started, "cancelled")
                raise
            except ProviderTimeoutError as e:
                strategy = error_recovery_skill.handle_timeout(f"Chat turn ({e.provider})", e.timeout_seconds)
                outcome = TurnOutcome(text=strategy.message, route="timeout", provider=provider)
                status = "timeout"
            except ProviderError as e:
                logger.error(f"Provider error for conversation {conversation_id}: {str(e)}", exc_info=True)
                strategy = error_recovery_skill.handle_system_error(str(e))
                outcome = TurnOutcome(text=strategy.message, route="error", provider=provider)
                status = "error"
            except ConversationPersistenceError:
                raise
            except Exception as e:
                logger.error(f"Error processing message for conversation {conversation_id}: {str(e)}", exc_info=True)
                strategy = error_recovery_skill.handle_system_error()
                outcome = TurnOutcome(text=strategy.message, route="error", provider=provider)
                status = "error"

            session.append(Message.assistant(
                outcome.text,
                author_name=outcome.author_name,
                provider=outcome.provider.value,
                function_output=outcome.structured_payload
            ))
            history = session.history()

            if status == "success":
                await self.memory.save_context(
                    conversation_id,
                    f"User: {user_text}\nAI: {outcome.text}",
                    user_context.user_id
                )

        self._audit(conversation_id, outcome.route, outcome.provider, outcome.intents, started, status)
        return ChatResponse(
            response=outcome.text,
            conversation_id=conversation_id,
            provider=outcome.provider.value,
            intents=outcome.intents,
            parameters=outcome.parameters,
            function_results=outcome.function_results,
            chat_history=history.messages,
            using_function_calling=outcome.using_function_calling,
            organization_context=user_context.organization_id or None,
            pdf=outcome.pdf
        )

    async def _route(
        self,
        session: ConversationSession,
        user_text: str,
        user_context: UserContext,
        provider: Provider
    ) -> TurnOutcome:
        if is_risk_analysis_request(user_text):
            return await self._run_risk_analysis(session, user_text, user_context)
        if provider == Provider.AZURE_OPENAI:
            return await self._run_function_calling(session, user_text, user_context)
        if provider == Provider.DEEPSEEK:
            return await self._run_secondary(session, user_text, user_context)
        return await self._run_intents(session, user_text, user_context, provider)

    async def _run_risk_analysis(
        self,
        session: ConversationSession,
        user_text: str,
        user_context: UserContext
    ) -> TurnOutcome:
        logger.info(f"Running OKR risk analysis for conversation {session.conversation_id}")
        report = await self.risk_analysis.run_analysis(session.conversation_id, user_text, user_context)
        pdf_bytes = self.pdf_renderer.generate_pdf(RISK_REPORT_TITLE, report)
        return TurnOutcome(
            text=report,
            route="risk_analysis",
            provider=Provider.AZURE_OPENAI,
            author_name=RISK_ANALYSIS_AUTHOR,
            intents=["OKRRiskAnalysis"],
            using_function_calling=True,
            pdf=base64.b64encode(pdf_bytes).decode("ascii")
        )

    async def _run_function_calling(
        self,
        session: ConversationSession,
        user_text: str,
        user_context: UserContext
    ) -> TurnOutcome:
        conversation_id = session.conversation_id
        provider = self.providers.get(Provider.AZURE_OPENAI)

        relevant_context = await self.memory.get_relevant_context(user_text, conversation_id)
        document_context = has_document_context(relevant_context) or self.workflow.is_active(conversation_id)

        system_prompt = build_function_calling_prompt(user_context)
        system_prompt = self.memory.enhance_system_message(system_prompt, relevant_context)
        if document_context:
            system_prompt += DOCUMENT_INSTRUCTIONS

        # Transitions computed from this reply are dropped if a reset happens meanwhile
        epoch = self.workflow.epoch(conversation_id)
        history = session.history().messages

        if self.multi_step and provider.supports_multi_step:
            raw = await provider.execute_multi_step_plan(
                user_text, system_prompt, user_context, conversation_id, history[:-1]
            )
            intents = ["MultiStepPlan"]
        else:
            raw = await provider.complete_chat(
                system_prompt, history,
                functions_enabled=True,
                user_context=user_context,
                conversation_id=conversation_id
            )
            intents = ["AzureOpenAIFunction"]

        if document_context:
            transition, _ = self.workflow.plan(conversation_id, raw)
            self.workflow.commit(conversation_id, transition, epoch)
            raw = transition.text
            logger.info(
                f"Applied workflow continuation for conversation {conversation_id}, "
                f"current step: {self.workflow.current_step(conversation_id).value}"
            )

        processed = post_process(raw)
        return TurnOutcome(
            text=processed.text,
            route="function_calling",
            provider=Provider.AZURE_OPENAI,
            author_name=provider.author_name,
            intents=intents,
            function_results=processed.payload,
            structured_payload=processed.payload,
            using_function_calling=True
        )

    async def _run_secondary(
        self,
        session: ConversationSession,
        user_text: str,
        user_context: UserContext
    ) -> TurnOutcome:
        conversation_id = session.conversation_id
        provider = self.providers.get(Provider.DEEPSEEK)

        relevant_context = await self.memory.get_relevant_context(user_text, conversation_id)
        system_prompt = self.memory.enhance_system_message(build_secondary_prompt(user_context), relevant_context)

        raw = await provider.complete_chat(
            system_prompt,
            [Message.user(user_text)],
            user_context=user_context,
            conversation_id=conversation_id
        )
        processed = post_process(raw)
        return TurnOutcome(
            text=processed.text,
            route="secondary",
            provider=Provider.DEEPSEEK,
            author_name=provider.author_name,
            intents=["GeneralConversation"],
            structured_payload=processed.payload
        )

    async def _run_intents(
        self,
        session: ConversationSession,
        user_text: str,
        user_context: UserContext,
        provider: Provider
    ) -> TurnOutcome:
        conversation_id = session.conversation_id
        backend = self.providers.get(provider)

        intents = await self.analyzer.analyze(conversation_id, user_text, backend)
        logger.info(f"Detected {len(intents)} intents for conversation {conversation_id}")
        execution = await self.coordinator.execute(conversation_id, intents, user_context)
        intent_names = [intent.name for intent in intents]

        if execution.success:
            return TurnOutcome(
                text=execution.message,
                route="intents",
                provider=provider,
                intents=intent_names,
                parameters=execution.parameters,
                function_results=[item.result for item in execution.items],
                structured_payload=execution.results_data()
            )

        history = session.history()
        relevant_context = await self.memory.get_relevant_context(user_text, conversation_id)
        system_prompt = self.memory.enhance_system_message(history.system_message, relevant_context)
        if execution.message and execution.message != NO_OPERATIONS_MESSAGE:
            system_prompt += f"\n\nResults of the requested operations:\n{execution.message}"

        raw = await backend.complete_chat(
            system_prompt,
            history.messages,
            user_context=user_context,
            conversation_id=conversation_id
        )
        processed = post_process(raw)
        return TurnOutcome(
            text=processed.text,
            route="conversation",
            provider=provider,
            intents=intent_names,
            parameters=execution.parameters,
            structured_payload=processed.payload
        )

    async def upload_document(
        self,
        conversation_id: str,
        file_name: str,
        content_type: str,
        data: bytes,
        user_context: Optional[UserContext] = None,
        message: Optional[str] = None
    ) -> UploadResponse:
        """
        Analyse an uploaded document and start the OKR proposal workflow.

        Raises:
            DocumentProcessingError: Unsupported or unreadable document
            ConversationPersistenceError: The conversation could not be stored
        """
        user_context = user_context or UserContext()
        primary = self.providers.primary

        async with self.store.session(conversation_id) as session:
            try:
                document = await self.documents.analyze(
                    conversation_id, file_name, content_type, data, user_context, message
                )
            except ProviderTimeoutError as e:
                strategy = error_recovery_skill.handle_timeout("Document analysis", e.timeout_seconds)
                document = DocumentAnalysis(document_id=None, file_name=file_name, analysis=strategy.message)
            except ProviderError as e:
                logger.error(f"Document analysis failed for conversation {conversation_id}: {str(e)}", exc_info=True)
                strategy = error_recovery_skill.handle_system_error(str(e))
                document = DocumentAnalysis(document_id=None, file_name=file_name, analysis=strategy.message)

            if not document.analyzed:
                session.append(Message.assistant(
                    document.analysis,
                    author_name=primary.author_name,
                    provider=Provider.AZURE_OPENAI.value
                ))
                return UploadResponse(document=document, response=document.analysis, message=document.analysis)

            session.append(Message(
                role=MessageRole.SYSTEM,
                content=f"Document uploaded: {file_name}. Analysis available for conversation.",
                metadata={DOCUMENT_ID: document.document_id, DOCUMENT_FILE_NAME: file_name}
            ))
            session.append(Message.assistant(
                document.analysis,
                author_name=primary.author_name,
                provider=Provider.AZURE_OPENAI.value,
                **{DOCUMENT_ID: document.document_id, DOCUMENT_FILE_NAME: file_name}
            ))

        logger.info(f"Document {file_name} analyzed for conversation {conversation_id}")
        return UploadResponse(
            document=document,
            response=document.analysis,
            message="Document uploaded and analyzed successfully."
        )

    async def reset_conversation(self, conversation_id: str) -> None:
        """Reset history, workflow state and memory of one conversation"""
        await self.store.reset(conversation_id)

    async def reset_all(self) -> int:
        return await self.store.reset_all()

    def get_history(self, conversation_id: str) -> ConversationHistory:
        return self.store.get_history(conversation_id)

    async def set_system_message(self, conversation_id: str, text: str) -> None:
        await self.store.set_system_message(conversation_id, text)

    def list_conversations_for_user(self, user_id: str) -> List[ConversationSummary]:
        return self.store.list_conversations_for_user(user_id)

    def list_conversations_with_diagnostics(self) -> List[ConversationDiagnostics]:
        return self.store.list_conversations_with_diagnostics()

    def _audit(
        self,
        conversation_id: str,
        route: str,
        provider: Provider,
        intents: List[str],
        started: float,
        status: str
    ) -> None:
        audit_logger.info(
            "chat_turn",
            conversation_id=conversation_id,
            route=route,
            provider=provider.value,
            intents=intents,
            duration_ms=int((time.monotonic() - started) * 1000),
            outcome=status
        )
