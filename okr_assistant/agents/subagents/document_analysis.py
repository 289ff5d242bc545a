"""
Document Analysis Subagent

Turns an uploaded document into an OKR proposal conversation: extracts and
truncates the text, asks the primary provider for the stepwise analysis,
starts a fresh document workflow and remembers the analysis for later turns.

The workflow state is reset only after the analysis call has returned, so a
failed or cancelled upload leaves any previous workflow untouched.

Reusability: chat upload endpoint, batch document import
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging
import uuid

from okr_assistant.agents.skills.error_recovery import EMPTY_DOCUMENT_MESSAGE
from okr_assistant.agents.skills.prompts import DEFAULT_DOCUMENT_QUERY, build_document_analysis_prompt
from okr_assistant.agents.subagents.workflow_state import (
    CURRENT_STEP,
    DOCUMENT_ID,
    WorkflowStateTracker,
    WorkflowStep,
)
from okr_assistant.models.message import Message
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import ChatProvider
from okr_assistant.services.document_processing import estimate_tokens, extract_text, prepare_content
from okr_assistant.services.memory_service import VectorContextMemory

logger = logging.getLogger(__name__)

DOCUMENT_FILE_NAME = "DocumentFileName"


@dataclass
class DocumentAnalysis:
    """Outcome of analysing one uploaded document"""
    document_id: Optional[str]
    file_name: str
    analysis: str
    page_count: int = 0
    token_estimate: int = 0
    uploaded_at: Optional[datetime] = None

    @property
    def analyzed(self) -> bool:
        return self.document_id is not None

    def to_dict(self):
        return {
            "id": self.document_id,
            "fileName": self.file_name,
            "pageCount": self.page_count,
            "tokenEstimate": self.token_estimate,
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class DocumentAnalysisSubagent:
    """
    Subagent for document-driven OKR proposals

    Responsibilities:
    - Extract, clean and truncate document text
    - Run the document analysis prompt on the primary provider
    - Reset the workflow and mark the document as processed
    - Save the analysis to conversation memory
    """

    def __init__(
        self,
        provider: ChatProvider,
        workflow: WorkflowStateTracker,
        memory: VectorContextMemory,
        max_tokens: int = 4000,
        clock=datetime.utcnow
    ):
        self.provider = provider
        self.workflow = workflow
        self.memory = memory
        self.max_tokens = max_tokens
        self.clock = clock

    async def analyze(
        self,
        conversation_id: str,
        file_name: str,
        content_type: str,
        data: bytes,
        user_context: Optional[UserContext] = None,
        message: Optional[str] = None
    ) -> DocumentAnalysis:
        """
        Analyse an uploaded document.

        Args:
            conversation_id: Conversation the document belongs to
            file_name: Original file name
            content_type: MIME type reported by the client
            data: Raw file bytes
            user_context: Caller identity
            message: Optional question to ask about the document

        Returns:
            DocumentAnalysis; `document_id` is None when the document had no text

        Raises:
            DocumentProcessingError: Unsupported or unreadable document
            ProviderError: The analysis call failed or timed out
        """
        uploaded_at = self.clock()
        raw_text, page_count = extract_text(data, content_type)
        content = prepare_content(raw_text, self.max_tokens)
        if not content:
            logger.warning(f"No content extracted from {file_name} for conversation {conversation_id}")
            return DocumentAnalysis(
                document_id=None,
                file_name=file_name,
                analysis=EMPTY_DOCUMENT_MESSAGE,
                page_count=page_count,
                uploaded_at=uploaded_at
            )

        token_estimate = estimate_tokens(content)
        logger.info(
            f"Analyzing document {file_name} for conversation {conversation_id} "
            f"({page_count} pages, ~{token_estimate} tokens)"
        )

        system_prompt = build_document_analysis_prompt(file_name, uploaded_at, content)
        query = message.strip() if message and message.strip() else DEFAULT_DOCUMENT_QUERY
        analysis = await self.provider.complete_chat(
            system_prompt,
            [Message.user(query)],
            functions_enabled=False,
            user_context=user_context,
            conversation_id=conversation_id
        )

        document_id = str(uuid.uuid4())
        self.workflow.reset_workflow_state(conversation_id)
        self.workflow.track_workflow_state(conversation_id, DOCUMENT_ID, document_id)
        self.workflow.track_workflow_state(conversation_id, CURRENT_STEP, WorkflowStep.DOCUMENT_PROCESSED.value)
        analysis = self.workflow.ensure_workflow_continuation(analysis, conversation_id)

        await self.memory.save_context(
            conversation_id,
            f"Document uploaded: {file_name}\nDocument analysis: {analysis}",
            user_context.user_id if user_context else None
        )

        return DocumentAnalysis(
            document_id=document_id,
            file_name=file_name,
            analysis=analysis,
            page_count=page_count,
            token_estimate=token_estimate,
            uploaded_at=uploaded_at
        )
