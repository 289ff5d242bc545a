"""
Assistant API Router

Conversational interface for OKR management: chat turns, conversation
maintenance, listings and document upload. Routes only translate HTTP to
orchestrator calls; all behaviour lives in the agents.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from typing import List, Optional
import logging

from okr_assistant.agents.orchestrator import ConversationOrchestrator
from okr_assistant.dependencies import get_orchestrator
from okr_assistant.middleware.auth import CurrentUser, apply_claims, get_optional_user
from okr_assistant.models.user_context import UserContext
from okr_assistant.schemas.chat import (
    ChatRequest,
    ChatResponse,
    ConversationDiagnosticsItem,
    ConversationListItem,
    ConversationRequest,
    DocumentUploadResponse,
    HistoryResponse,
    SystemMessageRequest,
)
from okr_assistant.services.conversation_repository import ConversationPersistenceError
from okr_assistant.services.document_processing import DocumentProcessingError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai"])  # No prefix since main.py adds /api/ai


def _unavailable(e: Exception) -> HTTPException:
    logger.error(f"Conversation storage unavailable: {str(e)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Conversation storage is unavailable"
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Chat endpoint for AI-powered OKR management

    Args:
        request: Conversation id, message, provider and optional user context
        current_user: Caller from the bearer token, if any
        orchestrator: Conversation orchestrator

    Returns:
        ChatResponse with the reply, intents, results and updated history
    """
    body_context = request.user_context.to_user_context() if request.user_context else None
    user_context = apply_claims(body_context, current_user)
    logger.info(f"Chat request for conversation {request.conversation_id}: {request.message[:50]}...")

    try:
        result = await orchestrator.handle_message(
            request.conversation_id,
            request.message,
            user_context,
            request.llm_provider
        )
        return result.to_dict()
    except ConversationPersistenceError as e:
        raise _unavailable(e)
    except Exception as e:
        logger.error(f"Chat endpoint error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing your request."
        )


@router.post("/reset")
async def reset_conversation(
    request: ConversationRequest,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    try:
        await orchestrator.reset_conversation(request.conversation_id)
    except ConversationPersistenceError as e:
        raise _unavailable(e)
    return {"message": f"Conversation {request.conversation_id} has been reset."}


@router.post("/reset-all")
async def reset_all_conversations(
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    try:
        count = await orchestrator.reset_all()
    except ConversationPersistenceError as e:
        raise _unavailable(e)
    return {"message": "All conversations have been reset.", "count": count}


@router.get("/history/{conversation_id}", response_model=HistoryResponse)
async def get_history(
    conversation_id: str,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Full history of a conversation; unknown ids return an empty history."""
    return orchestrator.get_history(conversation_id).to_dict()


@router.post("/system-message")
async def set_system_message(
    request: SystemMessageRequest,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    try:
        await orchestrator.set_system_message(request.conversation_id, request.system_message)
    except ConversationPersistenceError as e:
        raise _unavailable(e)
    return {"message": f"System message updated for conversation {request.conversation_id}."}


@router.get("/conversations/user/{user_id}", response_model=List[ConversationListItem])
async def get_user_conversations(
    user_id: str,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Conversations started by a user, most recent first."""
    if current_user is not None and current_user.user_id.lower() != user_id.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="user_id in path does not match authenticated user"
        )
    return [summary.to_dict() for summary in orchestrator.list_conversations_for_user(user_id)]


@router.get("/conversations/diagnostics", response_model=List[ConversationDiagnosticsItem])
async def get_conversation_diagnostics(
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    return [diagnostics.to_dict() for diagnostics in orchestrator.list_conversations_with_diagnostics()]


@router.post("/documents/upload", response_model=DocumentUploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    conversation_id: str = Form(..., alias="conversationId"),
    message: Optional[str] = Form(None),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Upload a PDF or text document and start the OKR proposal workflow

    Args:
        file: Uploaded document
        conversation_id: Conversation the document belongs to
        message: Optional question about the document

    Returns:
        DocumentUploadResponse with document info and the analysis
    """
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")

    user_context = apply_claims(UserContext(), current_user)
    logger.info(f"Document upload for conversation {conversation_id}: {file.filename} ({len(data)} bytes)")

    try:
        result = await orchestrator.upload_document(
            conversation_id,
            file.filename or "document",
            file.content_type or "",
            data,
            user_context,
            message
        )
        return result.to_dict()
    except DocumentProcessingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConversationPersistenceError as e:
        raise _unavailable(e)
    except Exception as e:
        logger.error(f"Document upload error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing the document."
        )
