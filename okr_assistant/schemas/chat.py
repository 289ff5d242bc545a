"""Request and response schemas for the assistant API."""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from okr_assistant.models.user_context import UserContext


class UserContextPayload(BaseModel):
    """Caller context as sent by the frontend."""
    user_id: Optional[str] = Field(None, alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")
    email: Optional[str] = None
    organization_id: Optional[str] = Field(None, alias="organizationId")
    role: Optional[str] = None
    selected_llm_provider: Optional[str] = Field(None, alias="selectedLLMProvider")

    class Config:
        populate_by_name = True

    def to_user_context(self) -> UserContext:
        return UserContext(
            user_id=self.user_id or "",
            user_name=self.user_name,
            email=self.email,
            organization_id=self.organization_id,
            role=self.role,
            selected_llm_provider=self.selected_llm_provider
        )


class ChatRequest(BaseModel):
    """Chat request schema"""
    conversation_id: str = Field(..., min_length=1, alias="conversationId")
    message: str = Field(..., min_length=1, max_length=20000)
    llm_provider: Optional[str] = Field(None, alias="llmProvider")
    user_context: Optional[UserContextPayload] = Field(None, alias="userContext")

    class Config:
        populate_by_name = True


class ConversationRequest(BaseModel):
    """Body naming a single conversation"""
    conversation_id: str = Field(..., min_length=1, alias="conversationId")

    class Config:
        populate_by_name = True


class SystemMessageRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1, alias="conversationId")
    system_message: str = Field(..., min_length=1, alias="systemMessage")

    class Config:
        populate_by_name = True


class MessageItem(BaseModel):
    """Message item schema"""
    role: str
    content: str
    timestamp: str
    metadata: Dict[str, Any] = {}
    function_output: Any = None


class ChatResponse(BaseModel):
    """Chat response schema"""
    response: str
    intents: List[str] = []
    parameters: Dict[str, str] = {}
    functionResults: Any = None
    chatHistory: List[MessageItem] = []
    usingFunctionCalling: bool = False
    provider: str
    organizationContext: Optional[str] = None
    pdf: Optional[str] = None
    conversationId: str


class HistoryResponse(BaseModel):
    conversation_id: str
    system_message: str
    messages: List[MessageItem]


class ConversationListItem(BaseModel):
    """Conversation list item schema"""
    id: str
    title: str
    timestamp: str
    message_count: int
    last_message: Optional[str] = None
    messages: List[MessageItem] = []


class ConversationDiagnosticsItem(BaseModel):
    conversation_id: str
    message_count: int
    user_message_count: int
    user_ids: List[str]
    first_message_at: Optional[str] = None
    last_message_at: Optional[str] = None


class DocumentInfo(BaseModel):
    id: Optional[str] = None
    fileName: str
    pageCount: int = 0
    tokenEstimate: int = 0
    uploadedAt: Optional[str] = None


class DocumentUploadResponse(BaseModel):
    document: DocumentInfo
    response: str
    message: str
