"""Domain models for the OKR assistant."""

from .message import (
    DEFAULT_SYSTEM_MESSAGE,
    ConversationHistory,
    EntityReference,
    Message,
    MessageRole,
)
from .intent import (
    CONVERSATIONAL_INTENTS,
    Err,
    FunctionExecutionResult,
    Intent,
    IntentExecutionResult,
    IntentItemResult,
    Ok,
)
from .user_context import UserContext

__all__ = [
    "DEFAULT_SYSTEM_MESSAGE",
    "ConversationHistory",
    "EntityReference",
    "Message",
    "MessageRole",
    "CONVERSATIONAL_INTENTS",
    "Err",
    "FunctionExecutionResult",
    "Intent",
    "IntentExecutionResult",
    "IntentItemResult",
    "Ok",
    "UserContext",
]
