"""
Message Model for the OKR Assistant

Chat messages, conversation histories and the entity references produced by
function executions. Messages are immutable once appended to a history.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import json

DEFAULT_SYSTEM_MESSAGE = (
    "You are an AI assistant for an OKR Management System. "
    "You help users manage their teams, objectives, and key results."
)


class MessageRole(str, Enum):
    """Message sender role"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """
    One turn in a conversation.

    The timestamp is advisory (display and sorting only); insertion order in
    the owning history is the only causal order.
    """
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)
    function_output: Optional[str] = None  # Serialized JSON payload

    @classmethod
    def user(cls, content: str, author_name: str = "User", user_id: Optional[str] = None) -> "Message":
        """Build a user message; user_id is always present in metadata, possibly empty."""
        return cls(
            role=MessageRole.USER,
            content=content,
            metadata={"AuthorName": author_name, "UserId": user_id or ""}
        )

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        author_name: str = "AI Assistant",
        provider: Optional[str] = None,
        function_output: Any = None,
        **extra_metadata: Any
    ) -> "Message":
        """Build an assistant message, serializing a structured payload if given."""
        metadata: Dict[str, Any] = {"AuthorName": author_name}
        if provider:
            metadata["Provider"] = provider
        metadata.update(extra_metadata)

        serialized = None
        if function_output is not None:
            serialized = json.dumps(function_output, default=str)

        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            metadata=metadata,
            function_output=serialized
        )

    @property
    def user_id(self) -> str:
        return str(self.metadata.get("UserId", "") or "")

    def parsed_function_output(self) -> Any:
        """Return the structured payload, or None when absent or unparseable."""
        if not self.function_output:
            return None
        try:
            return json.loads(self.function_output)
        except json.JSONDecodeError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
            "function_output": self.parsed_function_output(),
        }


@dataclass(frozen=True)
class EntityReference:
    """An OKR entity touched by a function execution within a conversation"""
    entity_type: str
    entity_id: str
    name: Optional[str] = None
    operation: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ConversationHistory:
    """
    Ordered messages of one conversation plus its system message.

    Owned by the ConversationStore; other components receive snapshots.
    """
    conversation_id: str
    system_message: str = DEFAULT_SYSTEM_MESSAGE
    messages: List[Message] = field(default_factory=list)

    def snapshot(self) -> "ConversationHistory":
        return ConversationHistory(
            conversation_id=self.conversation_id,
            system_message=self.system_message,
            messages=list(self.messages)
        )

    def recent(self, limit: int) -> List[Message]:
        """Last `limit` messages, oldest first"""
        if limit <= 0:
            return []
        return self.messages[-limit:]

    def first_user_message(self) -> Optional[Message]:
        for message in self.messages:
            if message.role == MessageRole.USER:
                return message
        return None

    @property
    def last_activity(self) -> Optional[datetime]:
        if not self.messages:
            return None
        return max(message.timestamp for message in self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "system_message": self.system_message,
            "messages": [message.to_dict() for message in self.messages],
        }
