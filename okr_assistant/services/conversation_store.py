"""
Conversation Store

In-process registry of conversation histories keyed by conversation id, with
a secondary index from user id to conversation ids and a per-conversation
record of the OKR entities touched by function executions.

Appends to one conversation are serialized by a per-conversation asyncio
lock; distinct conversations never block each other.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set
import asyncio
import logging

from okr_assistant.models.intent import FunctionExecutionResult
from okr_assistant.models.message import (
    DEFAULT_SYSTEM_MESSAGE,
    ConversationHistory,
    EntityReference,
    Message,
    MessageRole,
)
from okr_assistant.services.conversation_repository import ConversationRepository

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50

# listener(conversation_id), called under the conversation lock on reset
ResetListener = Callable[[str], None]


@dataclass
class ConversationSummary:
    """Listing entry for one conversation"""
    id: str
    title: str
    timestamp: datetime
    message_count: int
    last_message: Optional[str]
    messages: List[Message] = field(default_factory=list)

    def to_dict(self, include_messages: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "timestamp": self.timestamp.isoformat(),
            "message_count": self.message_count,
            "last_message": self.last_message,
        }
        if include_messages:
            data["messages"] = [message.to_dict() for message in self.messages]
        return data


@dataclass
class ConversationDiagnostics:
    """Per-conversation counters for troubleshooting"""
    conversation_id: str
    message_count: int
    user_message_count: int
    user_ids: List[str]
    first_message_at: Optional[datetime]
    last_message_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "message_count": self.message_count,
            "user_message_count": self.user_message_count,
            "user_ids": self.user_ids,
            "first_message_at": self.first_message_at.isoformat() if self.first_message_at else None,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
        }


def synthesize_title(history: ConversationHistory) -> str:
    """Title from the first user message, or a fallback using the id prefix"""
    first = history.first_user_message()
    if first is not None:
        text = first.content.replace("\r", " ").replace("\n", " ").strip()
        if text:
            if len(text) > TITLE_MAX_LENGTH:
                return text[:TITLE_MAX_LENGTH - 3] + "..."
            return text
    return f"Conversation {history.conversation_id[:8]}"


class ConversationSession:
    """
    Exclusive handle on one conversation, valid inside ConversationStore.session()

    All reads and appends made through the handle happen under the
    conversation's lock, so a turn's read-compute-append cannot interleave
    with another turn on the same conversation.
    """

    def __init__(self, store: "ConversationStore", history: ConversationHistory):
        self._store = store
        self._history = history

    @property
    def conversation_id(self) -> str:
        return self._history.conversation_id

    def history(self) -> ConversationHistory:
        """Snapshot of the history as it is now"""
        return self._history.snapshot()

    def append(self, message: Message) -> None:
        self._store._append_locked(self._history, message)

    def set_system_message(self, text: str) -> None:
        self._store._set_system_message_locked(self._history, text)


class ConversationStore:
    """
    Registry of conversation histories

    Responsibilities:
    - Create histories on first access with the default system message
    - Serialize appends per conversation id
    - Maintain the user id index and entity references
    - List conversations with titles and diagnostics
    - Write through to an optional repository
    """

    def __init__(
        self,
        repository: Optional[ConversationRepository] = None,
        default_system_message: str = DEFAULT_SYSTEM_MESSAGE
    ):
        self.repository = repository
        self.default_system_message = default_system_message
        self._histories: Dict[str, ConversationHistory] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._reset_listeners: List[ResetListener] = []
        self._user_index: Dict[str, Set[str]] = {}
        self._entities: Dict[str, List[EntityReference]] = {}

    def hydrate(self) -> int:
        """Load persisted histories into memory; returns the number loaded"""
        if self.repository is None:
            return 0
        histories = self.repository.load_all()
        for conversation_id, history in histories.items():
            self._histories[conversation_id] = history
            self._index_user(history)
        return len(histories)

    @asynccontextmanager
    async def _locked(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock; the lock is dropped once nobody holds or awaits it"""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[conversation_id] - 1
            if remaining:
                self._lock_users[conversation_id] = remaining
            else:
                del self._lock_users[conversation_id]
                del self._locks[conversation_id]

    def _history_for(self, conversation_id: str) -> ConversationHistory:
        history = self._histories.get(conversation_id)
        if history is None:
            history = ConversationHistory(
                conversation_id=conversation_id,
                system_message=self.default_system_message
            )
            self._histories[conversation_id] = history
            logger.info(f"Created conversation history: {conversation_id}")
        return history

    @asynccontextmanager
    async def session(self, conversation_id: str) -> AsyncIterator[ConversationSession]:
        """Hold the conversation's lock for a read-compute-append sequence"""
        async with self._locked(conversation_id):
            yield ConversationSession(self, self._history_for(conversation_id))

    async def get_or_create_history(self, conversation_id: str) -> ConversationHistory:
        async with self.session(conversation_id) as session:
            return session.history()

    def get_history(self, conversation_id: str) -> ConversationHistory:
        """Snapshot of a history; unknown ids yield an empty history"""
        history = self._histories.get(conversation_id)
        if history is None:
            return ConversationHistory(
                conversation_id=conversation_id,
                system_message=self.default_system_message
            )
        return history.snapshot()

    async def append_message(self, conversation_id: str, message: Message) -> None:
        async with self.session(conversation_id) as session:
            session.append(message)

    async def set_system_message(self, conversation_id: str, text: str) -> None:
        """Replace the system message; prior turns are untouched"""
        async with self.session(conversation_id) as session:
            session.set_system_message(text)

    def add_reset_listener(self, listener: ResetListener) -> None:
        self._reset_listeners.append(listener)

    async def reset(self, conversation_id: str) -> None:
        """
        Clear all messages and restore the default system message (idempotent).

        Reset listeners run under the conversation lock. Unknown ids are not
        registered.
        """
        async with self._locked(conversation_id):
            history = self._histories.get(conversation_id)
            if history is not None:
                if self.repository is not None:
                    self.repository.reset_conversation(conversation_id, self.default_system_message)
                history.messages = []
                history.system_message = self.default_system_message
            self._entities.pop(conversation_id, None)
            self._unindex(conversation_id)
            for listener in self._reset_listeners:
                listener(conversation_id)
        logger.info(f"Reset conversation: {conversation_id}")

    async def reset_all(self) -> int:
        conversation_ids = list(self._histories.keys())
        for conversation_id in conversation_ids:
            await self.reset(conversation_id)
        logger.info(f"Reset {len(conversation_ids)} conversations")
        return len(conversation_ids)

    def _append_locked(self, history: ConversationHistory, message: Message) -> None:
        if self.repository is not None:
            self.repository.append_message(
                history.conversation_id,
                len(history.messages),
                message,
                history.system_message
            )
        history.messages.append(message)
        if message.role == MessageRole.USER and history.first_user_message() is message:
            self._index_user(history)

    def _set_system_message_locked(self, history: ConversationHistory, text: str) -> None:
        if self.repository is not None:
            self.repository.save_system_message(history.conversation_id, text)
        history.system_message = text

    def _index_user(self, history: ConversationHistory) -> None:
        first = history.first_user_message()
        if first is None:
            return
        key = first.user_id.lower()
        self._user_index.setdefault(key, set()).add(history.conversation_id)

    def _unindex(self, conversation_id: str) -> None:
        for conversation_ids in self._user_index.values():
            conversation_ids.discard(conversation_id)

    @property
    def conversation_ids(self) -> List[str]:
        return list(self._histories.keys())

    def record_entity_reference(self, conversation_id: str, reference: EntityReference) -> None:
        """Remember an entity touched in this conversation"""
        self._entities.setdefault(conversation_id, []).append(reference)
        logger.debug(
            f"Recorded {reference.operation or 'use'} of {reference.entity_type} "
            f"{reference.entity_id} in conversation {conversation_id}"
        )

    def record_function_result(self, conversation_id: str, result: FunctionExecutionResult) -> None:
        """Registry listener: record the entity a successful function touched"""
        if not conversation_id or not result.entity_type or not result.entity_id:
            return
        self.record_entity_reference(conversation_id, EntityReference(
            entity_type=result.entity_type,
            entity_id=result.entity_id,
            name=result.entity_name,
            operation=result.operation
        ))

    def recent_entity_references(self, conversation_id: str) -> List[EntityReference]:
        """Most recent reference per entity type, newest first"""
        latest: Dict[str, EntityReference] = {}
        for reference in reversed(self._entities.get(conversation_id, [])):
            latest.setdefault(reference.entity_type, reference)
        return list(latest.values())

    def most_recent_entity_id(self, conversation_id: str, entity_type: str) -> Optional[str]:
        for reference in reversed(self._entities.get(conversation_id, [])):
            if reference.entity_type.lower() == entity_type.lower():
                return reference.entity_id
        return None

    def _summarize(self, history: ConversationHistory) -> ConversationSummary:
        messages = list(history.messages)
        return ConversationSummary(
            id=history.conversation_id,
            title=synthesize_title(history),
            timestamp=history.last_activity or datetime.utcnow(),
            message_count=len(messages),
            last_message=messages[-1].content if messages else None,
            messages=messages
        )

    def list_conversations(self) -> List[ConversationSummary]:
        """All conversations, most recent activity first"""
        summaries = [self._summarize(history) for history in self._histories.values()]
        return sorted(summaries, key=lambda summary: summary.timestamp, reverse=True)

    def list_conversations_for_user(self, user_id: str) -> List[ConversationSummary]:
        """Conversations whose first user message carries this user id (case-insensitive)"""
        conversation_ids = self._user_index.get((user_id or "").lower(), set())
        summaries = [
            self._summarize(self._histories[conversation_id])
            for conversation_id in conversation_ids
            if conversation_id in self._histories
        ]
        return sorted(summaries, key=lambda summary: summary.timestamp, reverse=True)

    def list_conversations_with_diagnostics(self) -> List[ConversationDiagnostics]:
        diagnostics = []
        for conversation_id, history in self._histories.items():
            messages = list(history.messages)
            user_messages = [message for message in messages if message.role == MessageRole.USER]
            user_ids = sorted({message.user_id for message in user_messages if message.user_id})
            timestamps = [message.timestamp for message in messages]
            diagnostics.append(ConversationDiagnostics(
                conversation_id=conversation_id,
                message_count=len(messages),
                user_message_count=len(user_messages),
                user_ids=user_ids,
                first_message_at=min(timestamps) if timestamps else None,
                last_message_at=max(timestamps) if timestamps else None
            ))
        return diagnostics
