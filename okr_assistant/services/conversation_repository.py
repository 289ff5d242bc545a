"""
Conversation Repository

Write-through persistence for the conversation store, backed by SQLModel.
Any storage failure is raised as ConversationPersistenceError, which callers
treat as fatal.
"""

from typing import Dict, List
from datetime import datetime
import json
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from okr_assistant.models.message import ConversationHistory, Message, MessageRole
from okr_assistant.models.records import ConversationRecord, MessageRecord

logger = logging.getLogger(__name__)


class ConversationPersistenceError(Exception):
    """Raised when the conversation database cannot be read or written"""


def create_chat_engine(database_url: str):
    """Create an engine for the chat database, creating tables if needed"""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine_kwargs = {"echo": False, "connect_args": connect_args}

    # In-memory SQLite must share a single connection across sessions
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **engine_kwargs)
    SQLModel.metadata.create_all(engine)
    logger.info(f"Chat database ready: {engine.url.render_as_string(hide_password=True)}")
    return engine


class ConversationRepository:
    """CRUD operations for persisted conversations and messages"""

    def __init__(self, engine):
        self.engine = engine

    def append_message(self, conversation_id: str, sequence: int, message: Message, system_message: str) -> None:
        """Persist one message, creating the conversation row on first write"""
        try:
            with Session(self.engine) as session:
                conversation = session.get(ConversationRecord, conversation_id)
                if conversation is None:
                    conversation = ConversationRecord(id=conversation_id, system_message=system_message)
                    session.add(conversation)
                conversation.updated_at = datetime.utcnow()

                session.add(MessageRecord(
                    conversation_id=conversation_id,
                    sequence=sequence,
                    role=message.role.value,
                    content=message.content,
                    metadata_json=json.dumps(message.metadata, default=str),
                    function_output=message.function_output,
                    created_at=message.timestamp
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist message for conversation {conversation_id}: {str(e)}")
            raise ConversationPersistenceError(str(e)) from e

    def save_system_message(self, conversation_id: str, system_message: str) -> None:
        try:
            with Session(self.engine) as session:
                conversation = session.get(ConversationRecord, conversation_id)
                if conversation is None:
                    conversation = ConversationRecord(id=conversation_id, system_message=system_message)
                else:
                    conversation.system_message = system_message
                    conversation.updated_at = datetime.utcnow()
                session.add(conversation)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist system message for conversation {conversation_id}: {str(e)}")
            raise ConversationPersistenceError(str(e)) from e

    def reset_conversation(self, conversation_id: str, system_message: str) -> None:
        """Delete all messages of a conversation and restore its system message"""
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(MessageRecord).where(MessageRecord.conversation_id == conversation_id)
                ).all()
                for row in rows:
                    session.delete(row)
                conversation = session.get(ConversationRecord, conversation_id)
                if conversation is not None:
                    conversation.system_message = system_message
                    conversation.updated_at = datetime.utcnow()
                    session.add(conversation)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to reset conversation {conversation_id}: {str(e)}")
            raise ConversationPersistenceError(str(e)) from e

    def load_all(self) -> Dict[str, ConversationHistory]:
        """Load every persisted conversation, messages in insertion order"""
        try:
            with Session(self.engine) as session:
                conversations = session.exec(select(ConversationRecord)).all()
                histories: Dict[str, ConversationHistory] = {}
                for record in conversations:
                    rows: List[MessageRecord] = list(session.exec(
                        select(MessageRecord)
                        .where(MessageRecord.conversation_id == record.id)
                        .order_by(MessageRecord.sequence)
                    ).all())
                    histories[record.id] = ConversationHistory(
                        conversation_id=record.id,
                        system_message=record.system_message,
                        messages=[self._to_message(row) for row in rows]
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load conversations: {str(e)}")
            raise ConversationPersistenceError(str(e)) from e

        logger.info(f"Loaded {len(histories)} persisted conversations")
        return histories

    @staticmethod
    def _to_message(row: MessageRecord) -> Message:
        try:
            metadata = json.loads(row.metadata_json or "{}")
        except json.JSONDecodeError:
            metadata = {}
        return Message(
            role=MessageRole(row.role),
            content=row.content,
            timestamp=row.created_at,
            metadata=metadata,
            function_output=row.function_output
        )
