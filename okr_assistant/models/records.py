"""
Persistence Records for Chat Conversations

SQLModel tables mirroring the in-process conversation store when
persistence is enabled. Rows are append-only; a reset deletes them.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import DateTime, Text, String


class ConversationRecord(SQLModel, table=True):
    """Conversation metadata (system message override and timestamps)"""
    __tablename__ = "chat_conversations"

    id: str = Field(primary_key=True, max_length=200)
    system_message: str = Field(sa_column=Column(Text))
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))


class MessageRecord(SQLModel, table=True):
    """One stored chat message; `sequence` preserves insertion order"""
    __tablename__ = "chat_messages"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    conversation_id: str = Field(foreign_key="chat_conversations.id", index=True, max_length=200)
    sequence: int = Field(index=True)
    role: str = Field(sa_column=Column(String))  # Store enum value as string
    content: str = Field(sa_column=Column(Text))
    metadata_json: str = Field(default="{}", sa_column=Column(Text))
    function_output: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    # Naive UTC, matching in-memory message timestamps
    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
