"""Tests for write-through conversation persistence."""
from dataclasses import replace
from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from okr_assistant.models.message import DEFAULT_SYSTEM_MESSAGE, Message, MessageRole
from okr_assistant.services.conversation_repository import (
    ConversationPersistenceError,
    ConversationRepository,
    create_chat_engine,
)
from okr_assistant.services.conversation_store import ConversationStore


@pytest.fixture
def repository():
    return ConversationRepository(create_chat_engine("sqlite://"))


@pytest.mark.asyncio
async def test_store_writes_through_and_rehydrates(repository):
    store = ConversationStore(repository=repository)
    await store.set_system_message("c1", "Custom prompt")
    await store.append_message("c1", Message.user("Create a team", user_id="u1"))
    await store.append_message("c1", Message.assistant("Done", provider="cohere", function_output={"id": "t-1"}))

    restored = ConversationStore(repository=repository)
    assert restored.hydrate() == 1

    history = restored.get_history("c1")
    assert history.system_message == "Custom prompt"
    assert [m.role for m in history.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert history.messages[0].user_id == "u1"
    assert history.messages[1].metadata["Provider"] == "cohere"
    assert history.messages[1].parsed_function_output() == {"id": "t-1"}
    assert [s.id for s in restored.list_conversations_for_user("u1")] == ["c1"]


@pytest.mark.asyncio
async def test_reset_deletes_persisted_messages(repository):
    store = ConversationStore(repository=repository)
    await store.append_message("c1", Message.user("hello"))

    await store.reset("c1")

    history = repository.load_all()["c1"]
    assert history.messages == []
    assert history.system_message == DEFAULT_SYSTEM_MESSAGE


@pytest.mark.asyncio
async def test_storage_failure_is_raised_and_message_not_kept(repository):
    store = ConversationStore(repository=repository)

    with patch("okr_assistant.services.conversation_repository.Session") as session_class:
        session_class.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        with pytest.raises(ConversationPersistenceError):
            await store.append_message("c1", Message.user("hello"))

    assert store.get_history("c1").messages == []


@pytest.mark.asyncio
async def test_naive_utc_timestamps_round_trip(repository):
    store = ConversationStore(repository=repository)
    sent_at = datetime(2024, 5, 1, 9, 30, 15)
    await store.append_message("c1", replace(Message.user("hello"), timestamp=sent_at))

    restored = ConversationStore(repository=repository)
    restored.hydrate()
    await restored.append_message("c1", Message.assistant("hi"))

    history = restored.get_history("c1")
    assert history.messages[0].timestamp == sent_at
    assert history.messages[0].timestamp.tzinfo is None
    assert restored.list_conversations()[0].timestamp == history.messages[1].timestamp
