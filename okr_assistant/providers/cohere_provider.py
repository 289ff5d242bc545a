"""
Cohere Provider

Uses Cohere's chat models for intent analysis and conversational answers on
the default (intent-analysis) route. No function calling.
"""

import logging
from typing import List, Optional

import cohere

from okr_assistant.models.message import Message, MessageRole
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import ChatProvider, Provider, ProviderError

logger = logging.getLogger(__name__)


class CohereProvider(ChatProvider):
    """
    Cohere chat backend

    Responsibilities:
    - Map conversation history onto Cohere's preamble + chat_history shape
    - Surface upstream failures as ProviderError
    """

    provider = Provider.COHERE
    author_name = "AI Assistant (Cohere)"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "command-r-plus",
        temperature: float = 0.7,
        client=None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.model = model
        self.temperature = temperature

        if client is not None:
            self.client = client
        elif api_key:
            self.client = cohere.AsyncClient(api_key=api_key)
        else:
            self.client = None

        if self.client is not None:
            logger.info(f"Cohere provider initialized with model: {self.model}")
        else:
            logger.warning("Cohere provider disabled - COHERE_API_KEY not set")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _complete_chat(
        self,
        system_prompt: str,
        history: List[Message],
        functions_enabled: bool,
        user_context: Optional[UserContext],
        conversation_id: str
    ) -> str:
        turns = [
            m for m in history
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT) and m.content
        ][-self.history_window:]
        if not turns or turns[-1].role != MessageRole.USER:
            raise ProviderError(self.name, "chat history must end with a user message")

        chat_history = [
            {"role": "USER" if m.role == MessageRole.USER else "CHATBOT", "message": m.content}
            for m in turns[:-1]
        ]

        try:
            response = await self.client.chat(
                model=self.model,
                message=turns[-1].content,
                preamble=system_prompt or None,
                chat_history=chat_history or None,
                temperature=self.temperature
            )
        except Exception as e:
            error_str = str(e).lower()
            if "model" in error_str and ("removed" in error_str or "deprecated" in error_str):
                logger.warning(f"Cohere model {self.model} is deprecated. Please update your configuration.")
            raise ProviderError(self.name, str(e)) from e

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise ProviderError(self.name, "completion missing text")
        return text.strip()
