"""
LLM Provider Base

Closed set of supported providers and the capability interface every
backend implements. The orchestrator routes on Provider values and on the
declared capabilities, never on raw provider strings.

All provider calls are bounded: `complete_chat` by the single-turn timeout
and `execute_multi_step_plan` by the longer multi-step timeout.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, List, Optional, TypeVar
import asyncio
import logging

from okr_assistant.models.message import Message, MessageRole
from okr_assistant.models.user_context import UserContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Provider(str, Enum):
    """Supported LLM providers"""
    AZURE_OPENAI = "azureopenai"
    DEEPSEEK = "deepseek"
    COHERE = "cohere"

    @classmethod
    def from_hint(cls, hint: Optional[str], default: "Provider" = None) -> "Provider":
        """
        Map a caller-supplied provider hint to a Provider.

        Args:
            hint: Free-form provider name from the request (case-insensitive)
            default: Provider used for empty or unknown hints

        Returns:
            The matching Provider, else the default (Cohere when not given)
        """
        fallback = default or cls.COHERE
        if not hint:
            return fallback
        normalized = hint.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        for provider in cls:
            if provider.value == normalized:
                return provider
        logger.warning(f"Unknown LLM provider '{hint}', using {fallback.value}")
        return fallback


class ProviderError(Exception):
    """Upstream provider failure (non-2xx, malformed completion, disabled provider)"""
    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its time budget"""
    def __init__(self, provider: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(provider, f"timed out after {timeout_seconds}s")


async def with_timeout(awaitable: Awaitable[T], timeout_seconds: float, provider: str) -> T:
    """Await with a time bound, converting the timeout into ProviderTimeoutError"""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(provider, timeout_seconds) from e


def to_chat_messages(system_prompt: str, history: List[Message], limit: int = 10) -> List[dict]:
    """
    Convert a system prompt plus history into role/content dicts.

    Only the last `limit` user and assistant turns are sent; stored system
    notes and empty assistant turns are skipped.
    """
    turns = [
        message for message in history
        if message.role in (MessageRole.USER, MessageRole.ASSISTANT) and message.content
    ]
    messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
    messages.extend({"role": message.role.value, "content": message.content} for message in turns[-limit:])
    return messages


class ChatProvider(ABC):
    """
    Capability interface implemented per LLM backend

    Responsibilities:
    - Declare which capabilities the backend supports
    - Complete a chat turn (optionally with function calling)
    - Execute a multi-step plan where supported
    - Bound every upstream call with a timeout
    """

    provider: Provider
    author_name: str = "AI Assistant"
    supports_function_calling: bool = False
    supports_multi_step: bool = False

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        multi_step_timeout_seconds: float = 120.0,
        history_window: int = 10
    ):
        self.timeout_seconds = timeout_seconds
        self.multi_step_timeout_seconds = multi_step_timeout_seconds
        self.history_window = history_window

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """False when the backend is not configured"""

    @property
    def name(self) -> str:
        return self.provider.value

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise ProviderError(self.name, "provider is not configured")

    async def complete_chat(
        self,
        system_prompt: str,
        history: List[Message],
        functions_enabled: bool = False,
        user_context: Optional[UserContext] = None,
        conversation_id: str = ""
    ) -> str:
        """
        Complete one chat turn.

        Args:
            system_prompt: System prompt for this turn
            history: Conversation so far (the current user message last)
            functions_enabled: Allow the model to call domain functions
            user_context: Caller identity for function execution
            conversation_id: Conversation the turn belongs to

        Returns:
            The assistant's text

        Raises:
            ProviderError: Upstream failure or provider not configured
            ProviderTimeoutError: The call exceeded the single-turn timeout
        """
        self._require_enabled()
        if functions_enabled and not self.supports_function_calling:
            logger.debug(f"{self.name} does not support function calling, completing without functions")
            functions_enabled = False
        return await with_timeout(
            self._complete_chat(system_prompt, history, functions_enabled, user_context, conversation_id),
            self.timeout_seconds,
            self.name
        )

    async def execute_multi_step_plan(
        self,
        user_text: str,
        system_prompt: str,
        user_context: Optional[UserContext] = None,
        conversation_id: str = "",
        history: Optional[List[Message]] = None
    ) -> str:
        """
        Let the model chain several function calls to satisfy one request.

        Raises:
            ProviderError: Unsupported, not configured, or upstream failure
            ProviderTimeoutError: The plan exceeded the multi-step timeout
        """
        self._require_enabled()
        if not self.supports_multi_step:
            raise ProviderError(self.name, "multi-step execution is not supported")
        return await with_timeout(
            self._execute_multi_step_plan(user_text, system_prompt, user_context, conversation_id, history or []),
            self.multi_step_timeout_seconds,
            self.name
        )

    @abstractmethod
    async def _complete_chat(
        self,
        system_prompt: str,
        history: List[Message],
        functions_enabled: bool,
        user_context: Optional[UserContext],
        conversation_id: str
    ) -> str:
        ...

    async def _execute_multi_step_plan(
        self,
        user_text: str,
        system_prompt: str,
        user_context: Optional[UserContext],
        conversation_id: str,
        history: List[Message]
    ) -> str:
        raise ProviderError(self.name, "multi-step execution is not supported")
