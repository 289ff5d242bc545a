"""
Azure OpenAI Provider

Primary provider: chat completions with function calling against the domain
function registry, including multi-step plans where the model chains several
function calls before answering.
"""

from typing import Any, Dict, List, Optional
import json
import logging

import openai
from openai import AsyncAzureOpenAI

from okr_assistant.functions.base import (
    FunctionExecutionError,
    FunctionNotFoundError,
    create_error_response,
    create_success_response,
)
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.models.message import Message
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import ChatProvider, Provider, ProviderError, to_chat_messages

logger = logging.getLogger(__name__)


def _string_arguments(raw: Optional[str]) -> Dict[str, str]:
    """Decode tool-call arguments; every value is passed on as a string"""
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("function arguments must be a JSON object")
    arguments = {}
    for key, value in parsed.items():
        if value is None:
            continue
        arguments[key] = value if isinstance(value, str) else json.dumps(value)
    return arguments


class OpenAIChatProvider(ChatProvider):
    """
    Chat-completions backend shared by OpenAI-compatible providers

    Responsibilities:
    - Build role/content messages from history
    - Run the tool-call loop against the function registry
    - Return function failures to the model as error payloads
    """

    def __init__(
        self,
        client,
        model: str,
        registry: Optional[FunctionRegistry] = None,
        max_function_steps: int = 8,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.client = client
        self.model = model
        self.registry = registry
        self.max_function_steps = max_function_steps

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
        messages = to_chat_messages(system_prompt, history, self.history_window)
        return await self._run(messages, functions_enabled, user_context, conversation_id)

    async def _execute_multi_step_plan(
        self,
        user_text: str,
        system_prompt: str,
        user_context: Optional[UserContext],
        conversation_id: str,
        history: List[Message]
    ) -> str:
        messages = to_chat_messages(system_prompt, history, self.history_window)
        messages.append({"role": "user", "content": user_text})
        logger.info(f"Executing multi-step plan for conversation {conversation_id or '-'}")
        return await self._run(messages, True, user_context, conversation_id)

    async def _run(
        self,
        messages: List[Dict[str, Any]],
        functions_enabled: bool,
        user_context: Optional[UserContext],
        conversation_id: str
    ) -> str:
        request: Dict[str, Any] = {"model": self.model, "messages": messages}
        if functions_enabled and self.registry is not None:
            tools = self.registry.get_schemas()
            if tools:
                request["tools"] = tools
                request["tool_choice"] = "auto"

        for _ in range(self.max_function_steps):
            try:
                response = await self.client.chat.completions.create(**request)
            except openai.OpenAIError as e:
                raise ProviderError(self.name, str(e)) from e

            if not response.choices:
                raise ProviderError(self.name, "completion missing choices")
            message = response.choices[0].message

            if not message.tool_calls:
                return (message.content or "").strip()

            messages.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments}
                    }
                    for call in message.tool_calls
                ]
            })
            for call in message.tool_calls:
                output = await self._call_function(
                    call.function.name, call.function.arguments, user_context, conversation_id
                )
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(output, default=str)
                })

        raise ProviderError(self.name, f"function calling did not finish within {self.max_function_steps} steps")

    async def _call_function(
        self,
        name: str,
        raw_arguments: Optional[str],
        user_context: Optional[UserContext],
        conversation_id: str
    ) -> Dict[str, Any]:
        try:
            arguments = _string_arguments(raw_arguments)
            result = await self.registry.invoke(name, arguments, user_context, conversation_id)
            return create_success_response(result)
        except FunctionExecutionError as e:
            return create_error_response(e)
        except FunctionNotFoundError as e:
            logger.error(f"Model requested unknown function {name}")
            return create_error_response(FunctionExecutionError("FUNCTION_NOT_FOUND", str(e)))
        except ValueError as e:
            return create_error_response(FunctionExecutionError("INVALID_ARGUMENTS", str(e)))
        except Exception as e:
            logger.error(f"Unexpected error in function {name}: {str(e)}", exc_info=True)
            return create_error_response(FunctionExecutionError("INTERNAL_ERROR", "An unexpected error occurred"))


class AzureOpenAIProvider(OpenAIChatProvider):
    """Azure OpenAI deployment with function calling and multi-step plans"""

    provider = Provider.AZURE_OPENAI
    author_name = "AI Assistant (Azure OpenAI)"
    supports_function_calling = True
    supports_multi_step = True

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: Optional[str],
        deployment: str = "gpt-4o",
        api_version: str = "2024-06-01",
        registry: Optional[FunctionRegistry] = None,
        client=None,
        **kwargs
    ):
        if client is None and api_key and endpoint:
            client = AsyncAzureOpenAI(api_key=api_key, azure_endpoint=endpoint, api_version=api_version)
        super().__init__(client=client, model=deployment, registry=registry, **kwargs)

        if self.enabled:
            logger.info(f"Azure OpenAI provider initialized with deployment: {deployment}")
        else:
            logger.warning("Azure OpenAI provider disabled - AZURE_OPENAI_API_KEY or AZURE_OPENAI_ENDPOINT not set")
