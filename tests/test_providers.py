"""Tests for provider adapters, routing hints and timeouts."""
from types import SimpleNamespace
import asyncio
import json

import pytest

from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.models.message import Message
from okr_assistant.providers.azure_openai_provider import AzureOpenAIProvider
from okr_assistant.providers.base import Provider, ProviderError, ProviderTimeoutError, to_chat_messages, with_timeout
from okr_assistant.providers.cohere_provider import CohereProvider
from okr_assistant.providers.deepseek_provider import DeepSeekProvider
from okr_assistant.services.conversation_store import ConversationStore
from tests.fakes import RecordingHandlers, register


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeCompletions:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **request):
        self.requests.append(json.loads(json.dumps(request, default=str)))
        return self.responses.pop(0)


def _openai_client(responses):
    completions = FakeCompletions(responses)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.mark.parametrize("hint,expected", [
    ("azureopenai", Provider.AZURE_OPENAI),
    ("Azure-OpenAI", Provider.AZURE_OPENAI),
    ("DEEPSEEK", Provider.DEEPSEEK),
    ("cohere", Provider.COHERE),
    ("mystery", Provider.COHERE),
    (None, Provider.COHERE),
])
def test_provider_hints(hint, expected):
    assert Provider.from_hint(hint) == expected


def test_history_window_and_system_notes():
    history = [Message.system("note")] + [Message.user(f"m{i}") for i in range(12)]

    messages = to_chat_messages("prompt", history, limit=10)

    assert messages[0] == {"role": "system", "content": "prompt"}
    assert [m["content"] for m in messages[1:]] == [f"m{i}" for i in range(2, 12)]


@pytest.mark.asyncio
async def test_with_timeout_raises_provider_timeout():
    with pytest.raises(ProviderTimeoutError) as exc_info:
        await with_timeout(asyncio.sleep(1), 0.01, "azureopenai")

    assert exc_info.value.timeout_seconds == 0.01


@pytest.mark.asyncio
async def test_tool_calls_run_through_registry_before_final_answer():
    store = ConversationStore()
    handlers = RecordingHandlers()
    registry = FunctionRegistry()
    register(registry, "CreateTeam", handlers.succeed("Team", "Team 'Apollo' created successfully.", "t-1"))
    registry.add_listener(store.record_function_result)
    client, completions = _openai_client([
        _completion(tool_calls=[_tool_call("call-1", "CreateTeam", '{"teamName": "Apollo", "size": 5}')]),
        _completion(content="  Done: Apollo created.  "),
    ])
    provider = AzureOpenAIProvider(api_key=None, endpoint=None, registry=registry, client=client)

    text = await provider.execute_multi_step_plan("Create a team named Apollo", "prompt", conversation_id="c1")

    assert text == "Done: Apollo created."
    assert handlers.calls == [("Team", {"teamName": "Apollo", "size": "5"})]
    assert store.most_recent_entity_id("c1", "Team") == "t-1"
    first, second = completions.requests
    assert first["tool_choice"] == "auto"
    assert first["messages"][-1] == {"role": "user", "content": "Create a team named Apollo"}
    tool_message = second["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call-1"
    assert json.loads(tool_message["content"])["message"] == "Team 'Apollo' created successfully."


@pytest.mark.asyncio
async def test_unknown_function_is_reported_back_to_the_model():
    client, completions = _openai_client([
        _completion(tool_calls=[_tool_call("call-1", "Nope", "{}")]),
        _completion(content="Sorry, I cannot do that."),
    ])
    provider = AzureOpenAIProvider(api_key=None, endpoint=None, registry=FunctionRegistry(), client=client)

    text = await provider.complete_chat("prompt", [Message.user("do it")], functions_enabled=True)

    assert text == "Sorry, I cannot do that."
    tool_output = json.loads(completions.requests[1]["messages"][-1]["content"])
    assert tool_output["error"]["code"] == "FUNCTION_NOT_FOUND"


@pytest.mark.asyncio
async def test_runaway_tool_loop_is_a_provider_error():
    responses = [_completion(tool_calls=[_tool_call(f"call-{i}", "Nope", "{}")]) for i in range(3)]
    client, _ = _openai_client(responses)
    provider = AzureOpenAIProvider(
        api_key=None, endpoint=None, registry=FunctionRegistry(), client=client, max_function_steps=3
    )

    with pytest.raises(ProviderError):
        await provider.complete_chat("prompt", [Message.user("loop")], functions_enabled=True)


@pytest.mark.asyncio
async def test_deepseek_never_sends_tools():
    client, completions = _openai_client([_completion(content="Hello")])
    provider = DeepSeekProvider(api_key=None, client=client)

    text = await provider.complete_chat("prompt", [Message.user("hi")], functions_enabled=True)

    assert text == "Hello"
    assert "tools" not in completions.requests[0]


@pytest.mark.asyncio
async def test_unconfigured_provider_raises():
    provider = DeepSeekProvider(api_key=None)

    assert not provider.enabled
    with pytest.raises(ProviderError):
        await provider.complete_chat("prompt", [Message.user("hi")])


@pytest.mark.asyncio
async def test_cohere_maps_history_to_preamble_and_chat_history():
    class Client:
        def __init__(self):
            self.kwargs = None

        async def chat(self, **kwargs):
            self.kwargs = kwargs
            return SimpleNamespace(text=" Hi there ")

    client = Client()
    provider = CohereProvider(api_key=None, client=client)

    text = await provider.complete_chat("preamble", [
        Message.user("hello"),
        Message.assistant("hi"),
        Message.user("how are you?"),
    ])

    assert text == "Hi there"
    assert client.kwargs["message"] == "how are you?"
    assert client.kwargs["preamble"] == "preamble"
    assert client.kwargs["chat_history"] == [
        {"role": "USER", "message": "hello"},
        {"role": "CHATBOT", "message": "hi"},
    ]


@pytest.mark.asyncio
async def test_cohere_failure_becomes_provider_error():
    class Client:
        async def chat(self, **kwargs):
            raise RuntimeError("model command-r was removed")

    with pytest.raises(ProviderError):
        await CohereProvider(api_key=None, client=Client()).complete_chat("p", [Message.user("hi")])
