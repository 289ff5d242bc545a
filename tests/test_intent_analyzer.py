"""Tests for multi-intent detection."""
import pytest

from okr_assistant.agents.subagents.intent_analyzer import (
    FALLBACK_INTENT,
    IntentAnalyzer,
    format_recent_context,
    parse_intents,
)
from okr_assistant.models.message import EntityReference
from okr_assistant.providers.base import Provider
from tests.fakes import FakeProvider, failing


def test_parse_multiple_intents_in_order_with_stringified_parameters():
    intents = parse_intents(
        '{"intents": ['
        '{"intent": "CreateTeam", "parameters": {"teamName": "Apollo", "size": 5}},'
        '{"intent": "CreateObjective", "parameters": {"title": "Grow", "urgent": true, "tags": ["a"]}}'
        ']}'
    )

    assert [i.name for i in intents] == ["CreateTeam", "CreateObjective"]
    assert intents[0].parameters == {"teamName": "Apollo", "size": "5"}
    assert intents[1].parameters == {"title": "Grow", "urgent": "true", "tags": '["a"]'}


def test_parse_single_intent_shape():
    [intent] = parse_intents('{"intent": "GetTeams", "parameters": {}}')

    assert intent.name == "GetTeams"
    assert intent.parameters == {}


def test_parse_rejects_output_without_intents():
    assert parse_intents("I could not understand that") is None
    assert parse_intents('{"intents": []}') is None
    assert parse_intents('{"intents": [{"parameters": {}}]}') is None


def test_recent_context_lists_latest_entities():
    block = format_recent_context([
        EntityReference(entity_type="Team", entity_id="t-1", name="Apollo", operation="Create"),
    ])

    assert "RECENT CONTEXT:" in block
    assert "Most recent Team: ID=t-1" in block
    assert "Team Name: Apollo" in block
    assert "Operation: Create" in block


@pytest.mark.asyncio
async def test_analyze_returns_detected_intents():
    provider = FakeProvider(Provider.COHERE, [
        'Here: {"intents": [{"intent": "CreateTeam", "parameters": {"teamName": "Apollo"}}]}'
    ])

    intents = await IntentAnalyzer().analyze("c1", "Create a team named Apollo", provider)

    assert [(i.name, i.parameters) for i in intents] == [("CreateTeam", {"teamName": "Apollo"})]
    assert provider.calls[0]["history"][0].content == "Create a team named Apollo"


@pytest.mark.asyncio
async def test_analyze_falls_back_on_unparseable_output():
    provider = FakeProvider(Provider.COHERE, ["Sorry, I am not sure."])

    [intent] = await IntentAnalyzer().analyze("c1", "hello there", provider)

    assert intent.name == FALLBACK_INTENT
    assert intent.parameters == {"message": "hello there"}


@pytest.mark.asyncio
async def test_analyze_falls_back_when_provider_fails():
    provider = FakeProvider(Provider.COHERE, [failing()])

    [intent] = await IntentAnalyzer().analyze("c1", "hello", provider)

    assert intent.name == FALLBACK_INTENT


@pytest.mark.asyncio
async def test_analyze_falls_back_when_provider_disabled():
    provider = FakeProvider(Provider.COHERE, enabled=False)

    [intent] = await IntentAnalyzer().analyze("c1", "hello", provider)

    assert intent.name == FALLBACK_INTENT
    assert provider.calls == []


def test_prompt_includes_recent_entities_for_conversation():
    analyzer = IntentAnalyzer(entity_references=lambda cid: [EntityReference("Objective", "o-9")])

    prompt = analyzer.build_system_prompt("c1", Provider.AZURE_OPENAI)

    assert prompt.rstrip().endswith("Most recent Objective: ID=o-9")
