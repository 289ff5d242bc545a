"""Tests for recovering JSON from model output."""
from okr_assistant.agents.skills.json_recovery import extract_fenced_json, parse_json_object


def test_parses_object_surrounded_by_prose():
    text = 'Sure! Here you go: {"intent": "CreateTeam", "parameters": {"teamName": "Apollo"}} Hope that helps.'

    assert parse_json_object(text) == {"intent": "CreateTeam", "parameters": {"teamName": "Apollo"}}


def test_repairs_unquoted_keys_values_and_trailing_commas():
    text = '{intents: [{"intent": CreateTeam, parameters: {"teamName": "Apollo",},},]}'

    assert parse_json_object(text) == {"intents": [{"intent": "CreateTeam", "parameters": {"teamName": "Apollo"}}]}


def test_valid_json_is_not_rewritten():
    text = '{"message": "ratio, 3:1, done"}'

    assert parse_json_object(text) == {"message": "ratio, 3:1, done"}


def test_returns_none_without_an_object():
    assert parse_json_object("no json here") is None
    assert parse_json_object("[1, 2, 3]") is None


def test_repair_applies_to_the_object_inside_prose():
    assert parse_json_object('noise {"a": 1,} noise') == {"a": 1}


def test_fenced_block_is_parsed():
    fenced = extract_fenced_json('Done.\n```json\n{"PromptTemplate": "Hello"}\n```')

    assert fenced.found
    assert fenced.error is None
    assert fenced.payload == {"PromptTemplate": "Hello"}


def test_unterminated_fence_still_parses():
    fenced = extract_fenced_json('```json\n{"id": "t-1"}')

    assert fenced.payload == {"id": "t-1"}


def test_broken_fenced_block_reports_error():
    fenced = extract_fenced_json("```json\n{not json}\n```")

    assert fenced.found
    assert fenced.payload is None
    assert fenced.error


def test_text_without_fence_is_not_found():
    assert not extract_fenced_json('{"PromptTemplate": "Hello"}').found
