"""Tests for the OKR API backed function handlers."""
import json

import httpx
import pytest

from okr_assistant.agents.skills.intent_catalog import get_intent_spec
from okr_assistant.functions.base import FunctionExecutionError
from okr_assistant.functions.okr_api import OkrApiClient, OkrApiFunctions, register_okr_api_functions
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.models.user_context import UserContext
from okr_assistant.services.conversation_store import ConversationStore


class FakeOkrApi:
    """Records requests and answers from a route table"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body, request.headers.get("Authorization")))
        status, payload = self.routes.get((request.method, request.url.path), (404, {"error": "not found"}))
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)


@pytest.fixture
def caller():
    return UserContext(user_id="user-123", organization_id="org-1", role="OrganizationAdmin", access_token="jwt-abc")


def _functions(api, entity_lookup=None):
    client = OkrApiClient("https://okr.example.com/", transport=httpx.MockTransport(api))
    return OkrApiFunctions(client, entity_lookup)


@pytest.mark.asyncio
async def test_create_team_posts_name_and_organization(caller):
    api = FakeOkrApi({("POST", "/api/teams"): (201, {"id": "t-1", "name": "Apollo"})})

    result = await _functions(api).execute(get_intent_spec("CreateTeam"), {"teamName": "Apollo"}, caller, "c1")

    method, path, body, auth = api.requests[0]
    assert (method, path) == ("POST", "/api/teams")
    assert body == {"organizationId": "org-1", "name": "Apollo"}
    assert auth == "Bearer jwt-abc"
    assert result.success
    assert result.message == "Team 'Apollo' created successfully."
    assert (result.entity_type, result.entity_id, result.operation) == ("Team", "t-1", "Create")


@pytest.mark.asyncio
async def test_delete_by_name_looks_up_the_id_first(caller):
    api = FakeOkrApi({
        ("GET", "/api/teams/organization/org-1"): (200, [{"id": "t-8", "name": "Zeus"}, {"id": "t-9", "name": "Apollo"}]),
        ("DELETE", "/api/teams/t-9"): (204, None),
    })

    result = await _functions(api).execute(get_intent_spec("DeleteTeam"), {"teamName": "apollo"}, caller, "c1")

    assert [(m, p) for m, p, _, _ in api.requests] == [
        ("GET", "/api/teams/organization/org-1"),
        ("DELETE", "/api/teams/t-9"),
    ]
    assert result.entity_id == "t-9"
    assert result.message == "Team 'apollo' deleted successfully."


@pytest.mark.asyncio
async def test_missing_id_falls_back_to_most_recent_entity(caller):
    api = FakeOkrApi({("DELETE", "/api/teams/t-recent"): (204, None)})
    functions = _functions(api, entity_lookup=lambda cid, entity_type: "t-recent" if entity_type == "Team" else None)

    result = await functions.execute(get_intent_spec("DeleteTeam"), {}, caller, "c1")

    assert api.requests[0][1] == "/api/teams/t-recent"
    assert result.entity_id == "t-recent"


@pytest.mark.asyncio
async def test_unresolvable_path_parameter_is_reported(caller):
    api = FakeOkrApi({})

    with pytest.raises(FunctionExecutionError) as exc_info:
        await _functions(api).execute(get_intent_spec("DeleteTeam"), {}, caller, "c1")

    assert exc_info.value.code == "MISSING_PARAMETER"
    assert api.requests == []


@pytest.mark.asyncio
async def test_missing_required_parameter_is_reported(caller):
    with pytest.raises(FunctionExecutionError) as exc_info:
        await _functions(FakeOkrApi({})).execute(get_intent_spec("CreateTeam"), {}, caller, "c1")

    assert exc_info.value.details == {"missing": ["teamName"]}


@pytest.mark.asyncio
async def test_http_error_becomes_function_error(caller):
    api = FakeOkrApi({("POST", "/api/teams"): (404, {"error": "organization not found"})})

    with pytest.raises(FunctionExecutionError) as exc_info:
        await _functions(api).execute(get_intent_spec("CreateTeam"), {"teamName": "Apollo"}, caller, "c1")

    assert exc_info.value.code == "HTTP_404"
    assert "organization not found" in exc_info.value.details["body"]


@pytest.mark.asyncio
async def test_registered_handlers_record_entity_references(caller):
    api = FakeOkrApi({("POST", "/api/teams"): (201, {"id": "t-1", "name": "Apollo"})})
    store = ConversationStore()
    registry = FunctionRegistry()
    registry.add_listener(store.record_function_result)
    register_okr_api_functions(
        registry,
        OkrApiClient("https://okr.example.com", transport=httpx.MockTransport(api)),
        entity_lookup=store.most_recent_entity_id
    )

    await registry.invoke("CreateTeam", {"teamName": "Apollo"}, caller, "c1")

    assert registry.has("DeleteTeam")
    assert store.most_recent_entity_id("c1", "Team") == "t-1"
