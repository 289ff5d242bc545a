"""
OKR API Functions

Domain function handlers backed by the OKR REST API. One handler is built
per intent catalog entry; it resolves entity references (explicit id, name
lookup, or the conversation's most recently touched entity), calls the
route, and reports the affected entity.

Reusability: intent execution, provider function calling, risk analysis
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

import httpx

from okr_assistant.agents.skills.intent_catalog import (
    ANALYSIS_FUNCTIONS,
    INTENT_CATALOG,
    IntentSpec,
    build_tool_schema,
)
from okr_assistant.functions.base import FunctionExecutionError
from okr_assistant.functions.registry import FunctionHandler, FunctionRegistry
from okr_assistant.models.intent import FunctionExecutionResult
from okr_assistant.models.user_context import UserContext

logger = logging.getLogger(__name__)

EntityLookup = Callable[[str, str], Optional[str]]


@dataclass(frozen=True)
class ReferenceParameter:
    """How an id parameter is resolved when the caller did not supply it"""
    entity_type: str
    list_path: str
    name_parameters: Tuple[str, ...] = ()


REFERENCE_PARAMETERS: Dict[str, ReferenceParameter] = {
    "teamId": ReferenceParameter("Team", "api/teams/organization/{organizationId}", ("teamName",)),
    "responsibleTeamId": ReferenceParameter("Team", "api/teams/organization/{organizationId}", ("responsibleTeamName",)),
    "okrSessionId": ReferenceParameter("OkrSession", "api/okrsessions/organization/{organizationId}", ("okrSessionTitle",)),
    "objectiveId": ReferenceParameter("Objective", "api/objectives", ("objectiveTitle",)),
    "keyResultId": ReferenceParameter("KeyResult", "api/keyresults", ("keyResultTitle",)),
    "taskId": ReferenceParameter("KeyResultTask", "api/keyresulttasks"),
    "userId": ReferenceParameter("User", "api/users/organization/{organizationId}", ("userName",)),
    "teamManagerId": ReferenceParameter("User", "api/users/organization/{organizationId}", ("teamManagerName",)),
    "collaboratorId": ReferenceParameter("User", "api/users/organization/{organizationId}", ("collaboratorName",)),
    "managerId": ReferenceParameter("User", "api/users/organization/{organizationId}"),
}

# Name fields that only exist to resolve an id and are not sent to the API
_LOOKUP_ONLY = {name for ref in REFERENCE_PARAMETERS.values() for name in ref.name_parameters}

_PAST_TENSE = {
    "Create": "created",
    "Update": "updated",
    "Delete": "deleted",
    "Get": "retrieved",
    "Enable": "enabled",
    "Disable": "disabled",
    "Invite": "invited",
}

_ENTITY_LABELS = {
    "Team": "Team",
    "User": "User",
    "OkrSession": "OKR session",
    "Objective": "Objective",
    "KeyResult": "Key result",
    "KeyResultTask": "Task",
}


def _entity_id(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("id", "Id", "ID"):
            if payload.get(key):
                return str(payload[key])
    return None


def _entity_name(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("name", "title", "fullName", "email", "Name", "Title"):
            if payload.get(key):
                return str(payload[key])
    return None


def _as_list(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("items", "data", "results"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class OkrApiClient:
    """
    Thin async client for the OKR REST API

    Forwards the caller's bearer token so the API enforces its own
    authorization for every operation.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport
        ) as client:
            try:
                response = await client.request(method, f"/{path}", headers=headers, json=json, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise FunctionExecutionError(
                    code=f"HTTP_{status}",
                    message=f"OKR API returned {status} for {method} {path}",
                    details={"body": e.response.text[:500]}
                ) from e
            except httpx.HTTPError as e:
                raise FunctionExecutionError(
                    code="UPSTREAM_UNAVAILABLE",
                    message=f"OKR API request failed: {str(e)}"
                ) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text


class OkrApiFunctions:
    """
    Builds registry handlers for the OKR intent catalog

    Responsibilities:
    - Inject organizationId from the caller's context
    - Resolve missing ids by name or from the conversation's recent entities
    - Call the mapped REST route and describe the outcome
    """

    def __init__(self, client: OkrApiClient, entity_lookup: Optional[EntityLookup] = None):
        self.client = client
        self.entity_lookup = entity_lookup

    def register_all(self, registry: FunctionRegistry) -> None:
        for spec in INTENT_CATALOG + ANALYSIS_FUNCTIONS:
            registry.register(FunctionHandler(
                name=spec.name,
                description=spec.description,
                parameters=build_tool_schema(spec),
                handler=self.handler_for(spec)
            ))
        logger.info(f"Registered {len(INTENT_CATALOG) + len(ANALYSIS_FUNCTIONS)} OKR API functions")

    def handler_for(self, spec: IntentSpec):
        async def handler(params: Dict[str, str], user_context: UserContext, conversation_id: str) -> FunctionExecutionResult:
            return await self.execute(spec, params, user_context, conversation_id)
        return handler

    async def execute(
        self,
        spec: IntentSpec,
        params: Dict[str, str],
        user_context: UserContext,
        conversation_id: str
    ) -> FunctionExecutionResult:
        """
        Execute one catalog entry against the OKR API.

        Raises:
            FunctionExecutionError: Missing required values or API failure
        """
        values = dict(params)
        if user_context.organization_id and not values.get("organizationId"):
            values["organizationId"] = user_context.organization_id

        missing = [name for name in spec.required if not values.get(name)]
        if missing:
            raise FunctionExecutionError(
                code="MISSING_PARAMETER",
                message=f"Missing required parameter: {', '.join(missing)}",
                details={"missing": missing}
            )

        for id_param in self._reference_targets(spec, values):
            if not values.get(id_param):
                resolved = await self._resolve_reference(spec, id_param, values, user_context, conversation_id)
                if resolved:
                    values[id_param] = resolved

        path_values = {}
        for name in spec.path_parameters:
            if not values.get(name):
                raise FunctionExecutionError(
                    code="MISSING_PARAMETER",
                    message=f"Could not determine {name} for {spec.name}",
                    details={"missing": [name]}
                )
            path_values[name] = values[name]
        path = spec.path.format(**path_values)

        if spec.method in ("POST", "PUT"):
            payload = self._body(spec, values)
            data = await self.client.request(spec.method, path, user_context.access_token, json=payload)
        elif spec.method == "GET" and spec.operation == "Search":
            query = {k: v for k, v in values.items() if k in spec.parameters and k not in _LOOKUP_ONLY}
            data = await self.client.request("GET", path, user_context.access_token, params=query or None)
        else:
            data = await self.client.request(spec.method, path, user_context.access_token)

        return self._describe(spec, values, data)

    def _reference_targets(self, spec: IntentSpec, values: Dict[str, str]) -> List[str]:
        targets = [name for name in spec.path_parameters if name in REFERENCE_PARAMETERS]
        for name in spec.parameters:
            if name in REFERENCE_PARAMETERS and name not in targets:
                ref = REFERENCE_PARAMETERS[name]
                if any(values.get(n) for n in ref.name_parameters):
                    targets.append(name)
        return targets

    async def _resolve_reference(
        self,
        spec: IntentSpec,
        id_param: str,
        values: Dict[str, str],
        user_context: UserContext,
        conversation_id: str
    ) -> Optional[str]:
        ref = REFERENCE_PARAMETERS[id_param]
        names = [values[n] for n in ref.name_parameters if values.get(n)]
        own_entity = ref.entity_type == spec.entity_type and spec.operation != "Create"
        if own_entity:
            names += [values[n] for n in ("title", "name") if values.get(n)]

        if names:
            found = await self._find_by_name(ref, names[0], values, user_context)
            if found:
                return found

        if self.entity_lookup and conversation_id:
            recent = self.entity_lookup(conversation_id, ref.entity_type)
            if recent:
                logger.info(f"Using most recent {ref.entity_type} {recent} for {spec.name}")
                return recent
        return None

    async def _find_by_name(
        self,
        ref: ReferenceParameter,
        name: str,
        values: Dict[str, str],
        user_context: UserContext
    ) -> Optional[str]:
        if "{organizationId}" in ref.list_path and not values.get("organizationId"):
            return None
        path = ref.list_path.format(organizationId=values.get("organizationId", ""))
        data = await self.client.request("GET", path, user_context.access_token)
        wanted = name.strip().lower()
        for item in _as_list(data):
            if isinstance(item, dict):
                candidates = [str(item.get(k, "")).lower() for k in ("name", "title", "fullName", "email", "userName")]
                if wanted in candidates:
                    return _entity_id(item)
        logger.info(f"No {ref.entity_type} named '{name}' found")
        return None

    def _body(self, spec: IntentSpec, values: Dict[str, str]) -> Dict[str, Any]:
        body = {
            k: v for k, v in values.items()
            if k not in _LOOKUP_ONLY and k != "newTitle" and v not in (None, "")
        }
        if values.get("newTitle"):
            body["title"] = values["newTitle"]
        if spec.entity_type == "Team" and "name" not in body and values.get("teamName"):
            body["name"] = values["teamName"]
        if spec.name == "InviteUser" and not body.get("role"):
            body["role"] = "Collaborator"
        return body

    def _describe(self, spec: IntentSpec, values: Dict[str, str], data: Any) -> FunctionExecutionResult:
        label = _ENTITY_LABELS.get(spec.entity_type, spec.entity_type)

        if spec.operation in ("List", "Search"):
            count = len(_as_list(data))
            return FunctionExecutionResult(
                success=True,
                message=f"Found {count} {label.lower()} record(s).",
                result=data,
                entity_type=spec.entity_type,
                operation=spec.operation
            )

        own_id = None
        for name in spec.path_parameters:
            ref = REFERENCE_PARAMETERS.get(name)
            if ref and ref.entity_type == spec.entity_type:
                own_id = values.get(name)
        entity_id = _entity_id(data) or own_id
        entity_name = (
            _entity_name(data)
            or values.get("newTitle")
            or values.get("title")
            or values.get("teamName")
            or values.get("name")
            or values.get("userName")
            or values.get("email")
        )

        verb = _PAST_TENSE.get(spec.operation, spec.operation.lower())
        subject = f"{label} '{entity_name}'" if entity_name else label
        return FunctionExecutionResult(
            success=True,
            message=f"{subject} {verb} successfully.",
            result=data,
            entity_type=spec.entity_type,
            entity_id=entity_id,
            operation=spec.operation,
            entity_name=entity_name
        )


def register_okr_api_functions(
    registry: FunctionRegistry,
    client: OkrApiClient,
    entity_lookup: Optional[EntityLookup] = None
) -> OkrApiFunctions:
    """Register every catalog intent as an API-backed function"""
    functions = OkrApiFunctions(client, entity_lookup)
    functions.register_all(registry)
    return functions
