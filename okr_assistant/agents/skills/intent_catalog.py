"""
Intent Catalog Skill

Declarative list of the OKR intents the assistant understands: what each one
means, which parameters the analyzer should extract, and which OKR API route
executes it. The catalog renders the intent-detection system prompt and the
function-calling tool schemas from the same source.

Reusability: intent analysis, function registration, function calling
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class IntentSpec:
    """One OKR intent and the API route that executes it"""
    name: str
    entity_type: str
    operation: str
    description: str
    method: str
    path: str
    parameters: Tuple[str, ...] = ()
    required: Tuple[str, ...] = ()

    @property
    def path_parameters(self) -> List[str]:
        """Names of `{placeholders}` in the route"""
        names = []
        remainder = self.path
        while "{" in remainder:
            start = remainder.index("{")
            end = remainder.index("}", start)
            names.append(remainder[start + 1:end])
            remainder = remainder[end + 1:]
        return names


def _intent(name, entity_type, operation, description, method, path, parameters=(), required=()):
    return IntentSpec(
        name=name,
        entity_type=entity_type,
        operation=operation,
        description=description,
        method=method,
        path=path,
        parameters=tuple(parameters),
        required=tuple(required)
    )


INTENT_CATALOG: List[IntentSpec] = [
    # Teams
    _intent("CreateTeam", "Team", "Create",
            "Create a new team. Extract 'teamName' and optional 'description'.",
            "POST", "api/teams", ("teamName", "description", "teamManagerId"), ("teamName",)),
    _intent("UpdateTeam", "Team", "Update",
            "Update a team. Extract 'name' if the team is mentioned by name, 'teamId' only if given as a UUID. "
            "For the manager extract 'teamManagerName' or 'teamManagerId'.",
            "PUT", "api/teams/{teamId}", ("teamId", "name", "description", "teamManagerId", "teamManagerName")),
    _intent("DeleteTeam", "Team", "Delete",
            "Delete a team. Extract 'teamId' if given, or 'teamName' if mentioned by name.",
            "DELETE", "api/teams/{teamId}", ("teamId", "teamName")),
    _intent("SearchTeams", "Team", "Search",
            "List teams whose names match a criterion. Extract 'query'.",
            "GET", "api/teams", ("query",)),
    _intent("GetTeamsByManagerId", "Team", "List",
            "Find teams managed by someone. Extract 'managerId'.",
            "GET", "api/teams/manager/{managerId}", ("managerId",), ("managerId",)),
    _intent("GetTeamsByOrganizationId", "Team", "List",
            "List all teams in the organization.",
            "GET", "api/teams/organization/{organizationId}"),
    # Users
    _intent("SearchUsers", "User", "Search",
            "Search users by name. Extract 'query'.",
            "GET", "api/users", ("query",)),
    _intent("GetTeamManagers", "User", "List",
            "List all team managers.",
            "GET", "api/users/organization/{organizationId}/teammanagers"),
    _intent("InviteUser", "User", "Invite",
            "Invite a user to the organization. Extract 'email', optional 'role' (default 'Collaborator') "
            "and 'teamId' or 'teamName'.",
            "POST", "api/users/invite", ("email", "role", "teamId", "teamName"), ("email",)),
    _intent("GetUsersByOrganizationId", "User", "List",
            "List all users in the organization.",
            "GET", "api/users/organization/{organizationId}"),
    _intent("EnableUser", "User", "Enable",
            "Enable a disabled user account. Extract 'userName' if mentioned by name.",
            "PUT", "api/users/{userId}/enable", ("userId", "userName")),
    _intent("DisableUser", "User", "Disable",
            "Disable a user account. Extract 'userName' if mentioned by name.",
            "PUT", "api/users/{userId}/disable", ("userId", "userName")),
    _intent("UpdateUser", "User", "Update",
            "Update user profile information. Extract 'userName' for the user and any of 'firstName', "
            "'lastName', 'email', 'position'.",
            "PUT", "api/users/{userId}", ("userId", "userName", "firstName", "lastName", "email", "position")),
    # OKR sessions
    _intent("CreateOkrSession", "OkrSession", "Create",
            "Create an OKR session. Extract 'title', 'startDate', 'endDate', 'teamManagerId'/'teamManagerName', "
            "optional 'description', 'teamIds', 'color', 'status' (only: NotStarted, InProgress, Completed, Overdue).",
            "POST", "api/okrsessions",
            ("title", "startDate", "endDate", "teamManagerId", "teamManagerName", "description", "teamIds", "color", "status"),
            ("title",)),
    _intent("UpdateOkrSession", "OkrSession", "Update",
            "Update an OKR session. Extract the ORIGINAL 'title' if mentioned; set 'okrSessionId' only if given as a UUID. "
            "Use 'newTitle' when renaming.",
            "PUT", "api/okrsessions/{okrSessionId}",
            ("okrSessionId", "title", "newTitle", "description", "startDate", "endDate", "teamManagerId", "color", "status")),
    _intent("DeleteOkrSession", "OkrSession", "Delete",
            "Delete an OKR session. Extract 'okrSessionId' or 'title'.",
            "DELETE", "api/okrsessions/{okrSessionId}", ("okrSessionId", "title")),
    _intent("GetOkrSessionInfo", "OkrSession", "Get",
            "Get OKR session info. Extract 'okrSessionId' or 'title'.",
            "GET", "api/okrsessions/{okrSessionId}", ("okrSessionId", "title")),
    _intent("SearchOkrSessions", "OkrSession", "Search",
            "Search OKR sessions. Extract 'title', optional 'userId'.",
            "GET", "api/okrsessions", ("title", "userId")),
    _intent("GetAllOkrSessions", "OkrSession", "List",
            "List all OKR sessions.",
            "GET", "api/okrsessions/organization/{organizationId}"),
    _intent("GetOkrSessionsByTeam", "OkrSession", "List",
            "Get OKR sessions for a team. Extract 'teamId'/'teamName'.",
            "GET", "api/okrsessions/by-teamId/{teamId}", ("teamId", "teamName")),
    # Objectives
    _intent("CreateObjective", "Objective", "Create",
            "Create an objective. Extract 'title', 'okrSessionId'/'okrSessionTitle', optional dates, "
            "'responsibleTeamId'/'responsibleTeamName', 'description', 'status', 'priority'.",
            "POST", "api/objectives",
            ("title", "okrSessionId", "okrSessionTitle", "startDate", "endDate", "responsibleTeamId",
             "responsibleTeamName", "description", "status", "priority"),
            ("title",)),
    _intent("UpdateObjective", "Objective", "Update",
            "Update an objective. Extract 'title' if mentioned, 'objectiveId' only if a UUID, and updated fields "
            "such as 'newTitle', 'description'.",
            "PUT", "api/objectives/{objectiveId}",
            ("objectiveId", "title", "newTitle", "description", "startDate", "endDate", "status", "priority", "progress")),
    _intent("DeleteObjective", "Objective", "Delete",
            "Delete an objective. Extract 'objectiveId' or 'title'.",
            "DELETE", "api/objectives/{objectiveId}", ("objectiveId", "title")),
    _intent("GetObjectiveInfo", "Objective", "Get",
            "Get objective info. Extract 'objectiveId'/'title'.",
            "GET", "api/objectives/{objectiveId}", ("objectiveId", "title")),
    _intent("SearchObjectives", "Objective", "Search",
            "Search objectives. Extract 'title', 'okrSessionId'/'okrSessionTitle', optional 'userId'.",
            "GET", "api/objectives", ("title", "okrSessionId", "okrSessionTitle", "userId")),
    _intent("GetAllObjectives", "Objective", "List",
            "List all objectives.",
            "GET", "api/objectives"),
    _intent("GetObjectivesBySession", "Objective", "List",
            "Get objectives for an OKR session. Extract 'okrSessionId'/'okrSessionTitle'.",
            "GET", "api/objectives/session/{okrSessionId}", ("okrSessionId", "okrSessionTitle")),
    # Key results
    _intent("CreateKeyResult", "KeyResult", "Create",
            "Create a key result. Extract 'title', 'objectiveId'/'objectiveTitle', optional dates, status, progress.",
            "POST", "api/keyresults",
            ("title", "objectiveId", "objectiveTitle", "startDate", "endDate", "description", "status", "progress"),
            ("title",)),
    _intent("UpdateKeyResult", "KeyResult", "Update",
            "Update a key result. Extract 'title' if mentioned, 'keyResultId' only if a UUID, and updated fields.",
            "PUT", "api/keyresults/{keyResultId}",
            ("keyResultId", "title", "newTitle", "description", "startDate", "endDate", "status", "progress")),
    _intent("DeleteKeyResult", "KeyResult", "Delete",
            "Delete a key result. Extract 'keyResultId'/'title'.",
            "DELETE", "api/keyresults/{keyResultId}", ("keyResultId", "title")),
    _intent("GetKeyResultInfo", "KeyResult", "Get",
            "Get key result info. Extract 'keyResultId'/'title'.",
            "GET", "api/keyresults/{keyResultId}", ("keyResultId", "title")),
    _intent("SearchKeyResults", "KeyResult", "Search",
            "Search key results. Extract 'title', 'objectiveId'/'objectiveTitle', optional 'userId'.",
            "GET", "api/keyresults", ("title", "objectiveId", "objectiveTitle", "userId")),
    _intent("GetAllKeyResults", "KeyResult", "List",
            "List all key results.",
            "GET", "api/keyresults"),
    _intent("GetKeyResultsByObjective", "KeyResult", "List",
            "Get key results for an objective. Extract 'objectiveId'/'objectiveTitle'.",
            "GET", "api/keyresults/objective/{objectiveId}", ("objectiveId", "objectiveTitle")),
    # Key result tasks
    _intent("CreateKeyResultTask", "KeyResultTask", "Create",
            "Create a task. Extract 'title', 'keyResultId'/'keyResultTitle', optional 'description', dates, "
            "'collaboratorId'/'collaboratorName', progress, priority.",
            "POST", "api/keyresulttasks",
            ("title", "keyResultId", "keyResultTitle", "description", "startDate", "endDate", "collaboratorId",
             "collaboratorName", "progress", "priority"),
            ("title",)),
    _intent("UpdateKeyResultTask", "KeyResultTask", "Update",
            "Update a task. Extract 'taskId'/'title'. For the collaborator extract 'collaboratorName' or 'collaboratorId'.",
            "PUT", "api/keyresulttasks/{taskId}",
            ("taskId", "title", "newTitle", "description", "startDate", "endDate", "collaboratorId",
             "collaboratorName", "progress", "priority")),
    _intent("DeleteKeyResultTask", "KeyResultTask", "Delete",
            "Delete a task. Extract 'taskId'/'title'.",
            "DELETE", "api/keyresulttasks/{taskId}", ("taskId", "title")),
    _intent("GetKeyResultTaskInfo", "KeyResultTask", "Get",
            "Get task info. Extract 'taskId'/'title'.",
            "GET", "api/keyresulttasks/{taskId}", ("taskId", "title")),
    _intent("SearchKeyResultTasks", "KeyResultTask", "Search",
            "Search tasks. Extract 'title', 'keyResultId'/'keyResultTitle', optional 'userId'.",
            "GET", "api/keyresulttasks", ("title", "keyResultId", "keyResultTitle", "userId")),
    _intent("GetAllKeyResultTasks", "KeyResultTask", "List",
            "List all tasks.",
            "GET", "api/keyresulttasks"),
    _intent("GetKeyResultTasksByKeyResult", "KeyResultTask", "List",
            "Get tasks for a key result. Extract 'keyResultId'/'keyResultTitle'.",
            "GET", "api/keyresulttasks/keyresult/{keyResultId}", ("keyResultId", "keyResultTitle")),
]

# Data sources for the risk analysis report; exposed to function calling only
ANALYSIS_FUNCTIONS: List[IntentSpec] = [
    _intent("GetOngoingOKRTasks", "KeyResultTask", "List",
            "Retrieve all OKR tasks with status, dates, assignee and parent key result.",
            "GET", "api/keyresulttasks"),
    _intent("GetTeamsWithCollaborators", "Team", "List",
            "Retrieve the organization's teams with their collaborators.",
            "GET", "api/teams/organization/{organizationId}"),
]

GENERAL_INTENT_LINE = "General: General conversation or request not matching the above intents."

_ENTITY_REFERENCE_RULES = [
    "- Use IDs from RECENT CONTEXT section for entity references",
    "- For team/session/objective/key result/task updates, extract name/title if mentioned",
    "- Only extract IDs (teamId, okrSessionId, etc.) if they are actual UUIDs",
    "- If user mentions an entity by name and it appears in RECENT CONTEXT with an ID, use that ID",
    "- If no ID found, use name/title parameter for identification",
]

_DETAILED_RULES = [
    "- All parameter values must be strings",
    "- Keep intents in the order the user asked for them",
    "- Don't extract fields the user did not mention",
]


def get_intent_spec(name: str) -> Optional[IntentSpec]:
    for spec in INTENT_CATALOG + ANALYSIS_FUNCTIONS:
        if spec.name == name:
            return spec
    return None


def build_intent_detection_prompt(condensed: bool = True) -> str:
    """
    Render the intent-detection system prompt.

    Args:
        condensed: Omit the detailed extraction rules (for providers with
            tight prompt limits such as Cohere)

    Returns:
        System prompt instructing the model to emit multi-intent JSON
    """
    lines = [
        "You are an AI assistant that helps identify user intents from natural language.",
        "Based on the user's message, determine WHICH OF THE FOLLOWING INTENTS it matches. "
        "A single message may contain MULTIPLE INTENTS:",
        "",
    ]
    lines.extend(f"{spec.name}: {spec.description}" for spec in INTENT_CATALOG)
    lines.append(GENERAL_INTENT_LINE)
    lines.append("")
    lines.append("IMPORTANT INSTRUCTIONS:")
    lines.extend(_ENTITY_REFERENCE_RULES)
    if not condensed:
        lines.extend(_DETAILED_RULES)
    lines.append("")
    lines.append("JSON FORMAT: Return ONLY JSON in this format:")
    lines.append('{"intents": [{"intent": "IntentName", "parameters": {"param1": "value1"}}]}')
    return "\n".join(lines)


def build_tool_schema(spec: IntentSpec) -> Dict[str, object]:
    """JSON schema describing an intent as a callable function"""
    # organizationId is injected from the caller's context
    properties = {
        name: {"type": "string"}
        for name in spec.parameters
        if name != "organizationId"
    }
    return {
        "type": "object",
        "properties": properties,
        "required": list(spec.required),
    }
