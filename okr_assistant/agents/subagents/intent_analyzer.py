"""
Intent Analyzer Subagent

Turns one user utterance into an ordered list of structured intents by asking
an LLM for multi-intent JSON. Owns no state.

When the model is unavailable or its output cannot be read as intents, the
analyzer degrades to a single GeneralConversation intent carrying the raw
utterance instead of failing the request.

Reusability: any entry point that needs intent extraction
"""

from typing import Any, Dict, List, Optional
import json
import logging

from okr_assistant.agents.skills.intent_catalog import build_intent_detection_prompt
from okr_assistant.agents.skills.json_recovery import parse_json_object
from okr_assistant.models.intent import Intent
from okr_assistant.models.message import EntityReference, Message
from okr_assistant.providers.base import ChatProvider, Provider, ProviderError

logger = logging.getLogger(__name__)

FALLBACK_INTENT = "GeneralConversation"


def stringify_parameter(value: Any) -> Optional[str]:
    """Intent parameters are strings; structured values are kept as JSON"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def _to_intent(item: Any) -> Optional[Intent]:
    if not isinstance(item, dict):
        return None
    name = item.get("intent") or item.get("Intent")
    if not isinstance(name, str) or not name.strip():
        return None
    raw_parameters = item.get("parameters") or item.get("Parameters") or {}
    parameters: Dict[str, str] = {}
    if isinstance(raw_parameters, dict):
        for key, value in raw_parameters.items():
            text = stringify_parameter(value)
            if text is not None:
                parameters[str(key)] = text
    return Intent(name=name.strip(), parameters=parameters)


def parse_intents(response_text: str) -> Optional[List[Intent]]:
    """
    Read intents from model output.

    Accepts {"intents": [...]} and the single {"intent", "parameters"} shape.

    Returns:
        Intents in the order the model listed them, or None when the output
        holds no usable intent
    """
    parsed = parse_json_object(response_text or "")
    if parsed is None:
        return None

    items = parsed.get("intents", parsed.get("Intents"))
    if isinstance(items, list):
        intents = [intent for intent in (_to_intent(item) for item in items) if intent is not None]
        return intents or None

    single = _to_intent(parsed)
    return [single] if single else None


def format_recent_context(references: List[EntityReference]) -> str:
    """RECENT CONTEXT block listing the latest entity of each type"""
    if not references:
        return ""
    lines = ["", "RECENT CONTEXT:"]
    for reference in references:
        lines.append(f"Most recent {reference.entity_type}: ID={reference.entity_id}")
        if reference.name:
            lines.append(f"{reference.entity_type} Name: {reference.name}")
        if reference.operation:
            lines.append(f"Operation: {reference.operation}")
    return "\n".join(lines)


class IntentAnalyzer:
    """
    Subagent for multi-intent detection

    Responsibilities:
    - Build the intent-detection prompt (condensed for Cohere)
    - Add the conversation's recent entities so references resolve
    - Parse and repair the model's JSON
    - Degrade to a conversational intent on any failure
    """

    def __init__(self, entity_references=None):
        # Callable[[conversation_id], List[EntityReference]]
        self.entity_references = entity_references

    def build_system_prompt(self, conversation_id: str, provider: Provider) -> str:
        prompt = build_intent_detection_prompt(condensed=provider == Provider.COHERE)
        if self.entity_references and conversation_id:
            prompt += format_recent_context(self.entity_references(conversation_id))
        return prompt

    async def analyze(self, conversation_id: str, utterance: str, provider: ChatProvider) -> List[Intent]:
        """
        Detect the intents in one utterance.

        Args:
            conversation_id: Conversation the utterance belongs to
            utterance: Raw user text
            provider: Backend used for the detection call

        Returns:
            One or more intents, in execution order
        """
        fallback = [Intent(name=FALLBACK_INTENT, parameters={"message": utterance})]
        system_prompt = self.build_system_prompt(conversation_id, provider.provider)

        try:
            response = await provider.complete_chat(
                system_prompt,
                [Message.user(utterance)],
                conversation_id=conversation_id
            )
        except ProviderError as e:
            logger.warning(
                f"Intent analysis unavailable for conversation {conversation_id}, "
                f"defaulting to general conversation: {str(e)}"
            )
            return fallback

        logger.info(f"Intent analysis response for conversation {conversation_id}: {response}")
        intents = parse_intents(response)
        if not intents:
            logger.warning(
                f"Failed to parse intents for conversation {conversation_id}. Defaulting to general conversation."
            )
            return fallback

        logger.info(f"Detected {len(intents)} intents for conversation {conversation_id}")
        return intents
