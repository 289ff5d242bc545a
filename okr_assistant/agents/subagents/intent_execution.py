"""
Intent Execution Subagent

Executes an ordered list of intents against the domain function registry and
aggregates the outcome.

Batch semantics are best-effort: every intent runs even when an earlier one
failed. Each item is recorded as Ok(result) or Err(reason); the aggregate
succeeds only when no item failed.

Reusability: chat intent route, scripted OKR automation
"""

from typing import Dict, List, Optional
import logging

from okr_assistant.agents.skills.error_recovery import NO_OPERATIONS_MESSAGE, error_recovery_skill
from okr_assistant.functions.base import FunctionNotFoundError
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.models.intent import (
    Err,
    Intent,
    IntentExecutionResult,
    IntentItemResult,
    Ok,
)
from okr_assistant.models.user_context import UserContext

logger = logging.getLogger(__name__)


def with_context_parameters(parameters: Dict[str, str], user_context: Optional[UserContext]) -> Dict[str, str]:
    """Add caller context (organizationId) without overwriting explicit values"""
    enriched = dict(parameters)
    if user_context and user_context.organization_id and "organizationId" not in enriched:
        enriched["organizationId"] = user_context.organization_id
    return enriched


class IntentExecutionCoordinator:
    """
    Subagent for executing intent batches

    Responsibilities:
    - Inject contextual parameters into each intent
    - Invoke the matching function handler, in order
    - Record per-intent Ok/Err without short-circuiting
    - Merge parameters (last write wins) and combine messages
    """

    def __init__(self, registry: FunctionRegistry):
        self.registry = registry

    async def execute(
        self,
        conversation_id: str,
        intents: List[Intent],
        user_context: Optional[UserContext] = None
    ) -> IntentExecutionResult:
        """
        Execute intents in order.

        Args:
            conversation_id: Conversation the intents came from
            intents: Intents in analyzer order
            user_context: Caller identity

        Returns:
            IntentExecutionResult; success is False when any item failed or
            when no intent needed a function
        """
        items: List[IntentItemResult] = []
        merged: Dict[str, str] = {}

        for intent in intents:
            parameters = with_context_parameters(intent.parameters, user_context)
            merged.update(parameters)

            if intent.is_conversational:
                continue

            logger.info(
                f"Processing intent for conversation {conversation_id}: {intent.name} "
                f"with {len(parameters)} parameters"
            )
            outcome = await self._execute_one(conversation_id, intent.name, parameters, user_context)
            items.append(IntentItemResult(intent=intent.name, parameters=parameters, outcome=outcome))

        if not items:
            return IntentExecutionResult(success=False, message=NO_OPERATIONS_MESSAGE, parameters=merged)

        result = IntentExecutionResult(
            success=all(item.success for item in items),
            message="\n".join(item.message for item in items if item.message),
            items=items,
            parameters=merged
        )
        if result.failed_items:
            failed = ", ".join(item.intent for item in result.failed_items)
            logger.warning(f"Intent batch for conversation {conversation_id} had failures: {failed}")
        return result

    async def _execute_one(
        self,
        conversation_id: str,
        name: str,
        parameters: Dict[str, str],
        user_context: Optional[UserContext]
    ):
        if not self.registry.has(name):
            logger.warning(f"No function handler registered for intent {name}")
            return Err(error_recovery_skill.missing_handler_message(name))

        try:
            result = await self.registry.invoke(name, parameters, user_context, conversation_id)
        except FunctionNotFoundError:
            return Err(error_recovery_skill.missing_handler_message(name))
        except Exception as e:
            logger.error(f"Error executing intent {name} for conversation {conversation_id}: {str(e)}", exc_info=True)
            return Err(error_recovery_skill.handler_failure_message(name, e))

        if not result.success:
            return Err(f"Error processing {name}: {result.message}")
        return Ok(result)


# Factory function
def create_intent_execution_coordinator(registry: FunctionRegistry) -> IntentExecutionCoordinator:
    return IntentExecutionCoordinator(registry)
