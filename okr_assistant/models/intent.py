"""
Intent Models

Structured intents derived from user utterances and the typed outcomes of
executing them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

# Intents answered conversationally, never dispatched to a function handler
CONVERSATIONAL_INTENTS = frozenset({"General", "GeneralConversation"})


@dataclass
class Intent:
    """A named domain operation plus its string parameters"""
    name: str
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def is_conversational(self) -> bool:
        return self.name in CONVERSATIONAL_INTENTS


@dataclass
class FunctionExecutionResult:
    """Outcome reported by a domain function handler"""
    success: bool
    message: str = ""
    result: Any = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    operation: Optional[str] = None
    entity_name: Optional[str] = None


@dataclass(frozen=True)
class Ok:
    value: FunctionExecutionResult

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str

    @property
    def succeeded(self) -> bool:
        return False


Outcome = Union[Ok, Err]


@dataclass
class IntentItemResult:
    """Per-intent entry of a batch execution"""
    intent: str
    parameters: Dict[str, str]
    outcome: Outcome

    @property
    def success(self) -> bool:
        return self.outcome.succeeded

    @property
    def message(self) -> str:
        if isinstance(self.outcome, Ok):
            return self.outcome.value.message
        return self.outcome.reason

    @property
    def result(self) -> Any:
        return self.outcome.value.result if isinstance(self.outcome, Ok) else None

    @property
    def entity_type(self) -> Optional[str]:
        return self.outcome.value.entity_type if isinstance(self.outcome, Ok) else None

    @property
    def entity_id(self) -> Optional[str]:
        return self.outcome.value.entity_id if isinstance(self.outcome, Ok) else None

    @property
    def operation(self) -> Optional[str]:
        return self.outcome.value.operation if isinstance(self.outcome, Ok) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "success": self.success,
            "data": self.result,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation": self.operation,
            "message": self.message,
        }


@dataclass
class IntentExecutionResult:
    """Aggregate outcome of an ordered intent batch"""
    success: bool
    message: str
    items: List[IntentItemResult] = field(default_factory=list)
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_items(self) -> List[IntentItemResult]:
        return [item for item in self.items if not item.success]

    def results_data(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.items]
