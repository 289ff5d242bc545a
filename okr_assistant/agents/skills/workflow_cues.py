"""
Workflow Cue Detection Skill

Reads an assistant response and reports which OKR entities it proposes,
asks confirmation for, or reports as created, plus any entity ids it quotes.

The detector is lexical. It is isolated behind WorkflowCueDetector so the
state machine can later consume structured model output instead.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Protocol
import re


class WorkflowEntity(str, Enum):
    """OKR entities created by the document workflow, in creation order"""
    SESSION = "session"
    OBJECTIVE = "objective"
    KEY_RESULT = "key_result"
    TASK = "task"

    @property
    def label(self) -> str:
        return ENTITY_LABELS[self]

    @property
    def parent_label(self) -> Optional[str]:
        return PARENT_LABELS.get(self)

    def next(self) -> Optional["WorkflowEntity"]:
        order = list(WorkflowEntity)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


ENTITY_LABELS = {
    WorkflowEntity.SESSION: "OKR session",
    WorkflowEntity.OBJECTIVE: "objective",
    WorkflowEntity.KEY_RESULT: "key result",
    WorkflowEntity.TASK: "task",
}

PARENT_LABELS = {
    WorkflowEntity.OBJECTIVE: "OKR session",
    WorkflowEntity.KEY_RESULT: "objective",
    WorkflowEntity.TASK: "key result",
}

_ENTITY_PATTERNS = {
    WorkflowEntity.SESSION: r"okr\s+session",
    WorkflowEntity.OBJECTIVE: r"objective",
    WorkflowEntity.KEY_RESULT: r"key\s+result",
    # "task" must not match inside "key result task" ids or words like "multitask"
    WorkflowEntity.TASK: r"\btask",
}

_ID_PATTERNS = {
    WorkflowEntity.SESSION: r"session(?:\s+with)?\s+ID:?\s*['\"]?([0-9a-fA-F-]{8,})['\"]?",
    WorkflowEntity.OBJECTIVE: r"objective(?:\s+with)?\s+ID:?\s*['\"]?([0-9a-fA-F-]{8,})['\"]?",
    WorkflowEntity.KEY_RESULT: r"key result(?:\s+with)?\s+ID:?\s*['\"]?([0-9a-fA-F-]{8,})['\"]?",
    WorkflowEntity.TASK: r"task(?:\s+with)?\s+ID:?\s*['\"]?([0-9a-fA-F-]{8,})['\"]?",
}

_CREATED_PHRASE = r"(?:created\s+successfully|has\s+been\s+created|have\s+been\s+created|successfully\s+created|was\s+created|is\s+now\s+created)"
_PROPOSAL_PHRASE = r"(?:suggest|propose|proposed|proposal|recommend|recommended|here\s+is|here's)"


@dataclass(frozen=True)
class WorkflowCues:
    """What a single response says about each workflow entity"""
    created: FrozenSet[WorkflowEntity] = frozenset()
    proposed: FrozenSet[WorkflowEntity] = frozenset()
    confirmation_requested: FrozenSet[WorkflowEntity] = frozenset()
    entity_ids: Dict[WorkflowEntity, str] = field(default_factory=dict)


class WorkflowCueDetector(Protocol):
    """Extracts workflow cues from assistant text"""

    def detect(self, text: str) -> WorkflowCues:
        ...


class LexicalCueDetector:
    """Keyword and proximity heuristics over the model's own wording"""

    def __init__(self, window: int = 80):
        self.window = window

    def detect(self, text: str) -> WorkflowCues:
        created = set()
        proposed = set()
        confirmation = set()
        entity_ids: Dict[WorkflowEntity, str] = {}

        for entity, pattern in _ENTITY_PATTERNS.items():
            if self._created(text, pattern):
                created.add(entity)
            if self._asks_confirmation(text, pattern):
                confirmation.add(entity)
                proposed.add(entity)
            elif self._proposes(text, pattern):
                proposed.add(entity)

            id_match = re.search(_ID_PATTERNS[entity], text, re.IGNORECASE)
            if id_match:
                entity_ids[entity] = id_match.group(1)

        return WorkflowCues(
            created=frozenset(created),
            proposed=frozenset(proposed),
            confirmation_requested=frozenset(confirmation),
            entity_ids=entity_ids
        )

    def _created(self, text: str, entity_pattern: str) -> bool:
        forward = rf"{entity_pattern}[^.\n]{{0,{self.window}}}?{_CREATED_PHRASE}"
        backward = rf"{_CREATED_PHRASE}\s+(?:the\s+|an?\s+|your\s+|new\s+)*{entity_pattern}"
        return bool(
            re.search(forward, text, re.IGNORECASE) or re.search(backward, text, re.IGNORECASE)
        )

    def _asks_confirmation(self, text: str, entity_pattern: str) -> bool:
        pattern = rf"would\s+you\s+like\s+me\s+to\s+(?:create|add)\s+(?:this|the|these)\s+(?:new\s+)?{entity_pattern}"
        return bool(re.search(pattern, text, re.IGNORECASE))

    def _proposes(self, text: str, entity_pattern: str) -> bool:
        pattern = rf"{_PROPOSAL_PHRASE}[^.\n]{{0,40}}?{entity_pattern}"
        return bool(re.search(pattern, text, re.IGNORECASE))
