"""
Workflow State Subagent

Forces a confirmation-gated, one-entity-at-a-time creation sequence when OKR
entities are proposed from an uploaded document:

    DocumentProcessed -> SessionProposed -> SessionConfirmed
    -> ObjectiveProposed -> ObjectiveConfirmed -> KeyResultProposed
    -> KeyResultConfirmed -> TaskProposed -> TaskConfirmed -> Done

Transitions are inferred from the assistant's own response. The transition
function `advance` is pure; WorkflowStateTracker owns the per-conversation
state and commits a transition only once the model call that produced the
text has returned.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple
import logging

from okr_assistant.agents.skills.workflow_cues import (
    LexicalCueDetector,
    WorkflowCueDetector,
    WorkflowCues,
    WorkflowEntity,
)
from okr_assistant.utils.logger import get_structured_logger

logger = logging.getLogger(__name__)
audit_logger = get_structured_logger("okr_assistant.workflow")

CURRENT_STEP = "CurrentStep"
DOCUMENT_ID = "DocumentId"

ENTITY_ID_KEYS = {
    WorkflowEntity.SESSION: "OkrSessionId",
    WorkflowEntity.OBJECTIVE: "ObjectiveId",
    WorkflowEntity.KEY_RESULT: "KeyResultId",
    WorkflowEntity.TASK: "TaskId",
}


class WorkflowStep(str, Enum):
    """Position in the document-to-OKR workflow"""
    DOCUMENT_PROCESSED = "DocumentProcessed"
    SESSION_PROPOSED = "SessionProposed"
    SESSION_CONFIRMED = "SessionConfirmed"
    OBJECTIVE_PROPOSED = "ObjectiveProposed"
    OBJECTIVE_CONFIRMED = "ObjectiveConfirmed"
    KEY_RESULT_PROPOSED = "KeyResultProposed"
    KEY_RESULT_CONFIRMED = "KeyResultConfirmed"
    TASK_PROPOSED = "TaskProposed"
    TASK_CONFIRMED = "TaskConfirmed"
    DONE = "Done"


PROPOSED_STEPS = {
    WorkflowEntity.SESSION: WorkflowStep.SESSION_PROPOSED,
    WorkflowEntity.OBJECTIVE: WorkflowStep.OBJECTIVE_PROPOSED,
    WorkflowEntity.KEY_RESULT: WorkflowStep.KEY_RESULT_PROPOSED,
    WorkflowEntity.TASK: WorkflowStep.TASK_PROPOSED,
}

CONFIRMED_STEPS = {
    WorkflowEntity.SESSION: WorkflowStep.SESSION_CONFIRMED,
    WorkflowEntity.OBJECTIVE: WorkflowStep.OBJECTIVE_CONFIRMED,
    WorkflowEntity.KEY_RESULT: WorkflowStep.KEY_RESULT_CONFIRMED,
    WorkflowEntity.TASK: WorkflowStep.TASK_CONFIRMED,
}

_STEP_POSITIONS: Dict[WorkflowStep, Tuple[Optional[WorkflowEntity], Optional[str]]] = {
    WorkflowStep.DOCUMENT_PROCESSED: (None, None),
    WorkflowStep.DONE: (None, None),
}
_STEP_POSITIONS.update({step: (entity, "proposed") for entity, step in PROPOSED_STEPS.items()})
_STEP_POSITIONS.update({step: (entity, "confirmed") for entity, step in CONFIRMED_STEPS.items()})


def confirmation_question(entity: WorkflowEntity) -> str:
    """Question that gates creation of a proposed entity"""
    if entity.parent_label is None:
        return (
            f"Would you like me to create this {entity.label}? "
            "Or would you like to make any adjustments first?"
        )
    return (
        f"Would you like me to create this {entity.label} for the {entity.parent_label}? "
        "Or would you like to make any adjustments?"
    )


def continuation_prompt(created: WorkflowEntity, upcoming: WorkflowEntity) -> str:
    """Text appended when a creation is reported but the next step is not raised"""
    return (
        f"Now that we've created the {created.label}, let's move on to one {upcoming.label} for it. "
        f"Shall I put forward one {upcoming.label} based on the document analysis for you to confirm or adjust?"
    )


@dataclass(frozen=True)
class Transition:
    """Result of applying one assistant response to a workflow step"""
    step: WorkflowStep
    text: str
    updates: Dict[str, str] = field(default_factory=dict)


def _creatable(step: WorkflowStep) -> Tuple[WorkflowEntity, ...]:
    entity, phase = _STEP_POSITIONS[step]
    if step == WorkflowStep.DOCUMENT_PROCESSED:
        return (WorkflowEntity.SESSION,)
    if phase == "proposed":
        return (entity,)
    if phase == "confirmed":
        upcoming = entity.next()
        return (entity, upcoming) if upcoming else (entity,)
    return ()


def _proposal_target(step: WorkflowStep) -> Optional[WorkflowEntity]:
    entity, phase = _STEP_POSITIONS[step]
    if step == WorkflowStep.DOCUMENT_PROCESSED:
        return WorkflowEntity.SESSION
    if phase == "proposed":
        return entity
    if phase == "confirmed":
        return entity.next()
    return None


def _append(text: str, addition: str) -> str:
    return f"{text.rstrip()}\n\n{addition}"


def advance(step: WorkflowStep, text: str, cues: WorkflowCues) -> Transition:
    """
    Pure transition function.

    Args:
        step: Current workflow step
        text: Assistant response for this turn
        cues: Cues detected in that response

    Returns:
        Transition with the next step, the (possibly rewritten) response and
        the state fields to record
    """
    if step == WorkflowStep.DONE:
        return Transition(step=step, text=text)

    creatable = _creatable(step)
    created = [entity for entity in WorkflowEntity if entity in cues.created and entity in creatable]
    if created:
        entity = created[-1]
        updates = {}
        if entity in cues.entity_ids:
            updates[ENTITY_ID_KEYS[entity]] = cues.entity_ids[entity]

        upcoming = entity.next()
        if upcoming is None:
            return Transition(step=WorkflowStep.DONE, text=text, updates=updates)

        if upcoming in cues.confirmation_requested:
            return Transition(step=PROPOSED_STEPS[upcoming], text=text, updates=updates)
        if upcoming in cues.proposed:
            return Transition(
                step=PROPOSED_STEPS[upcoming],
                text=_append(text, confirmation_question(upcoming)),
                updates=updates
            )
        return Transition(
            step=CONFIRMED_STEPS[entity],
            text=_append(text, continuation_prompt(entity, upcoming)),
            updates=updates
        )

    target = _proposal_target(step)
    if target is not None and target in cues.proposed:
        if target in cues.confirmation_requested:
            return Transition(step=PROPOSED_STEPS[target], text=text)
        return Transition(
            step=PROPOSED_STEPS[target],
            text=_append(text, confirmation_question(target))
        )

    return Transition(step=step, text=text)


@dataclass
class WorkflowState:
    """Per-conversation workflow fields plus the epoch of the last reset"""
    epoch: int = 0
    fields: Dict[str, str] = field(default_factory=dict)


class WorkflowStateTracker:
    """
    Owner of per-conversation workflow state

    Responsibilities:
    - Reset state when a document is uploaded or a conversation is reset
    - Record individual fields (DocumentId, entity ids, CurrentStep)
    - Apply assistant responses to the state machine and rewrite them
    """

    def __init__(self, detector: Optional[WorkflowCueDetector] = None):
        self.detector = detector or LexicalCueDetector()
        self._states: Dict[str, WorkflowState] = {}

    def reset_workflow_state(self, conversation_id: str) -> None:
        """Start a fresh state map under a new epoch"""
        previous = self._states.get(conversation_id)
        epoch = previous.epoch + 1 if previous else 1
        self._states[conversation_id] = WorkflowState(epoch=epoch)
        logger.info(f"Workflow state reset for conversation {conversation_id} (epoch {epoch})")

    def clear(self, conversation_id: str) -> None:
        """Forget a conversation's workflow entirely"""
        self._states.pop(conversation_id, None)

    def track_workflow_state(self, conversation_id: str, key: str, value: str) -> None:
        if not conversation_id:
            return
        state = self._states.setdefault(conversation_id, WorkflowState(epoch=1))
        state.fields[key] = value

    def get_workflow_state(self, conversation_id: str, key: str, default: Optional[str] = None) -> Optional[str]:
        state = self._states.get(conversation_id)
        if state is None:
            return default
        return state.fields.get(key, default)

    def current_step(self, conversation_id: str) -> WorkflowStep:
        value = self.get_workflow_state(conversation_id, CURRENT_STEP)
        try:
            return WorkflowStep(value) if value else WorkflowStep.DOCUMENT_PROCESSED
        except ValueError:
            logger.warning(f"Unknown workflow step '{value}' for conversation {conversation_id}")
            return WorkflowStep.DOCUMENT_PROCESSED

    def epoch(self, conversation_id: str) -> int:
        state = self._states.get(conversation_id)
        return state.epoch if state else 0

    def is_active(self, conversation_id: str) -> bool:
        """True while a document-driven workflow is in progress"""
        if self.get_workflow_state(conversation_id, DOCUMENT_ID) is None:
            return False
        return self.current_step(conversation_id) != WorkflowStep.DONE

    def plan(self, conversation_id: str, response_text: str) -> Tuple[Transition, int]:
        """Compute the transition for a response without recording it"""
        step = self.current_step(conversation_id)
        cues = self.detector.detect(response_text)
        return advance(step, response_text, cues), self.epoch(conversation_id)

    def commit(self, conversation_id: str, transition: Transition, epoch: int) -> bool:
        """Record a planned transition unless the state was reset since planning"""
        if self.epoch(conversation_id) != epoch:
            logger.warning(f"Discarding stale workflow transition for conversation {conversation_id}")
            return False

        previous = self.current_step(conversation_id)
        for key, value in transition.updates.items():
            self.track_workflow_state(conversation_id, key, value)
        self.track_workflow_state(conversation_id, CURRENT_STEP, transition.step.value)

        if previous != transition.step:
            audit_logger.info(
                "workflow_transition",
                conversation_id=conversation_id,
                from_step=previous.value,
                to_step=transition.step.value,
                updates=transition.updates
            )
        return True

    def ensure_workflow_continuation(self, response_text: str, conversation_id: str) -> str:
        """
        Advance the workflow from a model response and return the text to show

        Args:
            response_text: Raw assistant response
            conversation_id: Conversation the response belongs to

        Returns:
            The response, with a continuation or confirmation prompt appended
            when the model did not raise the next step itself
        """
        if not conversation_id:
            return response_text
        transition, epoch = self.plan(conversation_id, response_text)
        self.commit(conversation_id, transition, epoch)
        return transition.text
