"""State machine models — compiled (or authored) conversation graphs.

A ``StateMachineConfig`` is a set of ``ConversationState`` nodes joined by
prioritised ``StateTransition`` edges.  Each transition carries a tagged
condition:

  - always: unconditional
  - data_collected: every listed mapping key is present and non-empty
  - any_data_collected: at least one listed mapping key is present
  - rule_match: a rule group evaluates to matched
  - attempts_exceeded: the state's attempt counter is above ``attempts``
    (the stall fallback)

The discriminated ``TransitionCondition`` union uses ``type`` as its
discriminator so Pydantic can deserialise YAML dicts directly into the
correct class.

Configs are produced once and treated as immutable afterwards; they are
shared across concurrent sessions.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr

from leadflow_engine.constants import COMPLETION_STATE_ID, DEFAULT_MAX_ATTEMPTS
from leadflow_engine.models.rules import RuleGroup


class Choice(BaseModel):
    """A button the UI can render for a choice question."""

    id: str
    label: str
    value: str


class CollectField(BaseModel):
    """One piece of data a state is responsible for collecting."""

    mapping_key: str
    label: str
    required: bool = True
    # Passed to the extraction collaborator as a description of the value
    extraction_hint: Optional[str] = None


# --- Transition conditions ---

class AlwaysCondition(BaseModel):
    type: Literal["always"] = "always"


class DataCollectedCondition(BaseModel):
    type: Literal["data_collected"] = "data_collected"
    mapping_keys: List[str]


class AnyDataCollectedCondition(BaseModel):
    type: Literal["any_data_collected"] = "any_data_collected"
    mapping_keys: List[str]


class RuleMatchCondition(BaseModel):
    type: Literal["rule_match"] = "rule_match"
    rule_group: RuleGroup


class AttemptsExceededCondition(BaseModel):
    """True once the state has failed more than ``attempts`` times.

    ``attempts`` defaults to the owning state's ``max_attempts``.
    """

    type: Literal["attempts_exceeded"] = "attempts_exceeded"
    attempts: Optional[int] = None


TransitionCondition = Annotated[
    Union[
        AlwaysCondition,
        DataCollectedCondition,
        AnyDataCollectedCondition,
        RuleMatchCondition,
        AttemptsExceededCondition,
    ],
    Field(discriminator="type"),
]


class StateTransition(BaseModel):
    """Edge to ``target_state_id``; lower ``priority`` is evaluated first."""

    target_state_id: str
    condition: TransitionCondition
    priority: int = 0


# --- States ---

class ConversationState(BaseModel):
    """A node in the conversation graph."""

    id: str
    kind: Literal["data_collection", "lead_capture", "completion"] = "data_collection"
    order: int = 0
    goal: Optional[str] = None
    collects: List[CollectField] = []
    prompt: str = ""
    prompt_variants: List[str] = []
    input_kind: Literal["buttons", "text"] = "text"
    choices: List[Choice] = []
    transitions: List[StateTransition] = []
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    skip_if_already_known: bool = False
    linked_phase_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind == "completion"

    @property
    def required_keys(self) -> List[str]:
        return [c.mapping_key for c in self.collects if c.required]


class StateMachineConfig(BaseModel):
    """A flow's full state set plus metadata.

    ``get_state`` is backed by an index built lazily on first lookup.
    """

    id: str
    flow_id: str
    version: int = 1
    initial_state_id: str
    states: List[ConversationState]
    lead_capture_state_id: str
    completion_state_id: str = COMPLETION_STATE_ID

    _index: dict[str, ConversationState] | None = PrivateAttr(default=None)

    def get_state(self, state_id: str) -> ConversationState | None:
        """Return the state with ``state_id``, or None if absent."""
        if self._index is None:
            self._index = {s.id: s for s in self.states}
        return self._index.get(state_id)

    def collectable_fields(self) -> List[CollectField]:
        """Unique collect descriptors across all states, first occurrence wins.

        This is the mapping-key vocabulary handed to the extraction
        collaborator so one utterance can fill fields of future states.
        """
        seen: set[str] = set()
        fields: List[CollectField] = []
        for state in self.states:
            for field in state.collects:
                if field.mapping_key not in seen:
                    seen.add(field.mapping_key)
                    fields.append(field)
        return fields

    def required_data_keys(self) -> set[str]:
        """Required mapping keys across data_collection states."""
        return {
            key
            for state in self.states
            if state.kind == "data_collection"
            for key in state.required_keys
        }
