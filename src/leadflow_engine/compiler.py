"""Flow compiler — turns an ordered field list into a linear state machine.

Compiled layout for fields ``[a, b]``::

    q_a --data_collected[a]--> q_b --data_collected[b]--> __lead_capture__
        --always--> __completion__

Every compiled data-collection state is skippable when its answer is
already known, so an early utterance that fills several fields lets the
session jump over the questions it has answered.

``validate_config`` checks the structural invariants of any config,
compiled or authored, and raises :class:`FlowConfigurationError` on the
first violation.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable

from leadflow_engine.constants import (
    COMPLETION_PROMPT,
    COMPLETION_STATE_ID,
    DEFAULT_MAX_ATTEMPTS,
    LEAD_CAPTURE_PROMPT,
    LEAD_CAPTURE_STATE_ID,
    STATE_ID_PREFIX,
)
from leadflow_engine.errors import FlowConfigurationError
from leadflow_engine.models.flow import FieldDefinition
from leadflow_engine.models.machine import (
    AlwaysCondition,
    CollectField,
    ConversationState,
    DataCollectedCondition,
    StateMachineConfig,
    StateTransition,
)

logger = logging.getLogger(__name__)


def state_id_for(field: FieldDefinition) -> str:
    return f"{STATE_ID_PREFIX}{field.id}"


def compile_flow(
    fields: Iterable[FieldDefinition],
    *,
    flow_id: str = "default",
    version: int = 1,
) -> StateMachineConfig:
    """Compile ``fields`` into a ``StateMachineConfig``.

    Fields are stably sorted by ``order``.  The output has ``len(fields) + 2``
    states and the same inputs always produce an equal config.

    Raises:
        FlowConfigurationError: two fields share an ``id``.
    """
    ordered = sorted(fields, key=lambda f: f.order)

    dupes = [fid for fid, n in Counter(f.id for f in ordered).items() if n > 1]
    if dupes:
        raise FlowConfigurationError(
            f"Flow '{flow_id}' v{version} has duplicate field ids: {sorted(dupes)}"
        )

    states: list[ConversationState] = []
    for idx, field in enumerate(ordered):
        next_id = (
            state_id_for(ordered[idx + 1]) if idx + 1 < len(ordered) else LEAD_CAPTURE_STATE_ID
        )
        states.append(
            ConversationState(
                id=state_id_for(field),
                kind="data_collection",
                order=idx,
                goal=f"Collect {field.display_label}",
                collects=[
                    CollectField(
                        mapping_key=field.mapping_key,
                        label=field.display_label,
                        required=field.required,
                    )
                ],
                prompt=field.prompt,
                prompt_variants=list(field.prompt_variants),
                input_kind=field.input_kind,
                choices=list(field.choices),
                transitions=[
                    StateTransition(
                        target_state_id=next_id,
                        condition=DataCollectedCondition(mapping_keys=[field.mapping_key]),
                        priority=0,
                    )
                ],
                max_attempts=DEFAULT_MAX_ATTEMPTS,
                skip_if_already_known=True,
                linked_phase_id=field.linked_phase_id,
            )
        )

    # Synthetic terminal pair
    states.append(
        ConversationState(
            id=LEAD_CAPTURE_STATE_ID,
            kind="lead_capture",
            order=len(ordered),
            goal="Capture contact information",
            prompt=LEAD_CAPTURE_PROMPT,
            transitions=[
                StateTransition(
                    target_state_id=COMPLETION_STATE_ID,
                    condition=AlwaysCondition(),
                    priority=0,
                )
            ],
        )
    )
    states.append(
        ConversationState(
            id=COMPLETION_STATE_ID,
            kind="completion",
            order=len(ordered) + 1,
            goal="Conversation complete",
            prompt=COMPLETION_PROMPT,
        )
    )

    config = StateMachineConfig(
        id=f"{flow_id}:v{version}",
        flow_id=flow_id,
        version=version,
        initial_state_id=states[0].id,
        states=states,
        lead_capture_state_id=LEAD_CAPTURE_STATE_ID,
        completion_state_id=COMPLETION_STATE_ID,
    )
    logger.debug("Compiled flow %s: %d states", config.id, len(states))
    return config


def validate_config(config: StateMachineConfig) -> None:
    """Check structural invariants; raise on the first violation.

    - state IDs are unique
    - initial, lead-capture and completion states exist
    - the lead-capture and completion states have the matching ``kind``
    - every transition target resolves
    - terminal (``kind: completion``) states have no outgoing transitions
    - nothing transitions into the initial state
    """
    ids = [s.id for s in config.states]
    dupes = sorted(sid for sid, n in Counter(ids).items() if n > 1)
    if dupes:
        raise FlowConfigurationError(f"Config '{config.id}' has duplicate state ids: {dupes}")

    known = set(ids)
    for label, sid in (
        ("initial", config.initial_state_id),
        ("lead-capture", config.lead_capture_state_id),
        ("completion", config.completion_state_id),
    ):
        if sid not in known:
            raise FlowConfigurationError(
                f"Config '{config.id}' {label} state '{sid}' is not defined"
            )

    for label, sid, kind in (
        ("lead-capture", config.lead_capture_state_id, "lead_capture"),
        ("completion", config.completion_state_id, "completion"),
    ):
        actual = config.get_state(sid).kind
        if actual != kind:
            raise FlowConfigurationError(
                f"Config '{config.id}' {label} state '{sid}' has kind '{actual}', "
                f"expected '{kind}'"
            )

    for state in config.states:
        for t in state.transitions:
            if t.target_state_id not in known:
                raise FlowConfigurationError(
                    f"Config '{config.id}': state '{state.id}' transitions to "
                    f"unknown state '{t.target_state_id}'"
                )
            if t.target_state_id == config.initial_state_id:
                raise FlowConfigurationError(
                    f"Config '{config.id}': state '{state.id}' transitions into "
                    f"initial state '{config.initial_state_id}'"
                )

    for state in config.states:
        if state.is_terminal and state.transitions:
            raise FlowConfigurationError(
                f"Config '{config.id}': completion state '{state.id}' has outgoing transitions"
            )
