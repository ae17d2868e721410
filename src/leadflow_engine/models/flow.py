"""Flow definition models — the authored input to the flow compiler.

A flow (e.g. the buyer track) is an ordered list of ``FieldDefinition``
questions, or a pre-authored ``StateMachineConfig`` for non-linear flows.
Both forms are loaded from ``flows/definitions/*.yaml``.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, model_validator

from leadflow_engine.models.machine import Choice, StateMachineConfig


class FieldDefinition(BaseModel):
    """One question to ask.

    Either ``id`` or ``mapping_key`` must be present; the missing one
    defaults to the other so that ``{mapping_key: budget, order: 1}`` is a
    complete definition.
    """

    id: Optional[str] = None
    mapping_key: Optional[str] = None
    prompt: str = ""
    label: Optional[str] = None
    input_kind: Literal["buttons", "text"] = "text"
    choices: List[Choice] = []
    order: int = 0
    required: bool = True
    # Re-ask texts cycled after the first failed attempt
    prompt_variants: List[str] = []
    # Timeline phase this question feeds (used for advice placement)
    linked_phase_id: Optional[str] = None

    @model_validator(mode="after")
    def _default_keys(self):
        if self.id is None and self.mapping_key is None:
            raise ValueError("FieldDefinition needs an id or a mapping_key")
        if self.id is None:
            self.id = self.mapping_key
        if self.mapping_key is None:
            self.mapping_key = self.id
        return self

    @property
    def display_label(self) -> str:
        return self.label or self.mapping_key


class FlowDefinition(BaseModel):
    """A versioned flow document keyed by ``flow_id``.

    ``fields`` is compiled into the default linear machine; a
    ``state_machine`` is used as-is (after validation) for branching flows.
    """

    flow_id: str
    version: int = 1
    label: Optional[str] = None
    fields: List[FieldDefinition] = []
    state_machine: Optional[StateMachineConfig] = None
