"""Session, extraction and turn models — the contract between the engine and callers.

``SessionState`` is the full per-conversation record.  It is what the
persistence collaborator stores and what the session controller reads; the
controller never mutates an instance it was handed, it returns a new one.

``TurnOutcome`` is the pure controller result.  ``TurnResponse`` is what the
conversation service returns to API callers: the outcome plus the prompt to
show and any advice attached to the new state.

These models are decoupled from the ORM models in ``leadflow_db`` so that
API consumers never see database internals.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from leadflow_engine.models.advice import AdviceItem
from leadflow_engine.models.machine import Choice


class Extraction(BaseModel):
    """One (mapping key, value) pair pulled from a user utterance."""

    mapping_key: str
    value: str
    # Extractor's own confidence; pairs under the threshold are discarded
    confidence: float = 1.0


class ExtractionResult(BaseModel):
    """What the extraction collaborator returns for one utterance."""

    success: bool
    pairs: list[Extraction] = []


class HistoryEntry(BaseModel):
    """A state the session entered, in order.  Skipped states are flagged."""

    state_id: str
    entered_at: datetime
    skipped: bool = False


class SessionState(BaseModel):
    """The full state of one conversation."""

    session_id: str
    flow_id: str
    config_version: int
    current_state_id: str
    answers: dict[str, str] = {}
    attempt_counters: dict[str, int] = {}
    history: list[HistoryEntry] = []
    # Required keys left behind by a stall force-advance
    unanswered: list[str] = []
    status: Literal["active", "completed", "abandoned"] = "active"
    last_activity_at: datetime

    def attempts_for(self, state_id: str) -> int:
        return self.attempt_counters.get(state_id, 0)


class TurnOutcome(BaseModel):
    """Result of one controller turn.

    ``status`` is "advanced" when the session moved to a new non-terminal
    state, "stayed" when it is re-prompting (``reason`` says why), and
    "completed" when it reached the completion state.
    """

    status: Literal["advanced", "stayed", "completed"]
    previous_state_id: str
    new_state_id: str
    reason: str | None = None
    fields_collected: list[str] = []
    skipped_states: list[str] = []
    progress: int = 0


class TurnResponse(BaseModel):
    """Turn API result: the outcome plus what the UI should render next."""

    status: Literal["advanced", "stayed", "completed"]
    new_state_id: str
    prompt_to_show: str
    input_kind: Literal["buttons", "text"] = "text"
    choices: list[Choice] = []
    attached_advice: list[AdviceItem] = []
    progress: int = 0
    reason: str | None = None
    fields_collected: list[str] = []
    skipped_states: list[str] = []


class SessionInfo(BaseModel):
    """Public view of session state for API consumers.

    Maps from the ORM ``ConversationSession`` model but exposes only what
    external callers need.
    """

    client_id: str
    session_id: str
    flow_id: str
    status: str
    current_state_id: str
    progress: int = 0
    created_at: datetime
    updated_at: datetime
