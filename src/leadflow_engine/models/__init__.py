"""Public model re-exports for leadflow_engine.

Consumers should import from ``leadflow_engine.models`` rather than
reaching into sub-modules directly.
"""

# --- Rules ---
from leadflow_engine.models.rules import Condition, FieldRef, Operator, RuleGroup

# --- State machine ---
from leadflow_engine.models.machine import (
    AlwaysCondition,
    AnyDataCollectedCondition,
    AttemptsExceededCondition,
    Choice,
    CollectField,
    ConversationState,
    DataCollectedCondition,
    RuleMatchCondition,
    StateMachineConfig,
    StateTransition,
    TransitionCondition,
)

# --- Flow definitions ---
from leadflow_engine.models.flow import FieldDefinition, FlowDefinition

# --- Advice ---
from leadflow_engine.models.advice import AdviceItem, AdviceMatch

# --- Concepts ---
from leadflow_engine.models.concept import Concept

# --- Session / turn ---
from leadflow_engine.models.session import (
    Extraction,
    ExtractionResult,
    HistoryEntry,
    SessionInfo,
    SessionState,
    TurnOutcome,
    TurnResponse,
)

__all__ = [
    # Rules
    "Condition",
    "FieldRef",
    "Operator",
    "RuleGroup",
    # State machine
    "AlwaysCondition",
    "AnyDataCollectedCondition",
    "AttemptsExceededCondition",
    "Choice",
    "CollectField",
    "ConversationState",
    "DataCollectedCondition",
    "RuleMatchCondition",
    "StateMachineConfig",
    "StateTransition",
    "TransitionCondition",
    # Flow definitions
    "FieldDefinition",
    "FlowDefinition",
    # Advice
    "AdviceItem",
    "AdviceMatch",
    # Concepts
    "Concept",
    # Session
    "Extraction",
    "ExtractionResult",
    "HistoryEntry",
    "SessionInfo",
    "SessionState",
    "TurnOutcome",
    "TurnResponse",
]
