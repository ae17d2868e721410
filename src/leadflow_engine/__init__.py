"""leadflow_engine — conversation orchestration SDK for lead-generation chat flows.

Public API:
    ConversationService — async orchestrator behind the Turn API
    SessionController   — pure per-turn state machine algorithm
    TransitionEngine    — transition selection and cascading skip
    RuleEvaluator       — AND/OR rule tree evaluation
    AdviceTargeter      — advice selection and ranking
    FlowStore           — loads YAML flows, concepts and advice
    CompiledFlowCache   — compiled configs keyed by (flow id, version)
    compile_flow        — ordered field list → StateMachineConfig
    validate_config     — structural checks for any StateMachineConfig

Collaborator interfaces:
    Extractor           — ABC for free-text answer extraction
    AdviceSource        — ABC for the advice content store
"""

from leadflow_engine.advice import AdviceTargeter, StaticAdviceSource
from leadflow_engine.cache import CompiledFlowCache
from leadflow_engine.compiler import compile_flow, validate_config
from leadflow_engine.concepts import ConceptRegistry
from leadflow_engine.controller import SessionController
from leadflow_engine.errors import (
    CascadeLimitError,
    FlowConfigurationError,
    StateNotFoundError,
)
from leadflow_engine.evaluator import RuleEvaluator, RuleMatch
from leadflow_engine.interfaces import AdviceSource, Extractor
from leadflow_engine.locks import SessionLockRegistry
from leadflow_engine.models.session import (
    Extraction,
    ExtractionResult,
    SessionInfo,
    SessionState,
    TurnOutcome,
    TurnResponse,
)
from leadflow_engine.prompt import PromptRenderer
from leadflow_engine.service import ConversationService
from leadflow_engine.store import FlowStore
from leadflow_engine.transitions import TransitionEngine

__all__ = [
    # Orchestration
    "ConversationService",
    "SessionController",
    "TransitionEngine",
    "SessionLockRegistry",
    # Rules & advice
    "RuleEvaluator",
    "RuleMatch",
    "ConceptRegistry",
    "AdviceTargeter",
    "StaticAdviceSource",
    # Flows
    "FlowStore",
    "CompiledFlowCache",
    "compile_flow",
    "validate_config",
    "PromptRenderer",
    # Interfaces
    "Extractor",
    "AdviceSource",
    # Session / turn
    "Extraction",
    "ExtractionResult",
    "SessionInfo",
    "SessionState",
    "TurnOutcome",
    "TurnResponse",
    # Errors
    "FlowConfigurationError",
    "StateNotFoundError",
    "CascadeLimitError",
]
