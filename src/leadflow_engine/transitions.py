"""TransitionEngine — condition checks, transition selection and cascading skip.

All methods are pure functions of (config, state, answers, attempt
counters).  The session controller decides *when* to call them; this
module only decides *where* a session goes.
"""

from __future__ import annotations

import logging
from typing import Collection

from leadflow_engine.errors import CascadeLimitError, StateNotFoundError
from leadflow_engine.evaluator import RuleEvaluator
from leadflow_engine.models.machine import (
    AlwaysCondition,
    AnyDataCollectedCondition,
    AttemptsExceededCondition,
    ConversationState,
    DataCollectedCondition,
    RuleMatchCondition,
    StateMachineConfig,
    StateTransition,
)

logger = logging.getLogger(__name__)


def has_value(answers: dict[str, str], key: str) -> bool:
    value = answers.get(key)
    return value is not None and str(value).strip() != ""


def ordered_transitions(state: ConversationState) -> list[StateTransition]:
    """Transitions by ascending priority; ties keep array order."""
    # sorted() is stable, so equal priorities stay in index order
    return sorted(state.transitions, key=lambda t: t.priority)


class TransitionEngine:
    """Evaluates transitions for a :class:`StateMachineConfig`.

    Args:
        evaluator: rule evaluator for ``rule_match`` conditions.  A bare
            :class:`RuleEvaluator` is created when omitted.
    """

    def __init__(self, evaluator: RuleEvaluator | None = None) -> None:
        self._evaluator = evaluator or RuleEvaluator()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def require_state(config: StateMachineConfig, state_id: str) -> ConversationState:
        """Return the state or raise :class:`StateNotFoundError`.

        A missing state at turn time means the config is corrupt, so it is
        logged at ERROR before raising.
        """
        state = config.get_state(state_id)
        if state is None:
            logger.error("State '%s' missing from config '%s'", state_id, config.id)
            raise StateNotFoundError(state_id, config.id)
        return state

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    @staticmethod
    def is_satisfied(state: ConversationState, answers: dict[str, str]) -> bool:
        """True when every required collect of ``state`` has a non-empty answer."""
        return all(has_value(answers, key) for key in state.required_keys)

    @staticmethod
    def missing_keys(state: ConversationState, answers: dict[str, str]) -> list[str]:
        return [key for key in state.required_keys if not has_value(answers, key)]

    @staticmethod
    def pending_optional_keys(
        state: ConversationState,
        answers: dict[str, str],
        resolved: Collection[str] = (),
    ) -> list[str]:
        """Optional collects with no answer that have not been given up on."""
        return [
            c.mapping_key
            for c in state.collects
            if not c.required
            and not has_value(answers, c.mapping_key)
            and c.mapping_key not in resolved
        ]

    def condition_met(
        self,
        transition: StateTransition,
        state: ConversationState,
        answers: dict[str, str],
        attempts: int,
        resolved: Collection[str] = (),
    ) -> bool:
        """Evaluate one transition condition.

        Keys in ``resolved`` were given up on (recorded as unanswered) and
        count as collected for ``data_collected`` checks.
        """
        cond = transition.condition
        if isinstance(cond, AlwaysCondition):
            return True
        if isinstance(cond, DataCollectedCondition):
            return all(has_value(answers, k) or k in resolved for k in cond.mapping_keys)
        if isinstance(cond, AnyDataCollectedCondition):
            return any(has_value(answers, k) or k in resolved for k in cond.mapping_keys)
        if isinstance(cond, RuleMatchCondition):
            return self._evaluator.matches(cond.rule_group, answers)
        if isinstance(cond, AttemptsExceededCondition):
            limit = cond.attempts if cond.attempts is not None else state.max_attempts
            return attempts > limit
        logger.warning("Unhandled transition condition %r on state '%s'", cond, state.id)
        return False

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_transition(
        self,
        state: ConversationState,
        answers: dict[str, str],
        attempts: int = 0,
        resolved: Collection[str] = (),
    ) -> StateTransition | None:
        """First transition whose condition holds, in (priority, index) order."""
        for t in ordered_transitions(state):
            if self.condition_met(t, state, answers, attempts, resolved):
                return t
        return None

    def select_stall_transition(
        self,
        state: ConversationState,
        answers: dict[str, str],
        attempts: int,
    ) -> StateTransition | None:
        """First ``attempts_exceeded`` transition whose threshold is passed."""
        for t in ordered_transitions(state):
            if isinstance(t.condition, AttemptsExceededCondition) and self.condition_met(
                t, state, answers, attempts
            ):
                return t
        return None

    # ------------------------------------------------------------------
    # Cascading skip
    # ------------------------------------------------------------------

    def is_skippable(self, state: ConversationState, answers: dict[str, str]) -> bool:
        """A state is skipped when it opts in and already has everything it collects.

        States that collect nothing (lead capture, completion) are never
        skipped.
        """
        return (
            state.skip_if_already_known
            and bool(state.collects)
            and self.is_satisfied(state, answers)
        )

    def resolve_cascade(
        self,
        config: StateMachineConfig,
        target_state_id: str,
        answers: dict[str, str],
        attempt_counters: dict[str, int] | None = None,
        resolved: Collection[str] = (),
    ) -> tuple[str, list[str]]:
        """Follow skippable states from ``target_state_id``.

        Returns ``(final_state_id, skipped_state_ids)``.  Stops at the first
        state that is not skippable, or that is skippable but has no
        satisfied transition.

        Raises:
            StateNotFoundError: a state on the path does not exist.
            CascadeLimitError: more hops than the config has states.
        """
        counters = attempt_counters or {}
        max_hops = len(config.states)
        skipped: list[str] = []
        current = self.require_state(config, target_state_id)

        while self.is_skippable(current, answers):
            if len(skipped) >= max_hops:
                logger.error(
                    "Cascade from '%s' in config '%s' exceeded %d hops",
                    target_state_id, config.id, max_hops,
                )
                raise CascadeLimitError(target_state_id, max_hops)

            nxt = self.select_transition(
                current, answers, counters.get(current.id, 0), resolved,
            )
            if nxt is None:
                logger.debug(
                    "State '%s' is skippable but has no satisfied transition; stopping",
                    current.id,
                )
                break
            skipped.append(current.id)
            current = self.require_state(config, nxt.target_state_id)

        return current.id, skipped
