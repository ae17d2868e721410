"""SessionController — the per-turn algorithm.

One call to :meth:`SessionController.process_turn` handles one user turn:

  1. merge extracted pairs (confidence at or above the threshold, non-empty
     values) into a copy of the answers
  2. if the current state's required collects are still missing, count a
     failed attempt and either force-advance through an
     ``attempts_exceeded`` transition or stay and re-prompt
  3. otherwise take the first satisfied transition in priority order; a
     state left waiting on optional collects counts failed attempts too and
     records those keys as unanswered once its attempts are exhausted
  4. follow cascading skips from the target
  5. report ``advanced`` / ``stayed`` / ``completed``

The controller never mutates the ``SessionState`` it is given.  It returns
a new state that the caller persists; if persisting fails the caller simply
drops the new state and the turn can be retried with the same inputs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from leadflow_engine.constants import (
    EXTRACTION_CONFIDENCE_THRESHOLD,
    STAY_AWAITING_DATA,
    STAY_MAX_ATTEMPTS,
    STAY_NO_TRANSITION,
)
from leadflow_engine.models.machine import ConversationState, StateMachineConfig
from leadflow_engine.models.session import (
    Extraction,
    HistoryEntry,
    SessionState,
    TurnOutcome,
)
from leadflow_engine.transitions import TransitionEngine

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def prompt_for_attempt(state: ConversationState, attempts: int) -> str:
    """Base prompt on the first ask, then cycle through ``prompt_variants``."""
    if not state.prompt_variants or attempts <= 0:
        return state.prompt
    return state.prompt_variants[(attempts - 1) % len(state.prompt_variants)]


def calculate_progress(config: StateMachineConfig, answers: dict[str, str]) -> int:
    """Percentage of required data-collection keys answered (0-100).

    A flow with no required keys is always at 100.
    """
    required = config.required_data_keys()
    if not required:
        return 100
    collected = sum(1 for key in required if answers.get(key))
    # Round half up
    return min(int(collected * 100 / len(required) + 0.5), 100)


class SessionController:
    """Runs turns against a compiled or authored :class:`StateMachineConfig`.

    Args:
        transitions: transition engine; a default one is built when omitted
        confidence_threshold: extractions below this are discarded
        clock: returns the current tz-aware time; injectable for tests
    """

    def __init__(
        self,
        transitions: TransitionEngine | None = None,
        *,
        confidence_threshold: float = EXTRACTION_CONFIDENCE_THRESHOLD,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._transitions = transitions or TransitionEngine()
        self._threshold = confidence_threshold
        self._clock = clock or _utcnow

    @property
    def transitions(self) -> TransitionEngine:
        return self._transitions

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    def start(
        self,
        config: StateMachineConfig,
        *,
        session_id: str,
        seed_answers: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> SessionState:
        """Create a fresh session positioned at the config's initial state.

        Seeded answers (e.g. from a URL or a previous flow) are applied
        before the first prompt, so the initial state is skipped when its
        data is already known.
        """
        now = now or self._clock()
        answers = {k: str(v) for k, v in (seed_answers or {}).items() if str(v).strip()}

        final_id, skipped = self._transitions.resolve_cascade(
            config, config.initial_state_id, answers,
        )
        history = [HistoryEntry(state_id=sid, entered_at=now, skipped=True) for sid in skipped]
        history.append(HistoryEntry(state_id=final_id, entered_at=now))

        final_state = self._transitions.require_state(config, final_id)
        return SessionState(
            session_id=session_id,
            flow_id=config.flow_id,
            config_version=config.version,
            current_state_id=final_id,
            answers=answers,
            history=history,
            status="completed" if final_state.is_terminal else "active",
            last_activity_at=now,
        )

    def mark_abandoned(
        self,
        state: SessionState,
        *,
        now: datetime | None = None,
        idle_after: timedelta,
    ) -> SessionState:
        """Return an abandoned copy if the session has been idle for ``idle_after``.

        Sessions that are not active, or still within the window, are
        returned unchanged.
        """
        now = now or self._clock()
        if state.status != "active":
            return state
        if state.last_activity_at + idle_after > now:
            return state
        return state.model_copy(update={"status": "abandoned"}, deep=True)

    # ==================================================================
    # Turn algorithm
    # ==================================================================

    def merge_extractions(
        self,
        answers: dict[str, str],
        extractions: Iterable[Extraction],
    ) -> tuple[dict[str, str], list[str]]:
        """Merge confident, non-empty extractions into a copy of ``answers``.

        Returns ``(merged, keys_written)``.  Existing answers are only ever
        overwritten, never removed.
        """
        merged = dict(answers)
        written: list[str] = []
        for ex in extractions:
            value = ex.value.strip() if isinstance(ex.value, str) else str(ex.value)
            if not value:
                continue
            if ex.confidence < self._threshold:
                logger.debug(
                    "Dropping extraction %s (confidence %.2f < %.2f)",
                    ex.mapping_key, ex.confidence, self._threshold,
                )
                continue
            merged[ex.mapping_key] = value
            if ex.mapping_key not in written:
                written.append(ex.mapping_key)
        return merged, written

    def process_turn(
        self,
        config: StateMachineConfig,
        state: SessionState,
        extractions: Iterable[Extraction] = (),
        *,
        now: datetime | None = None,
    ) -> tuple[SessionState, TurnOutcome]:
        """Apply one turn and return ``(new_state, outcome)``.

        Raises:
            StateNotFoundError: the session or a transition points at a state
                that is not in ``config``.
            CascadeLimitError: cascading skip did not terminate.
        """
        now = now or self._clock()
        current = self._transitions.require_state(config, state.current_state_id)
        prev_id = current.id

        # Terminal: nothing to do
        if current.is_terminal or state.status == "completed":
            return state.model_copy(deep=True), TurnOutcome(
                status="completed",
                previous_state_id=prev_id,
                new_state_id=prev_id,
                progress=calculate_progress(config, state.answers),
            )

        new = state.model_copy(deep=True)
        new.answers, collected = self.merge_extractions(state.answers, extractions)
        new.last_activity_at = now

        # --- Stall path ---
        if not self._transitions.is_satisfied(current, new.answers):
            attempts = new.attempt_counters.get(prev_id, 0) + 1
            new.attempt_counters[prev_id] = attempts

            forced = self._transitions.select_stall_transition(current, new.answers, attempts)
            if forced is None:
                reason = STAY_MAX_ATTEMPTS if attempts > current.max_attempts else STAY_AWAITING_DATA
                if reason == STAY_MAX_ATTEMPTS:
                    logger.info(
                        "Session %s stalled at '%s' (%d/%d attempts)",
                        state.session_id, prev_id, attempts, current.max_attempts,
                    )
                return new, TurnOutcome(
                    status="stayed",
                    previous_state_id=prev_id,
                    new_state_id=prev_id,
                    reason=reason,
                    fields_collected=collected,
                    progress=calculate_progress(config, new.answers),
                )

            for key in self._transitions.missing_keys(current, new.answers):
                if key not in new.unanswered:
                    new.unanswered.append(key)
            logger.info(
                "Session %s force-advanced from '%s' after %d attempts",
                state.session_id, prev_id, attempts,
            )
            return self._advance(config, new, prev_id, forced.target_state_id, collected, now)

        # --- Normal path ---
        chosen = self._transitions.select_transition(
            current, new.answers, new.attempt_counters.get(prev_id, 0), new.unanswered,
        )
        pending = self._transitions.pending_optional_keys(current, new.answers, new.unanswered)
        if chosen is None and pending:
            return self._optional_stall(config, new, current, pending, collected, now)
        if chosen is None or chosen.target_state_id == prev_id:
            return new, TurnOutcome(
                status="stayed",
                previous_state_id=prev_id,
                new_state_id=prev_id,
                reason=STAY_NO_TRANSITION,
                fields_collected=collected,
                progress=calculate_progress(config, new.answers),
            )
        return self._advance(config, new, prev_id, chosen.target_state_id, collected, now)

    def _optional_stall(
        self,
        config: StateMachineConfig,
        new: SessionState,
        current: ConversationState,
        pending: list[str],
        collected: list[str],
        now: datetime,
    ) -> tuple[SessionState, TurnOutcome]:
        """Count a missed answer for a state waiting only on optional keys.

        Once ``max_attempts`` is exceeded the keys are recorded as unanswered
        and the transitions are evaluated again with them resolved.
        """
        attempts = new.attempt_counters.get(current.id, 0) + 1
        new.attempt_counters[current.id] = attempts

        target = self._transitions.select_stall_transition(current, new.answers, attempts)
        if target is None and attempts > current.max_attempts:
            new.unanswered.extend(k for k in pending if k not in new.unanswered)
            logger.info(
                "Session %s gave up on optional %s at '%s' after %d attempts",
                new.session_id, pending, current.id, attempts,
            )
            target = self._transitions.select_transition(
                current, new.answers, attempts, new.unanswered,
            )
        elif target is not None:
            new.unanswered.extend(k for k in pending if k not in new.unanswered)

        if target is None or target.target_state_id == current.id:
            if target is not None:
                reason = STAY_NO_TRANSITION
            elif attempts > current.max_attempts:
                reason = STAY_MAX_ATTEMPTS
            else:
                reason = STAY_AWAITING_DATA
            return new, TurnOutcome(
                status="stayed",
                previous_state_id=current.id,
                new_state_id=current.id,
                reason=reason,
                fields_collected=collected,
                progress=calculate_progress(config, new.answers),
            )
        return self._advance(config, new, current.id, target.target_state_id, collected, now)

    def _advance(
        self,
        config: StateMachineConfig,
        new: SessionState,
        prev_id: str,
        target_id: str,
        collected: list[str],
        now: datetime,
    ) -> tuple[SessionState, TurnOutcome]:
        final_id, skipped = self._transitions.resolve_cascade(
            config, target_id, new.answers, new.attempt_counters, new.unanswered,
        )
        for sid in skipped:
            new.history.append(HistoryEntry(state_id=sid, entered_at=now, skipped=True))
        new.history.append(HistoryEntry(state_id=final_id, entered_at=now))
        new.current_state_id = final_id

        final_state = self._transitions.require_state(config, final_id)
        if final_state.is_terminal:
            new.status = "completed"
            status = "completed"
        else:
            status = "advanced"

        if skipped:
            logger.debug("Session %s skipped %s", new.session_id, skipped)
        return new, TurnOutcome(
            status=status,
            previous_state_id=prev_id,
            new_state_id=final_id,
            fields_collected=collected,
            skipped_states=skipped,
            progress=calculate_progress(config, new.answers),
        )

    # ==================================================================
    # Presentation helpers
    # ==================================================================

    def current_prompt(self, config: StateMachineConfig, state: SessionState) -> str:
        """Prompt for the session's current state, varied by attempt count."""
        current = self._transitions.require_state(config, state.current_state_id)
        return prompt_for_attempt(current, state.attempts_for(current.id))

    @staticmethod
    def progress(config: StateMachineConfig, answers: dict[str, str]) -> int:
        return calculate_progress(config, answers)
