"""SessionController tests — the per-turn algorithm in isolation.

Everything here runs on compiled or hand-built configs with no DB; the
clock is pinned so history timestamps are deterministic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from leadflow_engine.compiler import compile_flow
from leadflow_engine.constants import (
    COMPLETION_STATE_ID,
    LEAD_CAPTURE_STATE_ID,
    STAY_AWAITING_DATA,
    STAY_MAX_ATTEMPTS,
    STAY_NO_TRANSITION,
)
from leadflow_engine.controller import SessionController, calculate_progress, prompt_for_attempt
from leadflow_engine.errors import StateNotFoundError
from leadflow_engine.models.flow import FieldDefinition
from leadflow_engine.models.machine import (
    AttemptsExceededCondition,
    CollectField,
    ConversationState,
    DataCollectedCondition,
    StateMachineConfig,
    StateTransition,
)
from leadflow_engine.models.session import Extraction

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def controller():
    return SessionController(clock=lambda: NOW)


def _ex(key, value, confidence=1.0):
    return Extraction(mapping_key=key, value=value, confidence=confidence)


def _start(controller, config, **seed):
    return controller.start(config, session_id="s1", seed_answers=seed or None)


# =====================================================================
# Start
# =====================================================================


class TestStart:

    def test_starts_at_initial_state(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        assert state.current_state_id == "q_budget"
        assert state.status == "active"
        assert state.flow_id == "test"
        assert state.config_version == 1
        assert [h.state_id for h in state.history] == ["q_budget"]
        assert state.last_activity_at == NOW

    def test_seeded_answers_skip_known_states(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, budget="500000")
        assert state.current_state_id == "q_timeline"
        assert [(h.state_id, h.skipped) for h in state.history] == [
            ("q_budget", True),
            ("q_timeline", False),
        ]

    def test_blank_seed_values_dropped(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, budget="  ")
        assert state.answers == {}
        assert state.current_state_id == "q_budget"


# =====================================================================
# Normal path
# =====================================================================


class TestAdvance:

    def test_collect_and_advance(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        new, outcome = controller.process_turn(
            budget_timeline_config, state, [_ex("budget", "600000")],
        )
        assert outcome.status == "advanced"
        assert outcome.previous_state_id == "q_budget"
        assert outcome.new_state_id == "q_timeline"
        assert outcome.fields_collected == ["budget"]
        assert outcome.progress == 50
        assert new.answers == {"budget": "600000"}
        assert new.current_state_id == "q_timeline"

    def test_cascading_skip_within_one_turn(self, controller, budget_timeline_config):
        """Timeline already known: advancing from budget lands past q_timeline."""
        state = _start(controller, budget_timeline_config)
        state = state.model_copy(update={"answers": {"timeline": "0-3"}})
        new, outcome = controller.process_turn(
            budget_timeline_config, state, [_ex("budget", "600000")],
        )
        assert outcome.new_state_id == LEAD_CAPTURE_STATE_ID, (
            f"Expected to cascade past q_timeline, landed on {outcome.new_state_id}"
        )
        assert outcome.skipped_states == ["q_timeline"]
        assert [(h.state_id, h.skipped) for h in new.history[-2:]] == [
            ("q_timeline", True),
            (LEAD_CAPTURE_STATE_ID, False),
        ]

    def test_out_of_order_extraction_is_kept(self, controller, budget_timeline_config):
        """A future state's answer given early is recorded and later skipped."""
        state = _start(controller, budget_timeline_config)
        new, outcome = controller.process_turn(
            budget_timeline_config, state, [_ex("timeline", "3-6")],
        )
        assert outcome.status == "stayed"
        assert new.answers["timeline"] == "3-6"

        final, outcome = controller.process_turn(
            budget_timeline_config, new, [_ex("budget", "450000")],
        )
        assert outcome.new_state_id == LEAD_CAPTURE_STATE_ID
        assert outcome.fields_collected == ["budget"]

    def test_reaches_completion(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, budget="1", timeline="2")
        assert state.current_state_id == LEAD_CAPTURE_STATE_ID
        new, outcome = controller.process_turn(budget_timeline_config, state)
        assert outcome.status == "completed"
        assert outcome.new_state_id == COMPLETION_STATE_ID
        assert outcome.progress == 100
        assert new.status == "completed"

    def test_turn_on_terminal_state_is_unchanged(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, budget="1", timeline="2")
        done, _ = controller.process_turn(budget_timeline_config, state)
        again, outcome = controller.process_turn(
            budget_timeline_config, done, [_ex("budget", "999")],
        )
        assert outcome.status == "completed"
        assert outcome.new_state_id == COMPLETION_STATE_ID
        assert again == done, "a completed session must not change"

    def test_no_satisfied_transition_stays(self, controller):
        states = [
            ConversationState(
                id="a",
                collects=[CollectField(mapping_key="a", label="A")],
                transitions=[
                    StateTransition(
                        target_state_id="lead",
                        condition=DataCollectedCondition(mapping_keys=["other"]),
                    )
                ],
            ),
            ConversationState(id="lead", kind="lead_capture"),
            ConversationState(id="done", kind="completion"),
        ]
        config = StateMachineConfig(
            id="x:v1", flow_id="x", initial_state_id="a", states=states,
            lead_capture_state_id="lead", completion_state_id="done",
        )
        state = controller.start(config, session_id="s1")
        new, outcome = controller.process_turn(config, state, [_ex("a", "yes")])
        assert outcome.status == "stayed"
        assert outcome.reason == STAY_NO_TRANSITION
        assert new.answers == {"a": "yes"}
        assert new.attempt_counters == {}, "a satisfied state is not a failed attempt"

    def test_unknown_current_state_raises(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        state = state.model_copy(update={"current_state_id": "q_removed"})
        with pytest.raises(StateNotFoundError):
            controller.process_turn(budget_timeline_config, state)


# =====================================================================
# Extraction merging
# =====================================================================


class TestMergeExtractions:

    def test_low_confidence_dropped(self, controller):
        merged, written = controller.merge_extractions(
            {"a": "old"}, [_ex("b", "x", 0.59), _ex("c", "y", 0.6)],
        )
        assert merged == {"a": "old", "c": "y"}
        assert written == ["c"]

    def test_empty_values_ignored_and_answers_overwritten(self, controller):
        merged, written = controller.merge_extractions(
            {"a": "old"}, [_ex("a", "new"), _ex("b", "   ")],
        )
        assert merged == {"a": "new"}
        assert written == ["a"]

    def test_custom_threshold(self):
        strict = SessionController(confidence_threshold=0.9)
        merged, _ = strict.merge_extractions({}, [_ex("a", "x", 0.8)])
        assert merged == {}

    def test_low_confidence_answer_counts_as_failed_attempt(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        new, outcome = controller.process_turn(
            budget_timeline_config, state, [_ex("budget", "600000", 0.2)],
        )
        assert outcome.status == "stayed"
        assert outcome.reason == STAY_AWAITING_DATA
        assert new.attempt_counters == {"q_budget": 1}


# =====================================================================
# Stall path
# =====================================================================


class TestStall:

    def test_attempts_counted_until_max(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        for expected in (1, 2, 3):
            state, outcome = controller.process_turn(budget_timeline_config, state)
            assert outcome.reason == STAY_AWAITING_DATA
            assert state.attempt_counters["q_budget"] == expected

    def test_stall_without_fallback_stays_observably(self, controller, budget_timeline_config):
        """Counter already at max with no attempts_exceeded edge: Stayed, same prompt."""
        state = _start(controller, budget_timeline_config)
        state = state.model_copy(update={"attempt_counters": {"q_budget": 3}})
        prompt_before = controller.current_prompt(budget_timeline_config, state)

        new, outcome = controller.process_turn(budget_timeline_config, state)
        assert outcome.status == "stayed"
        assert outcome.reason == STAY_MAX_ATTEMPTS
        assert outcome.new_state_id == "q_budget"
        assert new.attempt_counters["q_budget"] == 4
        assert controller.current_prompt(budget_timeline_config, new) == prompt_before

    def test_attempts_exceeded_forces_advance(self, controller):
        config = compile_flow(
            [FieldDefinition(mapping_key="budget"), FieldDefinition(mapping_key="timeline", order=1)],
            flow_id="stall",
        )
        budget = config.get_state("q_budget")
        budget.max_attempts = 1
        budget.transitions.append(
            StateTransition(
                target_state_id="q_timeline",
                condition=AttemptsExceededCondition(),
                priority=1,
            )
        )

        state = controller.start(config, session_id="s1")
        state, outcome = controller.process_turn(config, state)
        assert outcome.status == "stayed"

        state, outcome = controller.process_turn(config, state)
        assert outcome.status == "advanced"
        assert outcome.new_state_id == "q_timeline"
        assert state.unanswered == ["budget"]
        assert state.attempt_counters == {"q_budget": 2}


# =====================================================================
# Optional fields
# =====================================================================


class TestOptionalFields:

    @pytest.fixture
    def optional_config(self):
        return compile_flow(
            [
                FieldDefinition(mapping_key="budget"),
                FieldDefinition(mapping_key="preApproved", order=1, required=False),
            ],
            flow_id="optional",
        )

    def test_optional_state_is_asked_not_skipped(self, controller, optional_config):
        state = _start(controller, optional_config, budget="500000")
        assert state.current_state_id == "q_preApproved"

    def test_unanswered_optional_counts_attempts(self, controller, optional_config):
        state = _start(controller, optional_config, budget="500000")
        for expected in (1, 2, 3):
            state, outcome = controller.process_turn(optional_config, state)
            assert outcome.status == "stayed"
            assert outcome.reason == STAY_AWAITING_DATA
            assert state.attempt_counters["q_preApproved"] == expected

    def test_unanswered_optional_gives_up_after_max_attempts(self, controller, optional_config):
        state = _start(controller, optional_config, budget="500000")
        outcomes = []
        for _ in range(10):
            state, outcome = controller.process_turn(optional_config, state)
            outcomes.append(outcome)
            if outcome.status != "stayed":
                break

        assert len(outcomes) == 4, "max_attempts (3) is exceeded on the fourth turn"
        assert outcomes[-1].status == "advanced"
        assert outcomes[-1].new_state_id == LEAD_CAPTURE_STATE_ID
        assert state.unanswered == ["preApproved"]
        assert "preApproved" not in state.answers

    def test_answered_optional_advances(self, controller, optional_config):
        state = _start(controller, optional_config, budget="500000")
        state, outcome = controller.process_turn(optional_config, state, [_ex("preApproved", "yes")])
        assert outcome.status == "advanced"
        assert outcome.new_state_id == LEAD_CAPTURE_STATE_ID
        assert state.attempt_counters == {}

    def test_shipped_buy_flow_leaves_pre_approval(self, controller, store):
        config = store.get_config("buy")
        state = _start(
            controller, config,
            buyingReason="first-time", location="Austin", budget="500000", timeline="0-3",
        )
        assert state.current_state_id == "q_preApproved"

        for _ in range(config.get_state("q_preApproved").max_attempts + 1):
            state, outcome = controller.process_turn(config, state)
        assert outcome.status == "advanced"
        assert state.current_state_id == LEAD_CAPTURE_STATE_ID


# =====================================================================
# Copy-on-write
# =====================================================================


class TestCopyOnWrite:

    def test_input_state_never_mutated(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, timeline="0-3")
        snapshot = state.model_dump()

        controller.process_turn(budget_timeline_config, state, [_ex("budget", "1")])
        controller.process_turn(budget_timeline_config, state)
        assert state.model_dump() == snapshot, "process_turn must not mutate its input"

    def test_retry_after_dropped_result_is_identical(self, controller, budget_timeline_config):
        """Simulates a failed persist: the new state is discarded and the turn retried."""
        state = _start(controller, budget_timeline_config)
        first, outcome1 = controller.process_turn(budget_timeline_config, state, [_ex("budget", "5")])
        second, outcome2 = controller.process_turn(budget_timeline_config, state, [_ex("budget", "5")])
        assert first == second
        assert outcome1 == outcome2


# =====================================================================
# Prompts, progress, abandonment
# =====================================================================


class TestPresentation:

    def test_prompt_variants_cycle(self):
        state = ConversationState(id="s", prompt="Base?", prompt_variants=["V1?", "V2?"])
        prompts = [prompt_for_attempt(state, n) for n in range(5)]
        assert prompts == ["Base?", "V1?", "V2?", "V1?", "V2?"]

    def test_prompt_without_variants_repeats(self):
        state = ConversationState(id="s", prompt="Base?")
        assert prompt_for_attempt(state, 7) == "Base?"

    def test_progress_rounds_half_up(self):
        config = compile_flow([FieldDefinition(mapping_key=k) for k in ("a", "b", "c")])
        assert calculate_progress(config, {}) == 0
        assert calculate_progress(config, {"a": "1"}) == 33
        assert calculate_progress(config, {"a": "1", "b": "1"}) == 67
        assert calculate_progress(config, {"a": "1", "b": "1", "c": "1"}) == 100

    def test_progress_ignores_optional_fields(self):
        config = compile_flow([
            FieldDefinition(mapping_key="a"),
            FieldDefinition(mapping_key="b", required=False),
        ])
        assert calculate_progress(config, {"a": "1"}) == 100

    def test_progress_without_required_fields_is_full(self):
        assert calculate_progress(compile_flow([]), {}) == 100


class TestAbandonment:

    def test_idle_session_marked(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        later = NOW + timedelta(minutes=60)
        marked = controller.mark_abandoned(state, now=later, idle_after=timedelta(minutes=60))
        assert marked.status == "abandoned"
        assert state.status == "active", "the input state must not change"

    def test_recent_session_untouched(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config)
        soon = NOW + timedelta(minutes=59)
        assert controller.mark_abandoned(state, now=soon, idle_after=timedelta(hours=1)) is state

    def test_completed_session_never_abandoned(self, controller, budget_timeline_config):
        state = _start(controller, budget_timeline_config, budget="1", timeline="2")
        done, _ = controller.process_turn(budget_timeline_config, state)
        later = NOW + timedelta(days=30)
        assert controller.mark_abandoned(done, now=later, idle_after=timedelta(hours=1)).status == "completed"
