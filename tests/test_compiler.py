"""Flow compiler and config validation tests.

Covers the compiled layout (n data-collection states plus the synthetic
lead-capture / completion pair), ordering, idempotence, and every
structural check in ``validate_config``.
"""

import pytest

from leadflow_engine.compiler import compile_flow, state_id_for, validate_config
from leadflow_engine.constants import (
    COMPLETION_STATE_ID,
    DEFAULT_MAX_ATTEMPTS,
    LEAD_CAPTURE_STATE_ID,
)
from leadflow_engine.errors import FlowConfigurationError
from leadflow_engine.models.flow import FieldDefinition
from leadflow_engine.models.machine import (
    AlwaysCondition,
    ConversationState,
    DataCollectedCondition,
    StateMachineConfig,
    StateTransition,
)


def _fields(*keys):
    return [FieldDefinition(mapping_key=k, order=i) for i, k in enumerate(keys)]


# =====================================================================
# Compiled layout
# =====================================================================


class TestCompiledLayout:

    @pytest.mark.parametrize("n", [0, 1, 3, 7])
    def test_state_count_is_fields_plus_two(self, n):
        config = compile_flow(_fields(*[f"f{i}" for i in range(n)]))
        assert len(config.states) == n + 2, f"{n} fields should compile to {n + 2} states"

    def test_budget_timeline_scenario(self, budget_timeline_config):
        """Two fields compile to budget -> timeline -> lead capture -> completion."""
        config = budget_timeline_config
        ids = [s.id for s in config.states]
        assert ids == ["q_budget", "q_timeline", LEAD_CAPTURE_STATE_ID, COMPLETION_STATE_ID]
        assert config.initial_state_id == "q_budget"

        budget = config.get_state("q_budget")
        assert len(budget.transitions) == 1
        t = budget.transitions[0]
        assert t.target_state_id == "q_timeline"
        assert isinstance(t.condition, DataCollectedCondition)
        assert t.condition.mapping_keys == ["budget"]

        timeline = config.get_state("q_timeline")
        assert timeline.transitions[0].target_state_id == LEAD_CAPTURE_STATE_ID

        lead = config.get_state(LEAD_CAPTURE_STATE_ID)
        assert lead.kind == "lead_capture"
        assert isinstance(lead.transitions[0].condition, AlwaysCondition)
        assert lead.transitions[0].target_state_id == COMPLETION_STATE_ID

    def test_completion_has_no_transitions(self, budget_timeline_config):
        completion = budget_timeline_config.get_state(COMPLETION_STATE_ID)
        assert completion.kind == "completion"
        assert completion.is_terminal
        assert completion.transitions == [], "completion must not loop or continue"

    def test_empty_flow_starts_at_lead_capture(self):
        config = compile_flow([])
        assert config.initial_state_id == LEAD_CAPTURE_STATE_ID
        validate_config(config)

    def test_fields_sorted_stably_by_order(self):
        fields = [
            FieldDefinition(mapping_key="c", order=2),
            FieldDefinition(mapping_key="a", order=1),
            FieldDefinition(mapping_key="b", order=1),
        ]
        config = compile_flow(fields)
        assert [s.id for s in config.states[:3]] == ["q_a", "q_b", "q_c"]
        assert [s.order for s in config.states] == [0, 1, 2, 3, 4]

    def test_compiled_state_carries_field_metadata(self):
        field = FieldDefinition(
            id="home",
            mapping_key="homeValue",
            label="Home value",
            prompt="What's it worth?",
            prompt_variants=["Roughly?"],
            required=False,
            linked_phase_id="pricing",
        )
        config = compile_flow([field], flow_id="sell", version=3)
        state = config.get_state(state_id_for(field))
        assert state.id == "q_home"
        assert state.goal == "Collect Home value"
        assert state.collects[0].mapping_key == "homeValue"
        assert state.collects[0].required is False
        assert state.prompt_variants == ["Roughly?"]
        assert state.linked_phase_id == "pricing"
        assert state.skip_if_already_known is True
        assert state.max_attempts == DEFAULT_MAX_ATTEMPTS
        assert config.id == "sell:v3"
        assert (config.flow_id, config.version) == ("sell", 3)

    def test_compilation_is_idempotent(self):
        fields = _fields("budget", "timeline", "location")
        assert compile_flow(fields, flow_id="x") == compile_flow(fields, flow_id="x")

    def test_duplicate_field_ids_rejected(self):
        with pytest.raises(FlowConfigurationError, match="duplicate field ids"):
            compile_flow(_fields("budget", "budget"))

    def test_field_needs_id_or_mapping_key(self):
        with pytest.raises(ValueError):
            FieldDefinition(prompt="orphan")

    def test_id_and_mapping_key_default_to_each_other(self):
        assert FieldDefinition(id="x").mapping_key == "x"
        assert FieldDefinition(mapping_key="y").id == "y"


# =====================================================================
# validate_config
# =====================================================================


def _state(sid, *transitions, kind="data_collection"):
    return ConversationState(id=sid, kind=kind, transitions=list(transitions))


def _always(target):
    return StateTransition(target_state_id=target, condition=AlwaysCondition())


def _config(states, initial="a", lead="lead", completion="done"):
    return StateMachineConfig(
        id="t:v1",
        flow_id="t",
        initial_state_id=initial,
        states=states,
        lead_capture_state_id=lead,
        completion_state_id=completion,
    )


class TestValidateConfig:

    def _valid_states(self):
        return [
            _state("a", _always("lead")),
            _state("lead", _always("done"), kind="lead_capture"),
            _state("done", kind="completion"),
        ]

    def test_valid_config_passes(self):
        validate_config(_config(self._valid_states()))

    def test_duplicate_state_ids(self):
        states = self._valid_states() + [_state("a", _always("lead"))]
        with pytest.raises(FlowConfigurationError, match="duplicate state ids"):
            validate_config(_config(states))

    @pytest.mark.parametrize(
        "kwargs, label",
        [
            ({"initial": "missing"}, "initial"),
            ({"lead": "missing"}, "lead-capture"),
            ({"completion": "missing"}, "completion"),
        ],
    )
    def test_missing_special_state(self, kwargs, label):
        with pytest.raises(FlowConfigurationError, match=f"{label} state 'missing'"):
            validate_config(_config(self._valid_states(), **kwargs))

    def test_unknown_transition_target(self):
        states = self._valid_states()
        states[0] = _state("a", _always("nowhere"))
        with pytest.raises(FlowConfigurationError, match="unknown state 'nowhere'"):
            validate_config(_config(states))

    def test_edge_into_initial_state(self):
        states = self._valid_states()
        states[1] = _state("lead", _always("a"), kind="lead_capture")
        with pytest.raises(FlowConfigurationError, match="into initial state"):
            validate_config(_config(states))

    def test_completion_with_transitions(self):
        states = self._valid_states()
        states[2] = _state("done", _always("lead"), kind="completion")
        with pytest.raises(FlowConfigurationError, match="outgoing transitions"):
            validate_config(_config(states))

    def test_completion_id_must_name_a_completion_state(self):
        states = self._valid_states()
        states[2] = _state("done", kind="data_collection")
        with pytest.raises(FlowConfigurationError, match="completion state 'done' has kind"):
            validate_config(_config(states))

    def test_lead_capture_id_must_name_a_lead_capture_state(self):
        states = self._valid_states()
        states[1] = _state("lead", _always("done"))
        with pytest.raises(FlowConfigurationError, match="lead-capture state 'lead' has kind"):
            validate_config(_config(states))

    def test_every_terminal_state_has_no_transitions(self):
        states = self._valid_states() + [_state("also_done", _always("lead"), kind="completion")]
        with pytest.raises(FlowConfigurationError, match="'also_done' has outgoing transitions"):
            validate_config(_config(states))

    def test_compiled_configs_always_validate(self, budget_timeline_config):
        validate_config(budget_timeline_config)
