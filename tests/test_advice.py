"""AdviceTargeter tests — rule scoring, tag-inferred phases and fallbacks."""

import pytest

from leadflow_engine.advice import AdviceTargeter, StaticAdviceSource, infer_phases
from leadflow_engine.models.advice import AdviceItem
from leadflow_engine.models.rules import RuleGroup


@pytest.fixture
def targeter():
    return AdviceTargeter()


def _rule_item(item_id, *leaves, logic="AND", **kwargs):
    return AdviceItem(
        id=item_id, title=item_id, rule_group=RuleGroup(logic=logic, rules=list(leaves)), **kwargs,
    )


BUDGET_OVER_500K = {"field": "budget", "operator": "greaterThan", "value": 500000}


# =====================================================================
# Rule-targeted items
# =====================================================================


class TestRuleTargeting:

    def test_greater_than_selected_with_unit_score(self, targeter):
        item = _rule_item("jumbo", BUDGET_OVER_500K)
        ranked = targeter.rank([item], {"budget": "600000"})
        assert len(ranked) == 1
        assert ranked[0].match == "rule"
        assert ranked[0].score == pytest.approx(1.0)

    def test_greater_than_excluded_below_threshold(self, targeter):
        item = _rule_item("jumbo", BUDGET_OVER_500K)
        assert targeter.select_advice([item], {"budget": "400000"}) == []

    def test_higher_score_beats_universal(self, targeter):
        scored = _rule_item(
            "scored",
            {**BUDGET_OVER_500K, "weight": 0.5},
            {"field": "timeline", "operator": "equals", "value": "0-3", "weight": 0.7},
        )
        universal = AdviceItem(id="aaa-universal", title="Universal")
        answers = {"budget": "600000", "timeline": "0-3"}

        ranked = targeter.rank([universal, scored], answers)
        assert ranked[0].score == pytest.approx(1.2)

        selected = targeter.select_advice([universal, scored], answers, 1)
        assert [a.id for a in selected] == ["scored"]

    def test_rule_items_ordered_by_score_then_id(self, targeter):
        a = _rule_item("a", {**BUDGET_OVER_500K, "weight": 1.0})
        b = _rule_item("b", {**BUDGET_OVER_500K, "weight": 2.0})
        c = _rule_item("c", {**BUDGET_OVER_500K, "weight": 1.0})
        ranked = targeter.rank([c, a, b], {"budget": "700000"})
        assert [m.item.id for m in ranked] == ["b", "a", "c"]


# =====================================================================
# Tag-inferred and universal items
# =====================================================================


class TestTagTargeting:

    def test_infer_phases_from_keywords(self):
        assert infer_phases(["Mortgage", "pre-approval"]) == ["financial-prep"]
        assert infer_phases(["home inspection"]) == ["under-contract", "inspection"]
        assert infer_phases(["kitchen"]) == []

    def test_tag_item_matches_current_phase(self, targeter):
        item = AdviceItem(id="preapproval", title="Get pre-approved", tags=["mortgage"])
        ranked = targeter.rank([item], {}, phase_id="financial-prep")
        assert ranked[0].match == "tag"

    def test_tag_item_excluded_for_other_phase(self, targeter):
        item = AdviceItem(id="preapproval", title="Get pre-approved", tags=["mortgage"])
        assert targeter.rank([item], {}, phase_id="closing") == []
        assert targeter.rank([item], {}, phase_id=None) == []

    def test_rule_beats_tag_beats_universal(self, targeter):
        rule = _rule_item("z-rule", {"field": "budget", "operator": "exists"})
        tag = AdviceItem(id="a-tag", title="tag", tags=["financing"])
        universal = AdviceItem(id="0-universal", title="universal")
        ranked = targeter.rank([universal, tag, rule], {"budget": "1"}, phase_id="financial-prep")
        assert [m.match for m in ranked] == ["rule", "tag"]

    def test_universal_only_when_nothing_specific(self, targeter):
        tag = AdviceItem(id="tag", title="tag", tags=["closing"])
        u2 = AdviceItem(id="u2", title="u2")
        u1 = AdviceItem(id="u1", title="u1")
        ranked = targeter.rank([tag, u2, u1], {}, phase_id="financial-prep")
        assert [m.item.id for m in ranked] == ["u1", "u2"]
        assert all(m.match == "universal" for m in ranked)

    def test_unmatched_rule_is_not_universal(self, targeter):
        item = _rule_item("jumbo", BUDGET_OVER_500K, tags=[])
        assert targeter.rank([item], {}) == [], "a failed rule group excludes the item"


# =====================================================================
# Filters and limits
# =====================================================================


class TestFilters:

    def test_flow_filter(self, targeter):
        item = AdviceItem(id="sell-only", title="s", flows=["sell"])
        assert targeter.select_advice([item], {}, flow_id="buy") == []
        assert targeter.select_advice([item], {}, flow_id="sell") == [item]

    def test_placement_matches_state_or_phase(self, targeter):
        item = AdviceItem(id="placed", title="p", placements=["q_budget", "closing"])
        assert targeter.select_advice([item], {}, state_id="q_budget") == [item]
        assert targeter.select_advice([item], {}, state_id="q_x", phase_id="closing") == [item]
        assert targeter.select_advice([item], {}, state_id="q_x", phase_id="offer") == []

    def test_limit(self, targeter):
        items = [AdviceItem(id=f"u{i}", title="u") for i in range(5)]
        assert len(targeter.select_advice(items, {}, 3)) == 3
        assert targeter.select_advice(items, {}, 0) == []


@pytest.mark.asyncio
async def test_select_from_static_source(targeter):
    source = StaticAdviceSource([
        _rule_item("jumbo", BUDGET_OVER_500K),
        AdviceItem(id="universal", title="u"),
    ])
    items = await targeter.select_from_source(
        source, {"budget": "800000"}, 1, flow_id="buy", state_id="q_timeline",
    )
    assert [a.id for a in items] == ["jumbo"]
