"""AdviceTargeter — picks the advice content to attach to a conversation state.

Each candidate is classified into one tier:

  - **rule**: the item has a rule group and it matched; scored by the
    rule evaluator
  - **tag**: no rule group, but the timeline phases inferred from its tags
    include the current phase
  - **universal**: no rule group and no phase could be inferred from its tags

An item with a rule group that does not match, or with tag-inferred phases
that exclude the current phase, is dropped.  Universal items are only used
when nothing more specific matched.

Usage::

    targeter = AdviceTargeter(RuleEvaluator(concepts))
    items = targeter.select_advice(snapshot, answers, state_id="q_budget",
                                   phase_id="financial-prep", flow_id="buyer")
"""

from __future__ import annotations

import logging
from typing import Iterable

from leadflow_engine.constants import ADVICE_LIMIT_PER_STATE, TAG_PHASE_KEYWORDS
from leadflow_engine.evaluator import RuleEvaluator
from leadflow_engine.interfaces import AdviceSource
from leadflow_engine.models.advice import AdviceItem, AdviceMatch

logger = logging.getLogger(__name__)

_TIER_RANK = {"rule": 0, "tag": 1, "universal": 2}


def infer_phases(tags: Iterable[str]) -> list[str]:
    """Timeline phases suggested by ``tags`` via the keyword table.

    Keywords are matched as substrings of the lower-cased tags.  Order of
    first appearance is preserved and duplicates are dropped.
    """
    phases: list[str] = []
    for tag in tags:
        lowered = tag.lower()
        for keyword, mapped in TAG_PHASE_KEYWORDS.items():
            if keyword in lowered:
                for phase in mapped:
                    if phase not in phases:
                        phases.append(phase)
    return phases


class AdviceTargeter:
    """Filters and ranks advice items for one state.

    Args:
        evaluator: rule evaluator for items with a rule group
    """

    def __init__(self, evaluator: RuleEvaluator | None = None) -> None:
        self._evaluator = evaluator or RuleEvaluator()

    def rank(
        self,
        items: Iterable[AdviceItem],
        answers: dict[str, str],
        *,
        state_id: str | None = None,
        phase_id: str | None = None,
        flow_id: str | None = None,
    ) -> list[AdviceMatch]:
        """Classify and order every eligible item.

        Specific matches (rule, then tag) come first, sorted by tier, score
        descending and id.  Universal items follow, by id, only when there
        is no specific match.
        """
        specific: list[AdviceMatch] = []
        universal: list[AdviceMatch] = []

        for item in items:
            if not self._placement_ok(item, state_id=state_id, phase_id=phase_id, flow_id=flow_id):
                continue
            match = self._classify(item, answers, phase_id)
            if match is None:
                continue
            if match.match == "universal":
                universal.append(match)
            else:
                specific.append(match)

        if specific:
            specific.sort(key=lambda m: (_TIER_RANK[m.match], -m.score, m.item.id))
            return specific
        universal.sort(key=lambda m: m.item.id)
        return universal

    def select_advice(
        self,
        items: Iterable[AdviceItem],
        answers: dict[str, str],
        limit_per_state: int = ADVICE_LIMIT_PER_STATE,
        *,
        state_id: str | None = None,
        phase_id: str | None = None,
        flow_id: str | None = None,
    ) -> list[AdviceItem]:
        """Top ``limit_per_state`` items for the given context."""
        if limit_per_state <= 0:
            return []
        ranked = self.rank(
            items, answers, state_id=state_id, phase_id=phase_id, flow_id=flow_id,
        )
        return [m.item for m in ranked[:limit_per_state]]

    async def select_from_source(
        self,
        source: AdviceSource,
        answers: dict[str, str],
        limit_per_state: int = ADVICE_LIMIT_PER_STATE,
        *,
        flow_id: str,
        state_id: str,
        phase_id: str | None = None,
    ) -> list[AdviceItem]:
        """Load a snapshot from ``source`` and select from it."""
        snapshot = await source.load(flow_id, state_id, answers)
        return self.select_advice(
            snapshot, answers, limit_per_state,
            state_id=state_id, phase_id=phase_id, flow_id=flow_id,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _placement_ok(
        item: AdviceItem,
        *,
        state_id: str | None,
        phase_id: str | None,
        flow_id: str | None,
    ) -> bool:
        if item.flows and flow_id not in item.flows:
            return False
        if item.placements and state_id not in item.placements and phase_id not in item.placements:
            return False
        return True

    def _classify(
        self,
        item: AdviceItem,
        answers: dict[str, str],
        phase_id: str | None,
    ) -> AdviceMatch | None:
        if item.rule_group is not None:
            result = self._evaluator.evaluate(item.rule_group, answers)
            if not result.matched:
                return None
            return AdviceMatch(item=item, score=result.score, match="rule", reason="rule group matched")

        phases = infer_phases(item.tags)
        if not phases:
            return AdviceMatch(item=item, score=0.0, match="universal", reason="no targeting")
        if phase_id is not None and phase_id in phases:
            return AdviceMatch(
                item=item, score=0.0, match="tag", reason=f"tags map to phase '{phase_id}'",
            )
        return None


class StaticAdviceSource(AdviceSource):
    """In-memory advice snapshot, e.g. for tests or the simulator."""

    def __init__(self, items: Iterable[AdviceItem] = ()) -> None:
        self._items = list(items)

    async def load(
        self, flow_id: str, state_id: str, answers: dict[str, str]
    ) -> list[AdviceItem]:
        return list(self._items)
