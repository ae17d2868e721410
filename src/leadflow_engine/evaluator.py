"""RuleEvaluator — evaluates AND/OR rule trees against a flat answer map.

Shared by the transition engine (``rule_match`` transitions) and the advice
targeter.  Evaluation is pure: no I/O, no mutation, and children are visited
in array order so results are deterministic.

Scoring:
  - a matched leaf scores its ``weight``
  - AND: matched iff every child matched; score is the sum of child scores,
    or 0 when the group fails.  An empty AND is matched with score 0.
  - OR: matched iff any child matched; score is the sum of the matched
    children's scores.  An empty OR is unmatched.

A leaf whose rule value cannot be interpreted for its operator (e.g. a
non-numeric ``greaterThan`` threshold) is logged at WARNING and treated as
a non-match.  Nothing here raises for bad data.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from leadflow_engine.concepts import ConceptRegistry
from leadflow_engine.models.rules import Condition, RuleGroup

logger = logging.getLogger(__name__)

# "$450k", "1,200,000", "1.5m", "  300 "
_NUMBER_RE = re.compile(r"^([-+]?\d*\.?\d+)\s*([km])?$", re.IGNORECASE)
_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


@dataclass(frozen=True)
class RuleMatch:
    matched: bool
    score: float = 0.0


NO_MATCH = RuleMatch(False, 0.0)


def parse_number(value: Any) -> float | None:
    """Leniently parse a numeric answer.

    Strips ``$`` and thousands separators and honours ``k``/``m`` suffixes.
    Returns None when the value is not a number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    text = value.strip().replace("$", "").replace(",", "")
    match = _NUMBER_RE.match(text)
    if match is None:
        return None
    number = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        number *= _MULTIPLIERS[suffix.lower()]
    return number


def _norm(value: Any) -> str:
    return str(value).strip().casefold()


def _loosely_equal(answer: str, expected: Any) -> bool:
    """Numeric equality when both sides parse, else case-insensitive text."""
    a = parse_number(answer)
    b = parse_number(expected)
    if a is not None and b is not None:
        return a == b
    return _norm(answer) == _norm(expected)


class RuleEvaluator:
    """Evaluates rule groups.

    Args:
        concepts: optional registry used when a leaf's mapping key is absent
            from the answers but the leaf names a concept.
    """

    def __init__(self, concepts: ConceptRegistry | None = None) -> None:
        self._concepts = concepts

    def evaluate(self, group: RuleGroup, answers: dict[str, str]) -> RuleMatch:
        """Evaluate ``group`` against ``answers``."""
        results = [self._evaluate_rule(rule, answers) for rule in group.rules]

        if group.logic == "AND":
            if all(r.matched for r in results):
                return RuleMatch(True, sum(r.score for r in results))
            return NO_MATCH

        matched = [r for r in results if r.matched]
        if not matched:
            return NO_MATCH
        return RuleMatch(True, sum(r.score for r in matched))

    def matches(self, group: RuleGroup, answers: dict[str, str]) -> bool:
        return self.evaluate(group, answers).matched

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _evaluate_rule(self, rule: RuleGroup | Condition, answers: dict[str, str]) -> RuleMatch:
        if isinstance(rule, RuleGroup):
            return self.evaluate(rule, answers)
        if self._check_condition(rule, answers):
            return RuleMatch(True, rule.weight)
        return NO_MATCH

    def _resolve(self, cond: Condition, answers: dict[str, str]) -> str | None:
        value = answers.get(cond.field.mapping_key)
        if value is not None and str(value).strip():
            return str(value)
        if cond.field.concept and self._concepts is not None:
            return self._concepts.resolve(cond.field.concept, answers)
        return None

    def _check_condition(self, cond: Condition, answers: dict[str, str]) -> bool:
        answer = self._resolve(cond, answers)
        op = cond.operator

        if op == "exists":
            return answer is not None
        if answer is None:
            return False

        if op == "equals":
            return _loosely_equal(answer, cond.value)
        if op == "notEquals":
            return not _loosely_equal(answer, cond.value)
        if op == "contains":
            return _norm(cond.value) in _norm(answer)
        if op == "in":
            options = cond.value if isinstance(cond.value, list) else [cond.value]
            return any(_loosely_equal(answer, opt) for opt in options)
        if op in ("greaterThan", "lessThan"):
            return self._compare(cond, answer)
        if op == "between":
            return self._between(cond, answer)

        # Unreachable for validated models; kept for hand-built conditions
        logger.warning("Unknown operator '%s' on field '%s'", op, cond.field.mapping_key)
        return False

    def _compare(self, cond: Condition, answer: str) -> bool:
        threshold = parse_number(cond.value)
        if threshold is None:
            logger.warning(
                "Non-numeric value %r for %s on field '%s'; treating as non-match",
                cond.value, cond.operator, cond.field.mapping_key,
            )
            return False
        number = parse_number(answer)
        if number is None:
            return False
        if cond.operator == "greaterThan":
            return number > threshold
        return number < threshold

    def _between(self, cond: Condition, answer: str) -> bool:
        bounds = cond.value
        lo = hi = None
        if isinstance(bounds, (list, tuple)) and len(bounds) == 2:
            lo, hi = parse_number(bounds[0]), parse_number(bounds[1])
        if lo is None or hi is None:
            logger.warning(
                "between on field '%s' needs [min, max] numbers, got %r; treating as non-match",
                cond.field.mapping_key, bounds,
            )
            return False
        number = parse_number(answer)
        if number is None:
            return False
        return lo <= number <= hi
