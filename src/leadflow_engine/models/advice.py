"""Advice and story content models.

Advice items are authored content snippets attached to conversation states.
An item is targeted either by an explicit rule group (evaluated against the
session's answers) or, when it has none, by the timeline phases inferred
from its tags.  Items with neither are universal fallbacks.
"""

from typing import Literal, Optional

from pydantic import BaseModel

from leadflow_engine.models.rules import RuleGroup


class AdviceItem(BaseModel):
    id: str
    title: str
    body: str = ""
    rule_group: Optional[RuleGroup] = None
    tags: list[str] = []
    # State IDs or phase IDs the item may attach to (empty = anywhere)
    placements: list[str] = []
    # Flow IDs the item applies to (empty = every flow)
    flows: list[str] = []
    kind: Literal["advice", "story"] = "advice"


class AdviceMatch(BaseModel):
    """A candidate item with the tier and score it was ranked by."""

    item: AdviceItem
    score: float = 0.0
    match: Literal["rule", "tag", "universal"]
    reason: str = ""
