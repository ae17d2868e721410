"""Rule-group models shared by state transitions and advice targeting.

A rule group is a boolean AND/OR tree.  Each entry in ``rules`` is either a
nested ``RuleGroup`` or a leaf ``Condition``.  Trees are parsed from YAML or
JSON documents and are acyclic by construction.

Operators:
  - equals, notEquals: numeric when both sides parse as numbers, otherwise
    case-insensitive string comparison
  - contains: case-insensitive substring
  - in: answer equals any member of the value list
  - greaterThan, lessThan: numeric comparisons
  - between: value is [min, max] inclusive
  - exists: satisfied by presence alone

The snake-case spellings used by older advice documents (``not_equals``,
``greater_than``, ``less_than``, ``includes``) are accepted on load.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Tag, field_validator

from leadflow_engine.constants import DEFAULT_RULE_WEIGHT

Operator = Literal[
    "equals", "notEquals", "contains", "in",
    "greaterThan", "lessThan", "between", "exists",
]

_OPERATOR_ALIASES: dict[str, str] = {
    "eq": "equals",
    "ne": "notEquals",
    "not_equals": "notEquals",
    "greater_than": "greaterThan",
    "gt": "greaterThan",
    "less_than": "lessThan",
    "lt": "lessThan",
    "includes": "in",
}


class FieldRef(BaseModel):
    """The answer a leaf reads: a mapping key plus an optional concept tag.

    The concept lets one rule match across flows where the same idea is
    stored under different mapping keys (e.g. ``budget`` vs ``maxPrice``).
    """

    mapping_key: str
    concept: Optional[str] = None


class Condition(BaseModel):
    """Leaf rule: apply ``operator`` to the answer for ``field`` and ``value``."""

    field: FieldRef
    operator: Operator
    value: Any = None
    weight: float = DEFAULT_RULE_WEIGHT

    @field_validator("field", mode="before")
    @classmethod
    def _field_shorthand(cls, v: Any) -> Any:
        # "budget" is shorthand for {"mapping_key": "budget"}
        if isinstance(v, str):
            return {"mapping_key": v}
        return v

    @field_validator("operator", mode="before")
    @classmethod
    def _operator_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _OPERATOR_ALIASES.get(v, v)
        return v


def _rule_kind(v: Any) -> str:
    """Tell a nested group from a leaf: groups carry ``logic`` + ``rules``."""
    if isinstance(v, dict):
        return "group" if "rules" in v else "condition"
    return "group" if isinstance(v, RuleGroup) else "condition"


class RuleGroup(BaseModel):
    """Boolean group of conditions and nested groups."""

    logic: Literal["AND", "OR"] = "AND"
    rules: List[
        Annotated[
            Union[
                Annotated[RuleGroup, Tag("group")],
                Annotated[Condition, Tag("condition")],
            ],
            Discriminator(_rule_kind),
        ]
    ] = []

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    def iter_conditions(self):
        """Yield every leaf condition in array order, depth first."""
        for rule in self.rules:
            if isinstance(rule, RuleGroup):
                yield from rule.iter_conditions()
            else:
                yield rule


RuleGroup.model_rebuild()
