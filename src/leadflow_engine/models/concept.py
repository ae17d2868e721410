"""Concept model — a flow-independent name for one kind of answer.

Different flows store the same idea under different mapping keys
(``budget`` in one, ``maxPrice`` in another).  A concept lists those
aliases so rules written against the concept work across flows, and maps
free-form values onto a standard vocabulary.
"""

from typing import Literal

from pydantic import BaseModel


class Concept(BaseModel):
    concept: str
    label: str
    description: str = ""
    # Mapping-key spellings that carry this concept (matched case-insensitively)
    aliases: list[str] = []
    value_type: Literal["categorical", "numeric", "text"] = "text"
    common_values: list[str] = []
    # Lower-cased user value -> standard value
    value_normalizations: dict[str, str] = {}
    # Question fragments used to recognise the concept from prompt text
    examples: list[str] = []
