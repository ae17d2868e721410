"""ConceptRegistry — cross-flow field resolution for rule evaluation.

Usage::

    registry = ConceptRegistry(concepts)
    registry.resolve("budget", answers)   # -> value under any budget alias
    registry.find_by_field("maxPrice")    # -> Concept("budget")
"""

from __future__ import annotations

import logging
from typing import Iterable

from leadflow_engine.models.concept import Concept

logger = logging.getLogger(__name__)


class ConceptRegistry:
    """Lookup table over a list of :class:`Concept` definitions."""

    def __init__(self, concepts: Iterable[Concept] = ()) -> None:
        self._concepts: dict[str, Concept] = {}
        for c in concepts:
            if c.concept in self._concepts:
                logger.warning("Duplicate concept '%s'; keeping the first", c.concept)
                continue
            self._concepts[c.concept] = c

    def __len__(self) -> int:
        return len(self._concepts)

    def __iter__(self):
        return iter(self._concepts.values())

    def get(self, concept: str) -> Concept | None:
        return self._concepts.get(concept)

    def find_by_field(self, field_id: str, question_text: str | None = None) -> Concept | None:
        """Find the concept a mapping key (or, failing that, a prompt) belongs to.

        Alias matching is case-insensitive.  When no alias matches and
        ``question_text`` is given, the concept's example fragments are
        searched for in the lower-cased text.
        """
        needle = field_id.lower()
        for c in self._concepts.values():
            if any(alias.lower() == needle for alias in c.aliases):
                return c

        if question_text:
            lowered = question_text.lower()
            for c in self._concepts.values():
                if any(ex.lower() in lowered for ex in c.examples):
                    return c
        return None

    @staticmethod
    def normalize(concept: Concept, value: str) -> str:
        """Map ``value`` onto the concept's standard vocabulary, if listed."""
        return concept.value_normalizations.get(value.strip().lower(), value)

    def resolve(self, concept: str, answers: dict[str, str]) -> str | None:
        """Return the normalised answer stored under any alias of ``concept``.

        Returns None when the concept is unknown or no alias has a
        non-empty answer.
        """
        c = self._concepts.get(concept)
        if c is None:
            return None

        # Case-insensitive key lookup; the first alias in list order wins
        by_lower = {k.lower(): v for k, v in answers.items()}
        for alias in c.aliases:
            value = by_lower.get(alias.lower())
            if value is not None and str(value).strip():
                return self.normalize(c, str(value))
        return None
