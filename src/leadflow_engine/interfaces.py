"""Abstract interfaces for the engine's external collaborators.

These ABCs define the contract that external implementations must fulfil.
The SDK ships no LLM-backed extractor; the content store has an in-memory
implementation (``StaticAdviceSource``) and the YAML snapshot served by
``FlowStore``.

Typical integration flow::

    extractor: Extractor = MyLLMExtractor(...)
    result = await extractor.extract(text, state.collects, config.collectable_fields())
    new_state, outcome = controller.process_turn(config, session, result.pairs)

    source: AdviceSource = store.advice_source()
    items = await source.load(flow_id, outcome.new_state_id, new_state.answers)
"""

from abc import ABC, abstractmethod

from leadflow_engine.models.advice import AdviceItem
from leadflow_engine.models.machine import CollectField
from leadflow_engine.models.session import ExtractionResult


class Extractor(ABC):
    """Interface for turning a free-text utterance into answer pairs.

    The engine imposes no constraints on *how* values are extracted; only
    the input/output contract is specified here.  Retries and timeouts are
    the implementation's business.
    """

    @abstractmethod
    async def extract(
        self,
        text: str,
        collects: list[CollectField],
        vocabulary: list[CollectField],
    ) -> ExtractionResult:
        """Extract answers from ``text``.

        Parameters
        ----------
        text:
            The user's raw utterance.
        collects:
            Fields the current state is asking for.
        vocabulary:
            Every field the flow can collect, so an utterance that answers
            a later question can be captured now.

        Returns
        -------
        ExtractionResult
            ``success=False`` or an empty ``pairs`` list means nothing
            usable was found; the engine treats that as a failed attempt.
        """
        ...


class AdviceSource(ABC):
    """Interface for the content store that supplies advice snapshots."""

    @abstractmethod
    async def load(
        self, flow_id: str, state_id: str, answers: dict[str, str]
    ) -> list[AdviceItem]:
        """Return the candidate advice items for this flow and state.

        The engine filters and ranks what it is given; it never searches
        the content store itself.
        """
        ...
