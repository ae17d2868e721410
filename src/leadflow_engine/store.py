"""FlowStore — loads YAML flow documents from ``flows/`` into typed models.

This is the single source of flow data at runtime.  The store is loaded
once at startup and serves compiled state machines through an injected
:class:`CompiledFlowCache`.

Layout::

    flows/
      concepts.yaml          list of Concept
      advice.yaml            list of AdviceItem
      definitions/*.yaml     one FlowDefinition per file

Usage::

    store = FlowStore()             # defaults to flows/ relative to repo root
    store.load()                    # parse all YAML files

    config = store.get_config("buyer")
    items = store.advice_items("buyer")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from leadflow_engine.cache import CompiledFlowCache
from leadflow_engine.compiler import compile_flow, validate_config
from leadflow_engine.concepts import ConceptRegistry
from leadflow_engine.errors import FlowConfigurationError
from leadflow_engine.interfaces import AdviceSource
from leadflow_engine.models.advice import AdviceItem
from leadflow_engine.models.concept import Concept
from leadflow_engine.models.flow import FlowDefinition
from leadflow_engine.models.machine import StateMachineConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# FlowStore
# ---------------------------------------------------------------------------

class FlowStore:
    """Loads all YAML from ``flows/`` and provides typed lookup.

    Attributes populated after :meth:`load`:

        flows     — dict[flow_id, FlowDefinition]
        advice    — list[AdviceItem]
        concepts  — ConceptRegistry
    """

    def __init__(
        self,
        flow_dir: str | Path | None = None,
        cache: CompiledFlowCache | None = None,
    ) -> None:
        if flow_dir is None:
            flow_dir = find_repo_root() / "flows"
        self._base = Path(flow_dir)
        self._cache = cache or CompiledFlowCache()

        # Populated by load()
        self.flows: dict[str, FlowDefinition] = {}
        self.advice: list[AdviceItem] = []
        self.concepts = ConceptRegistry()

    @property
    def cache(self) -> CompiledFlowCache:
        return self._cache

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse all YAML files under the flow directory into typed models.

        Call this once at startup.  Every flow is compiled and validated
        eagerly so a broken document fails here, not on a user's turn.

        Raises:
            FileNotFoundError: ``definitions/`` is missing.
            FlowConfigurationError: a flow fails validation.
        """
        self._load_concepts()
        self._load_advice()
        self._load_definitions()
        for flow_id in self.flows:
            self.get_config(flow_id)
        logger.info(
            "FlowStore loaded: %d flows, %d advice items, %d concepts",
            len(self.flows),
            len(self.advice),
            len(self.concepts),
        )

    def _load_concepts(self) -> None:
        path = self._base / "concepts.yaml"
        if not path.exists():
            logger.info("No concepts.yaml under %s; concept aliases disabled", self._base)
            return
        self.concepts = ConceptRegistry(Concept(**raw) for raw in load_yaml(path) or [])

    def _load_advice(self) -> None:
        path = self._base / "advice.yaml"
        if not path.exists():
            logger.info("No advice.yaml under %s; advice disabled", self._base)
            return
        self.advice = [AdviceItem(**raw) for raw in load_yaml(path) or []]

    def _load_definitions(self) -> None:
        def_dir = self._base / "definitions"
        if not def_dir.is_dir():
            raise FileNotFoundError(f"Missing flow definitions directory: {def_dir}")
        for path in sorted(def_dir.glob("*.yaml")):
            definition = FlowDefinition(**load_yaml(path))
            if definition.flow_id in self.flows:
                raise FlowConfigurationError(
                    f"Flow '{definition.flow_id}' defined twice (second in {path.name})"
                )
            self.flows[definition.flow_id] = definition

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def list_flows(self) -> list[FlowDefinition]:
        return [self.flows[k] for k in sorted(self.flows)]

    def get_flow(self, flow_id: str) -> FlowDefinition:
        """Look up a flow definition.  Raises ValueError if not found."""
        definition = self.flows.get(flow_id)
        if definition is None:
            raise ValueError(f"Flow '{flow_id}' not found")
        return definition

    def register_flow(self, definition: FlowDefinition) -> None:
        """Add or replace a flow at runtime.

        Replacing a flow with a different version drops its cached config.
        """
        old = self.flows.get(definition.flow_id)
        self.flows[definition.flow_id] = definition
        if old is not None and old.version != definition.version:
            logger.info(
                "Flow '%s' updated v%d -> v%d", definition.flow_id, old.version, definition.version,
            )
            self._cache.invalidate(definition.flow_id)

    def get_config(self, flow_id: str) -> StateMachineConfig:
        """Compiled (or authored, validated) state machine for the current version."""
        definition = self.get_flow(flow_id)
        return self._cache.get_or_compile(
            definition.flow_id, definition.version, lambda: self._build(definition),
        )

    @staticmethod
    def _build(definition: FlowDefinition) -> StateMachineConfig:
        if definition.state_machine is not None:
            config = definition.state_machine
            if config.flow_id != definition.flow_id or config.version != definition.version:
                raise FlowConfigurationError(
                    f"State machine '{config.id}' does not match flow "
                    f"'{definition.flow_id}' v{definition.version}"
                )
        else:
            config = compile_flow(
                definition.fields, flow_id=definition.flow_id, version=definition.version,
            )
        validate_config(config)
        return config

    def concept_map(self, flow_id: str) -> dict[str, str | None]:
        """Concept behind each mapping key the flow collects, in state order.

        Keys are matched by alias first, then by the asking state's prompt
        against concept examples.  Unmatched keys map to None; rules on
        those keys cannot be shared across flows.
        """
        mapping: dict[str, str | None] = {}
        for state in self.get_config(flow_id).states:
            for collect in state.collects:
                if collect.mapping_key in mapping:
                    continue
                concept = self.concepts.find_by_field(collect.mapping_key, state.prompt)
                mapping[collect.mapping_key] = concept.concept if concept else None
        return mapping

    # ------------------------------------------------------------------
    # Advice
    # ------------------------------------------------------------------

    def advice_items(self, flow_id: str) -> list[AdviceItem]:
        """Advice snapshot for ``flow_id`` (items with no flow filter included)."""
        return [a for a in self.advice if not a.flows or flow_id in a.flows]

    def advice_source(self) -> AdviceSource:
        return FlowStoreAdviceSource(self)


class FlowStoreAdviceSource(AdviceSource):
    """Serves the store's YAML advice snapshot through :class:`AdviceSource`."""

    def __init__(self, store: FlowStore) -> None:
        self._store = store

    async def load(
        self, flow_id: str, state_id: str, answers: dict[str, str]
    ) -> list[AdviceItem]:
        return self._store.advice_items(flow_id)
