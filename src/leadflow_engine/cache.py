"""CompiledFlowCache — compiled configs keyed by (flow id, version).

The cache is an explicit object passed to whoever needs it (normally the
:class:`~leadflow_engine.store.FlowStore`).  Only one version per flow is
kept: storing a new version evicts the old ones, so sessions pinned to a
retired version recompile on demand.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from leadflow_engine.models.machine import StateMachineConfig

logger = logging.getLogger(__name__)


class CompiledFlowCache:
    def __init__(self) -> None:
        self._configs: dict[tuple[str, int], StateMachineConfig] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._configs)

    def __contains__(self, key: tuple[str, int]) -> bool:
        with self._lock:
            return key in self._configs

    def get(self, flow_id: str, version: int) -> StateMachineConfig | None:
        with self._lock:
            return self._configs.get((flow_id, version))

    def put(self, config: StateMachineConfig) -> None:
        """Store ``config``, evicting any other version of the same flow."""
        with self._lock:
            stale = [k for k in self._configs if k[0] == config.flow_id and k[1] != config.version]
            for key in stale:
                del self._configs[key]
            if stale:
                logger.info(
                    "Evicted %d stale config(s) for flow '%s' (now v%d)",
                    len(stale), config.flow_id, config.version,
                )
            self._configs[(config.flow_id, config.version)] = config

    def get_or_compile(
        self,
        flow_id: str,
        version: int,
        builder: Callable[[], StateMachineConfig],
    ) -> StateMachineConfig:
        """Return the cached config, building and storing it on a miss.

        ``builder`` runs under the lock so concurrent misses compile once.
        """
        key = (flow_id, version)
        with self._lock:
            config = self._configs.get(key)
            if config is not None:
                return config
            config = builder()
            stale = [k for k in self._configs if k[0] == flow_id and k != key]
            for k in stale:
                del self._configs[k]
            self._configs[key] = config
            logger.debug("Compiled and cached %s v%d", flow_id, version)
            return config

    def invalidate(self, flow_id: str) -> None:
        """Drop every cached version of ``flow_id``."""
        with self._lock:
            for key in [k for k in self._configs if k[0] == flow_id]:
                del self._configs[key]
