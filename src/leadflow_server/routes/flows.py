"""Flow reference endpoints — flows, compiled configs, concepts and per-flow concept maps.

Read-only views of what the ``FlowStore`` loaded from ``flows/``.  They
don't require a client header since the data is configuration, not
session data.
"""

from fastapi import APIRouter, Depends

from leadflow_engine.models.concept import Concept
from leadflow_engine.models.machine import StateMachineConfig
from leadflow_engine.store import FlowStore

from leadflow_server.dependencies import get_store

router = APIRouter(prefix="/flows", tags=["flows"])


@router.get("")
def list_flows(store: FlowStore = Depends(get_store)) -> list[dict]:
    """Return every loaded flow with its current version."""
    return [
        {
            "flow_id": flow.flow_id,
            "version": flow.version,
            "label": flow.label,
            "field_count": len(flow.fields),
            "authored_state_machine": flow.state_machine is not None,
        }
        for flow in store.list_flows()
    ]


@router.get("/concepts")
def list_concepts(store: FlowStore = Depends(get_store)) -> list[Concept]:
    return list(store.concepts)


@router.get("/{flow_id}/config")
def get_flow_config(
    flow_id: str,
    store: FlowStore = Depends(get_store),
) -> StateMachineConfig:
    """Return the compiled state machine.  Raises 404 for an unknown flow."""
    return store.get_config(flow_id)


@router.get("/{flow_id}/concepts")
def get_flow_concepts(
    flow_id: str,
    store: FlowStore = Depends(get_store),
) -> dict[str, str | None]:
    """Mapping key -> concept for every field the flow collects."""
    return store.concept_map(flow_id)
