import pytest

from leadflow_engine.compiler import compile_flow
from leadflow_engine.models.flow import FieldDefinition
from leadflow_engine.store import FlowStore


@pytest.fixture(scope="session")
def store():
    """Load the repo's flows/ directory once for the entire test session."""
    s = FlowStore()
    s.load()
    return s


@pytest.fixture
def budget_timeline_config():
    """Two-field linear flow: budget (order 1) then timeline (order 2)."""
    return compile_flow(
        [
            FieldDefinition(mapping_key="budget", order=1, prompt="What's your budget?"),
            FieldDefinition(mapping_key="timeline", order=2, prompt="When do you want to move?"),
        ],
        flow_id="test",
    )
