"""Configuration error types raised by the conversation engine.

Extraction misses and malformed rule leaves are *not* exceptions: the
former feed the stall path, the latter degrade to a non-match with a
warning.  Everything here indicates a corrupted or inconsistent flow
configuration and is meant for the operator, not the end user.
"""


class FlowConfigurationError(Exception):
    """A flow definition or state machine violates a structural invariant."""


class StateNotFoundError(FlowConfigurationError):
    """A state ID referenced at turn time does not exist in the config."""

    def __init__(self, state_id: str, config_id: str) -> None:
        super().__init__(f"State '{state_id}' does not exist in config '{config_id}'")
        self.state_id = state_id
        self.config_id = config_id


class CascadeLimitError(FlowConfigurationError):
    """Cascading skip ran for more hops than the config has states."""

    def __init__(self, start_state_id: str, hops: int) -> None:
        super().__init__(
            f"Cascading skip from '{start_state_id}' exceeded {hops} hops; "
            "the state graph contains a skip cycle"
        )
        self.start_state_id = start_state_id
        self.hops = hops
