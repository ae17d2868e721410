"""Database-level enumerations for conversation sessions."""

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a conversation session.

    Transitions:
        active -> completed  (completion state reached)
        active -> abandoned  (idle past the inactivity window)
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
