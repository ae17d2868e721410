"""leadflow_db — PostgreSQL persistence layer for conversation sessions.

This package provides the ORM model, async engine factory, and repository
for creating, updating, and querying conversation sessions.  It is the
persistence collaborator of the conversation engine and is consumed by the
FastAPI server and the idle-session cleanup CLI.
"""

from leadflow_db.models.session import ConversationSession
from leadflow_db.models.enums import SessionStatus
from leadflow_db.engine import dispose_engine, get_engine, get_session_factory, session_scope
from leadflow_db.repository import SessionRepository

__all__ = [
    "ConversationSession",
    "SessionStatus",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "SessionRepository",
]
