"""ORM models for leadflow_db."""

from leadflow_db.models.base import Base
from leadflow_db.models.enums import SessionStatus
from leadflow_db.models.session import ConversationSession

__all__ = ["Base", "SessionStatus", "ConversationSession"]
