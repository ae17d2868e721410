"""ConversationSession ORM model — single row per conversation.

Each row holds the complete ``SessionState`` of one conversation.  Answers,
attempt counters and history live in JSONB columns so the engine can load
a single row and resume the conversation without touching other tables.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leadflow_db.models.base import Base
from leadflow_db.models.enums import SessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSession(Base):
    """One row per conversation session.

    A client (tenant) may have many sessions; each is uniquely identified
    by the (client_id, session_id) pair.
    """

    __tablename__ = "conversation_sessions"

    # --- Primary key ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    # Tenant the widget belongs to (sent as X-Client-ID)
    client_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Caller-supplied session identifier, unique within a client
    session_id: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Flow ---
    flow_id: Mapped[str] = mapped_column(Text, nullable=False)
    # Flow version the session was started against
    config_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # --- Lifecycle ---
    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.ACTIVE,
        index=True,
    )
    current_state_id: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Collected data ---
    # Flat dict: {"budget": "450000", "timeline": "3-6"}
    answers: Mapped[dict] = mapped_column(
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    # Failed attempts per state id
    attempt_counters: Mapped[dict] = mapped_column(
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    # [{"state_id": ..., "entered_at": "ISO8601", "skipped": bool}, ...]
    history: Mapped[list] = mapped_column(
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )
    # Keys given up on: required ones by a stall force-advance, optional ones after max_attempts
    unanswered: Mapped[list] = mapped_column(
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )

    # --- Timestamps ---
    last_activity_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=_utcnow,
    )
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # --- Table-level constraints ---
    __table_args__ = (
        UniqueConstraint("client_id", "session_id", name="uq_client_session"),
        CheckConstraint(
            "status IN ('active', 'completed', 'abandoned')",
            name="ck_status_values",
        ),
        # Completed sessions must record when they finished
        CheckConstraint(
            "status != 'completed' OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
        # --- Indexes ---
        Index("ix_flow_id", "flow_id"),
        # Idle sweep scans active sessions by last activity
        Index(
            "ix_active_last_activity",
            "last_activity_at",
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_answers_gin", "answers", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConversationSession(id={self.id!s}, client={self.client_id!r}, "
            f"session={self.session_id!r}, flow={self.flow_id!r}, "
            f"status={self.status!r}, state={self.current_state_id!r})>"
        )
