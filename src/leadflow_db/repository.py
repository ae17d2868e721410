"""Async CRUD repository for ConversationSession.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  Methods flush but never commit.

The repository is persistence-only: it reads and writes the JSON form of a
session state (``state_payload`` / ``save_state``) and leaves validation and
turn logic to the engine.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_db.models.enums import SessionStatus
from leadflow_db.models.session import ConversationSession

# Session-state fields stored on the row, besides identity
_STATE_FIELDS = (
    "flow_id",
    "config_version",
    "current_state_id",
    "answers",
    "attempt_counters",
    "history",
    "unanswered",
    "status",
    "last_activity_at",
)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, SessionStatus) else str(status)


class SessionRepository:
    """Async read/write operations on the ``conversation_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        client_id: str,
        session_id: str,
        state: dict[str, Any],
    ) -> ConversationSession:
        """Insert a new session row from a JSON state payload and return it.

        The caller must ``await db.commit()`` to persist.
        """
        row = ConversationSession(client_id=client_id, session_id=session_id)
        self._apply(row, state)
        db.add(row)
        await db.flush()  # Populate defaults (id, timestamps)
        return row

    # ------------------------------------------------------------------
    # Read: single row
    # ------------------------------------------------------------------

    async def get_by_id(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> ConversationSession | None:
        return await db.get(ConversationSession, session_pk)

    async def get_by_client_and_session(
        self,
        db: AsyncSession,
        client_id: str,
        session_id: str,
        *,
        for_update: bool = False,
    ) -> ConversationSession | None:
        """Fetch a session by the unique (client_id, session_id) pair.

        With ``for_update`` the row is locked (``SELECT ... FOR UPDATE``)
        until the caller's transaction ends, so a concurrent turn on the
        same session waits and then reads the committed result.
        """
        stmt = select(ConversationSession).where(
            ConversationSession.client_id == client_id,
            ConversationSession.session_id == session_id,
        )
        if for_update:
            # Refresh attributes even if this session already holds the row
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Read: multiple rows
    # ------------------------------------------------------------------

    async def list_by_client(
        self,
        db: AsyncSession,
        client_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ConversationSession]:
        """List sessions for a client, most recent first."""
        stmt = (
            select(ConversationSession)
            .where(ConversationSession.client_id == client_id)
            .order_by(ConversationSession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_idle_active(
        self,
        db: AsyncSession,
        cutoff: datetime,
        *,
        limit: int = 500,
    ) -> list[ConversationSession]:
        """Active sessions whose last activity is at or before ``cutoff``.

        Rows are locked for the caller's transaction; rows held by an
        in-flight turn are skipped rather than waited on.
        """
        stmt = (
            select(ConversationSession)
            .where(
                ConversationSession.status == SessionStatus.ACTIVE,
                ConversationSession.last_activity_at <= cutoff,
            )
            .order_by(ConversationSession.last_activity_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @staticmethod
    def state_payload(row: ConversationSession) -> dict[str, Any]:
        """JSON form of the row's session state (inverse of ``save_state``)."""
        return {
            "session_id": row.session_id,
            "flow_id": row.flow_id,
            "config_version": row.config_version,
            "current_state_id": row.current_state_id,
            "answers": dict(row.answers or {}),
            "attempt_counters": dict(row.attempt_counters or {}),
            "history": list(row.history or []),
            "unanswered": list(row.unanswered or []),
            "status": _status_value(row.status),
            "last_activity_at": row.last_activity_at,
        }

    async def load_state(
        self, db: AsyncSession, client_id: str, session_id: str
    ) -> dict[str, Any] | None:
        """Fetch the state payload for a session.  Returns None if not found."""
        row = await self.get_by_client_and_session(db, client_id, session_id)
        if row is None:
            return None
        return self.state_payload(row)

    async def save_state(
        self,
        db: AsyncSession,
        row: ConversationSession,
        state: dict[str, Any],
    ) -> ConversationSession:
        """Overwrite the row's session state with ``state``.

        Fresh containers are assigned so SQLAlchemy detects JSONB changes.
        """
        self._apply(row, state)
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return row

    @staticmethod
    def _apply(row: ConversationSession, state: dict[str, Any]) -> None:
        # completed_at is stamped the first time the status becomes completed
        # (see the ck_completed_has_timestamp constraint)
        for field in _STATE_FIELDS:
            if field not in state:
                continue
            value = state[field]
            if isinstance(value, dict):
                value = dict(value)
            elif isinstance(value, list):
                value = list(value)
            setattr(row, field, value)
        if _status_value(row.status) == SessionStatus.COMPLETED.value and row.completed_at is None:
            row.completed_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Update: terminal states
    # ------------------------------------------------------------------

    async def abandon_session(
        self, db: AsyncSession, row: ConversationSession
    ) -> ConversationSession:
        """Mark an idle session as abandoned."""
        row.status = SessionStatus.ABANDONED
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return row
