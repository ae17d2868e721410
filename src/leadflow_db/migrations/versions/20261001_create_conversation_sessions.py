"""Create conversation_sessions table.

Revision ID: 20261001_sessions
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261001_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "conversation_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        # Identity
        sa.Column("client_id", sa.Text, nullable=False),
        sa.Column("session_id", sa.Text, nullable=False),
        # Flow
        sa.Column("flow_id", sa.Text, nullable=False),
        sa.Column(
            "config_version",
            sa.Integer,
            nullable=False,
            server_default=sa.text("1"),
        ),
        # Lifecycle
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column("current_state_id", sa.Text, nullable=False),
        # Collected data
        sa.Column("answers", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "attempt_counters", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("history", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("unanswered", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        # Timestamps
        sa.Column("last_activity_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        # Table-level constraints
        sa.UniqueConstraint("client_id", "session_id", name="uq_client_session"),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'abandoned')",
            name="ck_status_values",
        ),
        sa.CheckConstraint(
            "status != 'completed' OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
    )

    # --- Indexes ---
    op.create_index(
        "ix_conversation_sessions_client_id", "conversation_sessions", ["client_id"],
    )
    op.create_index(
        "ix_conversation_sessions_status", "conversation_sessions", ["status"],
    )
    op.create_index("ix_flow_id", "conversation_sessions", ["flow_id"])
    op.create_index(
        "ix_active_last_activity",
        "conversation_sessions",
        ["last_activity_at"],
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "ix_answers_gin",
        "conversation_sessions",
        ["answers"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_table("conversation_sessions")
