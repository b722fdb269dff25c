"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:30:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # profiles and knowledge_base belong to the platform and indexing pipeline; only chat logs live here.
    op.create_table(
        "zoe_conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_session_id", sa.String(), nullable=False),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("locale", sa.String(), nullable=True),
        sa.Column("audience", postgresql.JSONB(), nullable=True),
        sa.Column("last_user_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_assistant_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("external_session_id", name="uq_zoe_conversations_external_session_id"),
    )
    op.create_index("ix_zoe_conversations_tenant_id", "zoe_conversations", ["tenant_id"])
    op.create_index("ix_zoe_conversations_user_id", "zoe_conversations", ["user_id"])

    op.create_table(
        "zoe_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("zoe_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_zoe_messages_conversation_created",
        "zoe_messages",
        ["conversation_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_zoe_messages_conversation_created", table_name="zoe_messages")
    op.drop_table("zoe_messages")
    op.drop_index("ix_zoe_conversations_user_id", table_name="zoe_conversations")
    op.drop_index("ix_zoe_conversations_tenant_id", table_name="zoe_conversations")
    op.drop_table("zoe_conversations")
