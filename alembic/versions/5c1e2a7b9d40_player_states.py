"""player_states

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-12 19:40:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e2a7b9d40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "player_states",
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("login", sa.String(length=128), nullable=True),
        sa.Column("password", sa.String(length=256), nullable=True),
        sa.Column("domain", sa.String(length=255), nullable=True),
        sa.Column("game_id", sa.String(length=32), nullable=True),
        sa.Column("auth_credentials", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("last_known_level", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "answer_backlog",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "accumulation_buffer",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("accumulation_anchor_level", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("accumulation_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("queue_conflict", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("single_answer_conflict", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("platform", "user_id"),
    )
    op.create_index("idx_player_states_updated_at", "player_states", ["updated_at"])


def downgrade() -> None:
    op.drop_index("idx_player_states_updated_at", table_name="player_states")
    op.drop_table("player_states")
