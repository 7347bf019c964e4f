"""servers, users, items and playback_sessions

Revision ID: pl0001
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "pl0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "servers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("server_id", "external_id", name="ux_users_server_external"),
    )
    op.create_index("ix_users_server_id", "users", ["server_id"])
    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=512), nullable=True),
        sa.Column("type", sa.String(length=32), nullable=True),
        sa.Column("runtime_ticks", sa.BigInteger(), nullable=True),
        sa.Column("series_id", sa.String(length=64), nullable=True),
        sa.Column("series_name", sa.String(length=512), nullable=True),
        sa.Column("season_id", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("server_id", "external_id", name="ux_items_server_external"),
    )
    op.create_index("ix_items_server_id", "items", ["server_id"])
    op.create_table(
        "playback_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("user_external_id", sa.String(length=64), nullable=True),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("device_name", sa.String(length=255), nullable=True),
        sa.Column("client_name", sa.String(length=255), nullable=True),
        sa.Column("item_external_id", sa.String(length=64), nullable=False),
        sa.Column("item_name", sa.Text(), nullable=True),
        sa.Column("series_external_id", sa.String(length=64), nullable=True),
        sa.Column("series_name", sa.Text(), nullable=True),
        sa.Column("season_external_id", sa.String(length=64), nullable=True),
        sa.Column("play_duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("play_method", sa.String(length=64), nullable=False, server_default="Unknown"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("position_ticks", sa.BigInteger(), nullable=True),
        sa.Column("runtime_ticks", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("percent_complete", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_playback_sessions_server_id", "playback_sessions", ["server_id"])
    op.create_index(
        "ix_playback_sessions_server_item_user_start",
        "playback_sessions",
        ["server_id", "item_external_id", "user_external_id", "start_time"],
    )


def downgrade() -> None:
    op.drop_index("ix_playback_sessions_server_item_user_start", table_name="playback_sessions")
    op.drop_index("ix_playback_sessions_server_id", table_name="playback_sessions")
    op.drop_table("playback_sessions")
    op.drop_index("ix_items_server_id", table_name="items")
    op.drop_table("items")
    op.drop_index("ix_users_server_id", table_name="users")
    op.drop_table("users")
    op.drop_table("servers")
