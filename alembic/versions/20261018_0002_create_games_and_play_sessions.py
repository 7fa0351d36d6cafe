"""create games, mechanics, publishers and play session tables

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 09:10:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "mechanics",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "publishers",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "games",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("library_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("normalized_title", sa.String(length=500), nullable=False),
        sa.Column("slug", sa.String(length=520), nullable=False),
        sa.Column("external_id", sa.String(length=32), nullable=True),
        sa.Column("external_url", sa.String(length=500), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("min_players", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("max_players", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("play_time", sa.String(length=32), nullable=False, server_default="45-60 Minutes"),
        sa.Column("difficulty", sa.String(length=32), nullable=False, server_default="3 - Medium"),
        sa.Column("game_type", sa.String(length=32), nullable=False, server_default="Board Game"),
        sa.Column("suggested_age", sa.String(length=16), nullable=True),
        sa.Column("is_expansion", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("parent_game_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("publisher_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_coming_soon", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_for_sale", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sale_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("sale_condition", sa.String(length=32), nullable=True),
        sa.Column("location_room", sa.String(length=200), nullable=True),
        sa.Column("location_shelf", sa.String(length=200), nullable=True),
        sa.Column("location_misc", sa.String(length=200), nullable=True),
        sa.Column("sleeved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("upgraded_components", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("crowdfunded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("inserts", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["parent_game_id"], ["games.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["publisher_id"], ["publishers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("library_id", "slug", name="uq_games_library_id_slug"),
    )
    op.create_index("ix_games_library_id_external_id", "games", ["library_id", "external_id"], unique=False)
    op.create_index(
        "ix_games_library_id_normalized_title",
        "games",
        ["library_id", "normalized_title"],
        unique=False,
    )
    op.create_index("ix_games_parent_game_id", "games", ["parent_game_id"], unique=False)

    op.create_table(
        "game_mechanics",
        sa.Column("game_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mechanic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["mechanic_id"], ["mechanics.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("game_id", "mechanic_id"),
    )

    op.create_table(
        "play_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("library_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("game_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(length=300), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "source_id",
            sa.String(length=100),
            nullable=True,
            comment="Play identifier from the source export, used for duplicate detection",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("library_id", "source_id", name="uq_play_sessions_library_id_source_id"),
    )
    op.create_index("ix_play_sessions_game_id", "play_sessions", ["game_id"], unique=False)

    op.create_table(
        "play_session_players",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player_name", sa.String(length=200), nullable=False),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("is_winner", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_first_play", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("color", sa.String(length=50), nullable=True),
        sa.Column("external_username", sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["play_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_play_session_players_session_id",
        "play_session_players",
        ["session_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_play_session_players_session_id", table_name="play_session_players")
    op.drop_table("play_session_players")
    op.drop_index("ix_play_sessions_game_id", table_name="play_sessions")
    op.drop_table("play_sessions")
    op.drop_table("game_mechanics")
    op.drop_index("ix_games_parent_game_id", table_name="games")
    op.drop_index("ix_games_library_id_normalized_title", table_name="games")
    op.drop_index("ix_games_library_id_external_id", table_name="games")
    op.drop_table("games")
    op.drop_table("publishers")
    op.drop_table("mechanics")
