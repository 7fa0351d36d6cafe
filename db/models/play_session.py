"""
db/models/play_session.py

Logged plays of library games, imported from external play-tracking exports.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin


class PlaySession(Base, TimestampMixin):
    __tablename__ = "play_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    library_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("games.id", ondelete="CASCADE"),
        nullable=False,
    )
    played_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Play identifier from the source export, used for duplicate detection",
    )

    players: Mapped[list["PlaySessionPlayer"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PlaySessionPlayer.position",
    )

    __table_args__ = (
        UniqueConstraint("library_id", "source_id", name="uq_play_sessions_library_id_source_id"),
        Index("ix_play_sessions_game_id", "game_id"),
    )


class PlaySessionPlayer(Base):
    __tablename__ = "play_session_players"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("play_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player_name: Mapped[str] = mapped_column(String(200), nullable=False)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_first_play: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    external_username: Mapped[str | None] = mapped_column(String(100), nullable=True)

    session: Mapped[PlaySession] = relationship(back_populates="players")

    __table_args__ = (Index("ix_play_session_players_session_id", "session_id"),)
