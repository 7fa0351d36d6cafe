"""
db/models/game.py

Library games created by bulk imports, plus the shared mechanic vocabulary.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

game_mechanics = Table(
    "game_mechanics",
    Base.metadata,
    Column("game_id", Uuid(as_uuid=True), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "mechanic_id",
        Uuid(as_uuid=True),
        ForeignKey("mechanics.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Mechanic(Base):
    __tablename__ = "mechanics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)


class Publisher(Base):
    __tablename__ = "publishers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(300), nullable=False, unique=True)


class Game(Base, TimestampMixin):
    __tablename__ = "games"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    library_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    normalized_title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(520), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_players: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    max_players: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    play_time: Mapped[str] = mapped_column(String(32), nullable=False, default="45-60 Minutes")
    difficulty: Mapped[str] = mapped_column(String(32), nullable=False, default="3 - Medium")
    game_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Board Game")
    suggested_age: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_expansion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_game_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("games.id", ondelete="SET NULL"),
        nullable=True,
    )
    publisher_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("publishers.id", ondelete="SET NULL"),
        nullable=True,
    )
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    is_coming_soon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_for_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sale_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    sale_condition: Mapped[str | None] = mapped_column(String(32), nullable=True)
    location_room: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location_shelf: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location_misc: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sleeved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    upgraded_components: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    crowdfunded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inserts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    mechanics: Mapped[list[Mechanic]] = relationship(secondary=game_mechanics, lazy="selectin")
    publisher: Mapped[Publisher | None] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("library_id", "slug", name="uq_games_library_id_slug"),
        Index("ix_games_library_id_external_id", "library_id", "external_id"),
        Index("ix_games_library_id_normalized_title", "library_id", "normalized_title"),
        Index("ix_games_parent_game_id", "parent_game_id"),
    )
