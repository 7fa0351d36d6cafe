"""
db/models/catalog.py

Reference catalog populated by the catalog crawler, and the crawler's
persisted cursor state.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

CRAWLER_STATE_ID = "default"


class ContributorKind:
    PUBLISHER = "publisher"
    DESIGNER = "designer"
    ARTIST = "artist"

    ALL = (PUBLISHER, DESIGNER, ARTIST)


catalog_entry_tags = Table(
    "catalog_entry_tags",
    Base.metadata,
    Column(
        "entry_id",
        Uuid(as_uuid=True),
        ForeignKey("catalog_entries.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Uuid(as_uuid=True),
        ForeignKey("catalog_tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

catalog_entry_contributors = Table(
    "catalog_entry_contributors",
    Base.metadata,
    Column(
        "entry_id",
        Uuid(as_uuid=True),
        ForeignKey("catalog_entries.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "contributor_id",
        Uuid(as_uuid=True),
        ForeignKey("catalog_contributors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class CatalogTag(Base):
    __tablename__ = "catalog_tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)


class CatalogContributor(Base):
    __tablename__ = "catalog_contributors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, comment="publisher, designer, artist")
    name: Mapped[str] = mapped_column(String(300), nullable=False)

    __table_args__ = (UniqueConstraint("kind", "name", name="uq_catalog_contributors_kind_name"),)


class CatalogEntry(Base, TimestampMixin):
    __tablename__ = "catalog_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    normalized_title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    play_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    suggested_age: Mapped[str | None] = mapped_column(String(16), nullable=True)
    year_published: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_expansion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    tags: Mapped[list[CatalogTag]] = relationship(secondary=catalog_entry_tags, lazy="selectin")
    contributors: Mapped[list[CatalogContributor]] = relationship(
        secondary=catalog_entry_contributors,
        lazy="selectin",
    )

    __table_args__ = (Index("ix_catalog_entries_normalized_title", "normalized_title"),)


class CrawlerState(Base, TimestampMixin):
    __tablename__ = "catalog_crawler_state"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=CRAWLER_STATE_ID)
    next_external_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
