"""
Repository for library games created by bulk imports.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.domain.game_records import CanonicalGameRecord, normalize_title
from db.models.game import Game, Mechanic, Publisher

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")

# Columns a caller may default for every created game.
DEFAULT_OVERRIDE_FIELDS = (
    "is_coming_soon",
    "is_for_sale",
    "sale_price",
    "sale_condition",
    "location_room",
    "location_shelf",
    "location_misc",
    "sleeved",
    "upgraded_components",
    "crowdfunded",
    "inserts",
)


def slugify(title: str) -> str:
    slug = _SLUG_STRIP_RE.sub("-", title.lower()).strip("-")
    return slug or "game"


class GameRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def find_existing(self, *, library_id: uuid.UUID, record: CanonicalGameRecord) -> Game | None:
        """
        Look up a game by the record's identity: external id when present,
        else normalized title.
        """

        stmt = select(Game).where(Game.library_id == library_id)
        if record.external_id:
            stmt = stmt.where(Game.external_id == record.external_id)
        else:
            normalized = normalize_title(record.title)
            if not normalized:
                return None
            stmt = stmt.where(Game.normalized_title == normalized)
        return self._session.scalars(stmt.limit(1)).first()

    def list_games(self, *, library_id: uuid.UUID) -> list[Game]:
        stmt = select(Game).where(Game.library_id == library_id).order_by(Game.created_at)
        return list(self._session.scalars(stmt).all())

    def create_game(
        self,
        *,
        library_id: uuid.UUID,
        record: CanonicalGameRecord,
        defaults: dict[str, Any] | None = None,
    ) -> Game:
        if not record.title:
            raise ValueError("A game needs a title.")
        defaults = defaults or {}

        overrides = {name: defaults[name] for name in DEFAULT_OVERRIDE_FIELDS if defaults.get(name) is not None}
        if record.location_shelf:
            overrides["location_shelf"] = record.location_shelf
        if record.is_for_sale is not None:
            overrides["is_for_sale"] = record.is_for_sale

        game = Game(
            library_id=library_id,
            title=record.title.strip(),
            normalized_title=normalize_title(record.title),
            slug=self._unique_slug(library_id=library_id, title=record.title),
            external_id=record.external_id,
            external_url=record.external_url,
            image_url=record.image_url,
            description=record.description,
            min_players=record.min_players or 2,
            max_players=record.max_players or 4,
            play_time=record.play_time or "45-60 Minutes",
            difficulty=record.difficulty or "3 - Medium",
            game_type=record.game_type or "Board Game",
            suggested_age=record.suggested_age,
            is_expansion=record.is_expansion,
            purchase_date=record.purchase_date,
            purchase_price=record.purchase_price,
            **overrides,
        )
        if record.publisher:
            game.publisher = self._get_or_create_publisher(record.publisher)
        for name in sorted(record.mechanics):
            game.mechanics.append(self._get_or_create_mechanic(name))

        self._session.add(game)
        self._session.flush()
        return game

    def set_parent(self, *, game_id: uuid.UUID, parent_game_id: uuid.UUID) -> None:
        self._session.execute(update(Game).where(Game.id == game_id).values(parent_game_id=parent_game_id))

    def update_description(self, *, game_id: uuid.UUID, description: str) -> bool:
        result = self._session.execute(update(Game).where(Game.id == game_id).values(description=description))
        return result.rowcount > 0

    def count_games(self, *, library_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Game).where(Game.library_id == library_id)
        return int(self._session.scalar(stmt) or 0)

    def _unique_slug(self, *, library_id: uuid.UUID, title: str) -> str:
        base = slugify(title)
        stmt = select(Game.slug).where(Game.library_id == library_id, Game.slug.like(f"{base}%"))
        taken = set(self._session.scalars(stmt).all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"

    def _get_or_create_mechanic(self, name: str) -> Mechanic:
        mechanic = self._session.scalars(select(Mechanic).where(Mechanic.name == name)).first()
        if mechanic is None:
            mechanic = Mechanic(name=name)
            self._session.add(mechanic)
            self._session.flush()
        return mechanic

    def _get_or_create_publisher(self, name: str) -> Publisher:
        publisher = self._session.scalars(select(Publisher).where(Publisher.name == name)).first()
        if publisher is None:
            publisher = Publisher(name=name)
            self._session.add(publisher)
            self._session.flush()
        return publisher
