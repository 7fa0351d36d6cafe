"""
app/domain/game_records.py

Canonical records produced by the format parsers and consumed by the import
coordinator and play-history importer.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(title: str | None) -> str:
    """
    Identity form of a title: trimmed, lowercased, inner whitespace collapsed.
    """

    if not title:
        return ""
    return _WHITESPACE_RE.sub(" ", title.strip()).lower()


@dataclass(frozen=True)
class CanonicalGameRecord:
    """
    One importable game, independent of the source format.
    """

    title: str | None
    external_id: str | None = None
    external_url: str | None = None
    image_url: str | None = None
    description: str | None = None
    min_players: int | None = None
    max_players: int | None = None
    play_time: str | None = None
    difficulty: str | None = None
    game_type: str | None = None
    suggested_age: str | None = None
    publisher: str | None = None
    mechanics: frozenset[str] = frozenset()
    is_expansion: bool = False
    parent_title: str | None = None
    purchase_date: date | None = None
    purchase_price: Decimal | None = None
    location_shelf: str | None = None
    is_for_sale: bool | None = None
    record_id: uuid.UUID = field(default_factory=uuid.uuid4)
    parent_record_id: uuid.UUID | None = None

    @property
    def identity(self) -> str | None:
        """
        Dedup key: external id when present, else normalized title.
        """

        if self.external_id:
            return f"id:{self.external_id}"
        normalized = normalize_title(self.title)
        return f"title:{normalized}" if normalized else None

    @property
    def label(self) -> str:
        if self.title:
            return self.title
        if self.external_id:
            return f"#{self.external_id}"
        return "(untitled)"

    def with_updates(self, **changes: Any) -> "CanonicalGameRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class CanonicalPlayer:
    name: str
    score: int | None = None
    is_winner: bool = False
    is_first_play: bool = False
    color: str | None = None
    external_username: str | None = None


@dataclass(frozen=True)
class CanonicalPlayRecord:
    """
    One logged play session referencing a game by external id or title.
    """

    game_title: str | None
    played_at: datetime
    external_id: str | None = None
    duration_minutes: int | None = None
    location: str | None = None
    notes: str | None = None
    source_id: str | None = None
    players: tuple[CanonicalPlayer, ...] = ()

    @property
    def label(self) -> str:
        return f"{self.game_title or '#' + str(self.external_id)} ({self.played_at.date().isoformat()})"


# ---------------------------------------------------------------------------
# Job payload serialization
# ---------------------------------------------------------------------------
# Records are stored on the job row so an interrupted import can be resumed
# without the original upload.


def game_record_to_payload(record: CanonicalGameRecord) -> dict[str, Any]:
    return {
        "title": record.title,
        "external_id": record.external_id,
        "external_url": record.external_url,
        "image_url": record.image_url,
        "description": record.description,
        "min_players": record.min_players,
        "max_players": record.max_players,
        "play_time": record.play_time,
        "difficulty": record.difficulty,
        "game_type": record.game_type,
        "suggested_age": record.suggested_age,
        "publisher": record.publisher,
        "mechanics": sorted(record.mechanics),
        "is_expansion": record.is_expansion,
        "parent_title": record.parent_title,
        "purchase_date": record.purchase_date.isoformat() if record.purchase_date else None,
        "purchase_price": str(record.purchase_price) if record.purchase_price is not None else None,
        "location_shelf": record.location_shelf,
        "is_for_sale": record.is_for_sale,
        "record_id": str(record.record_id),
        "parent_record_id": str(record.parent_record_id) if record.parent_record_id else None,
    }


def game_record_from_payload(payload: dict[str, Any]) -> CanonicalGameRecord:
    purchase_date = payload.get("purchase_date")
    purchase_price = payload.get("purchase_price")
    parent_record_id = payload.get("parent_record_id")
    return CanonicalGameRecord(
        title=payload.get("title"),
        external_id=payload.get("external_id"),
        external_url=payload.get("external_url"),
        image_url=payload.get("image_url"),
        description=payload.get("description"),
        min_players=payload.get("min_players"),
        max_players=payload.get("max_players"),
        play_time=payload.get("play_time"),
        difficulty=payload.get("difficulty"),
        game_type=payload.get("game_type"),
        suggested_age=payload.get("suggested_age"),
        publisher=payload.get("publisher"),
        mechanics=frozenset(payload.get("mechanics") or ()),
        is_expansion=bool(payload.get("is_expansion")),
        parent_title=payload.get("parent_title"),
        purchase_date=date.fromisoformat(purchase_date) if purchase_date else None,
        purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
        location_shelf=payload.get("location_shelf"),
        is_for_sale=payload.get("is_for_sale"),
        record_id=uuid.UUID(payload["record_id"]) if payload.get("record_id") else uuid.uuid4(),
        parent_record_id=uuid.UUID(parent_record_id) if parent_record_id else None,
    )


def play_record_to_payload(record: CanonicalPlayRecord) -> dict[str, Any]:
    return {
        "game_title": record.game_title,
        "played_at": record.played_at.isoformat(),
        "external_id": record.external_id,
        "duration_minutes": record.duration_minutes,
        "location": record.location,
        "notes": record.notes,
        "source_id": record.source_id,
        "players": [
            {
                "name": player.name,
                "score": player.score,
                "is_winner": player.is_winner,
                "is_first_play": player.is_first_play,
                "color": player.color,
                "external_username": player.external_username,
            }
            for player in record.players
        ],
    }


def play_record_from_payload(payload: dict[str, Any]) -> CanonicalPlayRecord:
    return CanonicalPlayRecord(
        game_title=payload.get("game_title"),
        played_at=datetime.fromisoformat(payload["played_at"]),
        external_id=payload.get("external_id"),
        duration_minutes=payload.get("duration_minutes"),
        location=payload.get("location"),
        notes=payload.get("notes"),
        source_id=payload.get("source_id"),
        players=tuple(CanonicalPlayer(**player) for player in payload.get("players") or ()),
    )
