"""
Parser variant contract and shared result type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from app.domain.game_records import CanonicalGameRecord, CanonicalPlayRecord
from app.parsers.detection import ImportFormat


@dataclass(frozen=True)
class ParseResult:
    format_tag: ImportFormat
    games: tuple[CanonicalGameRecord, ...]
    plays: tuple[CanonicalPlayRecord, ...] = ()
    skipped_rows: int = 0
    input_rows: int = 0
    dialect: str | None = None

    @property
    def expansion_count(self) -> int:
        return sum(1 for game in self.games if game.is_expansion)


class FormatParser(ABC):
    """
    One supported upload format, parsed to canonical records.
    """

    format_tag: ImportFormat

    @abstractmethod
    def parse(self, text: str) -> ParseResult:
        """Parse decoded text into canonical game (and optionally play) records."""


def link_expansions(games: list[CanonicalGameRecord]) -> list[CanonicalGameRecord]:
    """
    Resolve parent_record_id for expansions whose parent title is in the batch.

    Titles are compared case-insensitively. Unknown parents leave the link
    empty.
    """

    ids_by_title: dict[str, object] = {}
    for game in games:
        if game.title:
            ids_by_title.setdefault(game.title.strip().lower(), game.record_id)

    linked: list[CanonicalGameRecord] = []
    for game in games:
        parent_id = None
        if game.is_expansion and game.parent_title:
            parent_id = ids_by_title.get(game.parent_title.strip().lower())
        linked.append(replace(game, parent_record_id=parent_id) if parent_id else game)
    return linked
