"""
Parser variants, one per supported upload format.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from app.domain.game_records import CanonicalGameRecord, CanonicalPlayer, CanonicalPlayRecord
from app.parsers.base import FormatParser, ParseResult, link_expansions
from app.parsers.csv_tokenizer import sniff_delimiter, tokenize_csv
from app.parsers.detection import ImportFormat, is_collection_export_header
from app.parsers.errors import MissingColumnError, UnsupportedFormatError
from app.parsers.normalization import (
    ColumnResolver,
    normalize_age,
    normalize_difficulty,
    normalize_game_type,
    normalize_play_time,
    parse_bool,
    parse_date,
    parse_decimal,
    parse_int,
    split_list,
)

logger = logging.getLogger(__name__)

STATS_SECTION_MARKERS = frozenset({"Player stats", "Recent game history"})


# ---------------------------------------------------------------------------
# Tabular (CSV) variants
# ---------------------------------------------------------------------------


def _row_to_record(
    row: list[str],
    columns: ColumnResolver,
    *,
    mechanic_separators: str = ";",
) -> CanonicalGameRecord | None:
    title = columns.get(row, "title")
    external_id = columns.get(row, "external_id")
    if not title and not external_id:
        return None

    is_expansion = parse_bool(columns.get(row, "is_expansion")) or False
    item_type = (columns.get(row, "item_type") or "").lower()
    if item_type == "expansion":
        is_expansion = True

    description = columns.get(row, "description")
    notes = [note for note in (columns.get(row, "comment"), columns.get(row, "private_comment")) if note]
    if notes:
        note_text = "\n\n".join(notes)
        description = f"{description}\n\n**Notes:** {note_text}" if description else f"**Notes:** {note_text}"

    return CanonicalGameRecord(
        title=title,
        external_id=external_id,
        external_url=columns.get(row, "external_url"),
        image_url=columns.get(row, "image_url"),
        description=description,
        min_players=parse_int(columns.get(row, "min_players")),
        max_players=parse_int(columns.get(row, "max_players")),
        play_time=normalize_play_time(columns.get(row, "play_time")),
        difficulty=normalize_difficulty(columns.get(row, "difficulty"), columns.get(row, "weight")),
        game_type=normalize_game_type(columns.get(row, "game_type")),
        suggested_age=normalize_age(columns.get(row, "suggested_age")),
        publisher=columns.get(row, "publisher"),
        mechanics=split_list(columns.get(row, "mechanics"), mechanic_separators),
        is_expansion=is_expansion,
        parent_title=columns.get(row, "parent_title"),
        purchase_date=parse_date(columns.get(row, "purchase_date")),
        purchase_price=parse_decimal(columns.get(row, "purchase_price")),
        location_shelf=columns.get(row, "location_shelf"),
        is_for_sale=parse_bool(columns.get(row, "is_for_sale")),
    )


class GenericCSVParser(FormatParser):
    """
    Any delimited file with a recognizable title or id column.
    """

    format_tag = ImportFormat.GENERIC_CSV
    mechanic_separators = ";,"

    def parse(self, text: str) -> ParseResult:
        rows = tokenize_csv(text, sniff_delimiter(text))
        if not rows:
            return ParseResult(format_tag=self.format_tag, games=())

        header, body = rows[0], rows[1:]
        columns = ColumnResolver(header)
        if not columns.has("title") and not columns.has("external_id"):
            raise MissingColumnError(
                "CSV must include a title column (title, name, game, game_name) or a bgg_id column.",
                headers=columns.headers,
            )

        games: list[CanonicalGameRecord] = []
        for row in body:
            record = _row_to_record(row, columns, mechanic_separators=self.mechanic_separators)
            if record is not None:
                games.append(record)

        return ParseResult(
            format_tag=self.format_tag,
            games=tuple(link_expansions(games)),
            skipped_rows=len(body) - len(games),
            input_rows=len(body),
        )


class VendorCSVParser(FormatParser):
    """
    Exports from known third-party sites.

    Two dialects: a full collection export (one row per collection entry,
    owned or not) and a per-player stats export (one row per player and game).
    """

    format_tag = ImportFormat.VENDOR_CSV

    COLLECTION_EXPORT = "collection_export"
    STATS_EXPORT = "stats_export"

    def parse(self, text: str) -> ParseResult:
        first_line = text.split("\n", 1)[0].rstrip("\r")
        if is_collection_export_header(first_line):
            return self._parse_collection_export(text)
        return self._parse_stats_export(text)

    def _parse_collection_export(self, text: str) -> ParseResult:
        rows = tokenize_csv(text, sniff_delimiter(text))
        if not rows:
            return ParseResult(format_tag=self.format_tag, games=(), dialect=self.COLLECTION_EXPORT)
        header, body = rows[0], rows[1:]
        columns = ColumnResolver(header)
        filter_owned = columns.has("own")

        games: list[CanonicalGameRecord] = []
        for row in body:
            if filter_owned and not parse_bool(columns.get(row, "own")):
                continue
            record = _row_to_record(row, columns)
            if record is not None:
                games.append(record)

        skipped = len(body) - len(games)
        logger.info(
            "Parsed collection export rows=%s kept=%s skipped=%s owned_filter=%s",
            len(body),
            len(games),
            skipped,
            filter_owned,
        )
        return ParseResult(
            format_tag=self.format_tag,
            games=tuple(link_expansions(games)),
            skipped_rows=skipped,
            input_rows=len(body),
            dialect=self.COLLECTION_EXPORT,
        )

    def _parse_stats_export(self, text: str) -> ParseResult:
        rows = tokenize_csv(text, sniff_delimiter(text))
        if not rows:
            return ParseResult(format_tag=self.format_tag, games=(), dialect=self.STATS_EXPORT)
        header, body = rows[0], rows[1:]
        normalized = [column.strip().lower().replace(" ", "_") for column in header]
        name_index = next(
            (index for index, column in enumerate(normalized) if column in {"game_name", "gamename"}),
            None,
        )
        if name_index is None:
            raise MissingColumnError("Stats export has no 'Game Name' column.", headers=normalized)

        seen: set[str] = set()
        games: list[CanonicalGameRecord] = []
        for row in body:
            name = row[name_index].strip() if name_index < len(row) else ""
            if not name or name in STATS_SECTION_MARKERS or name.lower() in seen:
                continue
            seen.add(name.lower())
            games.append(CanonicalGameRecord(title=name))

        return ParseResult(
            format_tag=self.format_tag,
            games=tuple(games),
            skipped_rows=len(body) - len(games),
            input_rows=len(body),
            dialect=self.STATS_EXPORT,
        )


# ---------------------------------------------------------------------------
# Tagged JSON export
# ---------------------------------------------------------------------------


def _parse_play_date(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        played_at = datetime.fromisoformat(raw.strip())
    except ValueError:
        return None
    if played_at.tzinfo is None:
        played_at = played_at.replace(tzinfo=timezone.utc)
    return played_at


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class TaggedJSONExportParser(FormatParser):
    """
    Play-tracker backup files: games, plays, players and locations arrays
    cross-referenced by numeric ids.
    """

    format_tag = ImportFormat.TAGGED_JSON_EXPORT

    def parse(self, text: str) -> ParseResult:
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise UnsupportedFormatError(f"Invalid JSON content: {exc}") from exc
        if not isinstance(data, dict):
            raise UnsupportedFormatError("Export root must be a JSON object.")

        raw_games = [game for game in data.get("games") or [] if isinstance(game, dict)]
        games: list[CanonicalGameRecord] = []
        for raw in raw_games:
            title = _optional_str(raw.get("name")) or _optional_str(raw.get("bggName"))
            if not title:
                continue
            games.append(
                CanonicalGameRecord(
                    title=title,
                    external_id=_optional_str(raw.get("bggId") or None),
                    image_url=_optional_str(raw.get("urlThumb")),
                    is_expansion=bool(raw.get("isExpansion", False)),
                )
            )

        plays = self._parse_plays(data, raw_games)
        logger.info("Parsed tagged export games=%s plays=%s", len(games), len(plays))
        return ParseResult(
            format_tag=self.format_tag,
            games=tuple(link_expansions(games)),
            plays=tuple(plays),
            skipped_rows=len(raw_games) - len(games),
            input_rows=len(raw_games),
        )

    @staticmethod
    def _parse_plays(data: dict[str, Any], raw_games: list[dict[str, Any]]) -> list[CanonicalPlayRecord]:
        games_by_id = {game.get("id"): game for game in raw_games}
        players_by_id = {
            player.get("id"): player for player in data.get("players") or [] if isinstance(player, dict)
        }
        locations_by_id = {
            location.get("id"): location for location in data.get("locations") or [] if isinstance(location, dict)
        }

        plays: list[CanonicalPlayRecord] = []
        for play in data.get("plays") or []:
            if not isinstance(play, dict) or play.get("ignored"):
                continue
            game = games_by_id.get(play.get("gameRefId"))
            played_at = _parse_play_date(play.get("playDate"))
            if game is None or played_at is None:
                continue

            players: list[CanonicalPlayer] = []
            for score in play.get("playerScores") or []:
                if not isinstance(score, dict):
                    continue
                player = players_by_id.get(score.get("playerRefId"), {})
                players.append(
                    CanonicalPlayer(
                        name=_optional_str(player.get("name")) or "Unknown",
                        score=parse_int(_optional_str(score.get("score"))),
                        is_winner=bool(score.get("winner", False)),
                        is_first_play=bool(score.get("newPlayer", False)),
                        color=_optional_str(score.get("color")),
                        external_username=_optional_str(player.get("bggUsername")),
                    )
                )

            location = locations_by_id.get(play.get("locationRefId"))
            plays.append(
                CanonicalPlayRecord(
                    game_title=_optional_str(game.get("name")) or _optional_str(game.get("bggName")),
                    external_id=_optional_str(game.get("bggId") or None),
                    played_at=played_at,
                    duration_minutes=parse_int(_optional_str(play.get("durationMin"))),
                    location=_optional_str(location.get("name")) if location else None,
                    notes=_optional_str(play.get("comments")),
                    source_id=_optional_str(play.get("uuid")),
                    players=tuple(players),
                )
            )
        return plays
