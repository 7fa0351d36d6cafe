"""
Header aliasing and field coercion shared by the tabular parsers.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_NUMBER_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")

TRUE_VALUES = frozenset({"true", "yes", "1"})

# Canonical column -> accepted normalized header names, in preference order.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title", "name", "game", "game_name", "game_title", "objectname"),
    "external_id": ("bgg_id", "objectid", "external_id", "bggid"),
    "external_url": ("bgg_url", "url", "link"),
    "image_url": ("image_url", "imageurl", "image", "thumbnail"),
    "description": ("description",),
    "min_players": ("min_players", "minplayers"),
    "max_players": ("max_players", "maxplayers"),
    "play_time": ("play_time", "playtime", "playingtime", "playing_time"),
    "difficulty": ("difficulty",),
    "weight": ("avgweight", "average_weight", "weight"),
    "game_type": ("type", "game_type"),
    "suggested_age": ("suggested_age", "age", "minage", "bggrecagerange"),
    "publisher": ("publisher", "publishers"),
    "mechanics": ("mechanics", "mechanic"),
    "is_expansion": ("is_expansion", "expansion"),
    "item_type": ("itemtype", "objecttype"),
    "parent_title": ("parent_game", "parent_title", "base_game", "parent"),
    "purchase_date": ("purchase_date", "acquisitiondate", "acquisition_date"),
    "purchase_price": ("purchase_price", "pricepaid", "price_paid"),
    "location_shelf": ("location_shelf", "invlocation"),
    "is_for_sale": ("is_for_sale", "fortrade"),
    "comment": ("comment",),
    "private_comment": ("privatecomment", "private_comment"),
    "own": ("own",),
}

DIFFICULTY_LEVELS = (
    "1 - Light",
    "2 - Medium Light",
    "3 - Medium",
    "4 - Medium Heavy",
    "5 - Heavy",
)

PLAY_TIME_OPTIONS = (
    "0-15 Minutes",
    "15-30 Minutes",
    "30-45 Minutes",
    "45-60 Minutes",
    "60+ Minutes",
    "2+ Hours",
    "3+ Hours",
)

GAME_TYPE_OPTIONS = (
    "Board Game",
    "Card Game",
    "Dice Game",
    "Party Game",
    "War Game",
    "Miniatures",
    "RPG",
    "Other",
)

# (exclusive upper bound, label)
_WEIGHT_BUCKETS = (
    (1.5, DIFFICULTY_LEVELS[0]),
    (2.25, DIFFICULTY_LEVELS[1]),
    (3.0, DIFFICULTY_LEVELS[2]),
    (3.75, DIFFICULTY_LEVELS[3]),
)

# (inclusive upper bound in minutes, label)
_PLAY_TIME_BUCKETS = (
    (15, PLAY_TIME_OPTIONS[0]),
    (30, PLAY_TIME_OPTIONS[1]),
    (45, PLAY_TIME_OPTIONS[2]),
    (60, PLAY_TIME_OPTIONS[3]),
    (120, PLAY_TIME_OPTIONS[4]),
    (180, PLAY_TIME_OPTIONS[5]),
)


def normalize_header(header: str) -> str:
    return _WHITESPACE_RE.sub("_", header.strip().lower())


class ColumnResolver:
    """
    Map canonical column names to positions in one header row.
    """

    def __init__(self, headers: list[str]) -> None:
        self.headers = [normalize_header(header) for header in headers]
        positions = {name: index for index, name in reversed(list(enumerate(self.headers)))}
        self._index: dict[str, int] = {}
        for canonical, aliases in COLUMN_ALIASES.items():
            for alias in aliases:
                if alias in positions:
                    self._index[canonical] = positions[alias]
                    break

    def has(self, canonical: str) -> bool:
        return canonical in self._index

    def get(self, row: list[str], canonical: str) -> str | None:
        position = self._index.get(canonical)
        if position is None or position >= len(row):
            return None
        value = row[position].strip()
        return value or None


def parse_bool(value: str | None) -> bool | None:
    if value is None or not value.strip():
        return None
    return value.strip().lower() in TRUE_VALUES


def parse_number(value: str | None) -> float | None:
    """
    Leading numeric part of a cell ("45", "2.5", "30-60" -> 30.0).
    """

    if value is None:
        return None
    match = _LEADING_NUMBER_RE.match(value)
    if match is None:
        return None
    number = float(match.group(1))
    if math.isnan(number):
        return None
    return number


def parse_int(value: str | None) -> int | None:
    number = parse_number(value)
    return int(number) if number is not None else None


def parse_decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    cleaned = value.strip().replace("$", "").replace(",", "")
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_date(value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    raw = value.strip()
    for candidate in (raw, raw[:10]):
        try:
            return datetime.fromisoformat(candidate).date()
        except ValueError:
            continue
    return None


def weight_to_difficulty(weight: float | None) -> str | None:
    if weight is None or math.isnan(weight) or weight == 0:
        return None
    for upper, label in _WEIGHT_BUCKETS:
        if weight < upper:
            return label
    return DIFFICULTY_LEVELS[-1]


def minutes_to_play_time(minutes: float | None) -> str | None:
    if minutes is None or math.isnan(minutes) or minutes <= 0:
        return None
    for upper, label in _PLAY_TIME_BUCKETS:
        if minutes <= upper:
            return label
    return PLAY_TIME_OPTIONS[-1]


def _match_label(value: str, options: tuple[str, ...]) -> str | None:
    lowered = value.strip().lower()
    for option in options:
        if option.lower() == lowered:
            return option
    return None


def normalize_difficulty(difficulty: str | None, weight: str | None = None) -> str | None:
    """
    Accept an existing tier label, else bucket a numeric weight.
    """

    if difficulty:
        label = _match_label(difficulty, DIFFICULTY_LEVELS)
        if label:
            return label
        bucket = weight_to_difficulty(parse_number(difficulty))
        if bucket:
            return bucket
    return weight_to_difficulty(parse_number(weight))


def normalize_play_time(value: str | None) -> str | None:
    if not value:
        return None
    label = _match_label(value, PLAY_TIME_OPTIONS)
    if label:
        return label
    return minutes_to_play_time(parse_number(value))


def normalize_game_type(value: str | None) -> str | None:
    if not value:
        return None
    return _match_label(value, GAME_TYPE_OPTIONS)


def normalize_age(value: str | None) -> str | None:
    if not value:
        return None
    number = parse_int(value)
    if number is None or number <= 0:
        return None
    return f"{number}+"


def split_list(value: str | None, separators: str = ";") -> frozenset[str]:
    if not value:
        return frozenset()
    pattern = "[" + re.escape(separators) + "]"
    return frozenset(part.strip() for part in re.split(pattern, value) if part.strip())
