"""
tests/test_parsers.py

Pytest unit tests for the upload parsers.

Coverage
--------
- Generic CSV: headers, aliases, quoting, coercion, expansions
- Collection export: owned filter and notes
- Stats export: section markers and de-duplication
- Tagged JSON export: games and plays
- Spreadsheet conversion
- Row accounting: records + skipped == non-header rows
"""

from __future__ import annotations

import io
import json
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from app.parsers import ImportFormat, MissingColumnError, parse
from app.parsers.links import extract_reference_ids, reference_links_to_csv
from app.parsers.normalization import (
    minutes_to_play_time,
    normalize_difficulty,
    parse_bool,
    weight_to_difficulty,
)


def _tagged_export(game_count: int = 10) -> dict:
    games = [{"id": index, "name": f"Game {index}", "bggId": 1000 + index} for index in range(1, game_count + 1)]
    games[1]["bggId"] = 0
    return {
        "games": games,
        "players": [
            {"id": 1, "name": "Ann", "bggUsername": "ann_b"},
            {"id": 2, "name": "Bo"},
        ],
        "locations": [{"id": 7, "name": "Kitchen table"}],
        "plays": [
            {
                "uuid": "play-1",
                "gameRefId": 1,
                "playDate": "2024-03-01 19:30:00",
                "durationMin": 45,
                "locationRefId": 7,
                "playerScores": [
                    {"playerRefId": 1, "score": "31", "winner": True},
                    {"playerRefId": 2, "score": "27", "newPlayer": True, "color": "blue"},
                ],
            },
            {"uuid": "play-2", "gameRefId": 2, "playDate": "2024-03-02 18:00:00", "playerScores": []},
            {"uuid": "play-3", "gameRefId": 3, "playDate": "2024-03-03 18:00:00", "playerScores": []},
            {"uuid": "play-4", "gameRefId": 4, "playDate": "2024-03-04T18:00:00+02:00", "comments": "rematch"},
            {"uuid": "ignored", "gameRefId": 5, "playDate": "2024-03-05 18:00:00", "ignored": True},
            {"uuid": "orphan", "gameRefId": 999, "playDate": "2024-03-05 18:00:00"},
        ],
    }


def _assert_rows_accounted(result, non_header_rows: int) -> None:
    assert len(result.games) + result.skipped_rows == non_header_rows
    assert result.input_rows == non_header_rows


# ---------------------------------------------------------------------------
# Generic CSV
# ---------------------------------------------------------------------------


class TestGenericCSV:
    def test_title_and_id_columns(self) -> None:
        result = parse("title,bgg_id\nWingspan,266192\nCatan,13\n", "games.csv")

        assert result.format_tag is ImportFormat.GENERIC_CSV
        assert [game.title for game in result.games] == ["Wingspan", "Catan"]
        assert [game.external_id for game in result.games] == ["266192", "13"]
        assert result.skipped_rows == 0
        assert result.expansion_count == 0

    def test_header_aliases_are_case_and_space_insensitive(self) -> None:
        result = parse("Game Name,Min Players,Max Players\nAzul,2,4\n", "games.csv")
        game = result.games[0]
        assert (game.title, game.min_players, game.max_players) == ("Azul", 2, 4)

    def test_quoted_comma_and_newline_in_description(self) -> None:
        text = 'title,description\n"Catan","Trade, build\nand settle"\nAzul,Tiles\n'
        result = parse(text, "games.csv")
        assert result.games[0].description == "Trade, build\nand settle"
        _assert_rows_accounted(result, 2)

    def test_weight_and_play_time_are_bucketed(self) -> None:
        result = parse("title,weight,play_time\nBrass,3.2,50\n", "games.csv")
        game = result.games[0]
        assert game.difficulty == "4 - Medium Heavy"
        assert game.play_time == "45-60 Minutes"

    def test_existing_labels_are_kept(self) -> None:
        result = parse("title,difficulty,play_time,type\nUno,1 - light,0-15 minutes,card game\n", "g.csv")
        game = result.games[0]
        assert (game.difficulty, game.play_time, game.game_type) == ("1 - Light", "0-15 Minutes", "Card Game")

    def test_field_coercion(self) -> None:
        text = (
            "title,mechanics,purchase_date,purchase_price,is_for_sale,age\n"
            'Root,"Area Control; Hand Management, Action Points",2023-05-01,$59.99,Yes,10\n'
        )
        game = parse(text, "g.csv").games[0]
        assert game.mechanics == frozenset({"Area Control", "Hand Management", "Action Points"})
        assert game.purchase_date == date(2023, 5, 1)
        assert game.purchase_price == Decimal("59.99")
        assert game.is_for_sale is True
        assert game.suggested_age == "10+"

    def test_rows_without_title_or_id_are_skipped(self) -> None:
        result = parse("title,bgg_id,notes\nAzul,,x\n,,orphan note\n,13,\n", "g.csv")
        assert [game.label for game in result.games] == ["Azul", "#13"]
        _assert_rows_accounted(result, 3)

    def test_missing_title_column(self) -> None:
        with pytest.raises(MissingColumnError) as exc_info:
            parse("name_of_thing,players\nAzul,2\n", "g.csv")
        assert exc_info.value.filename == "g.csv"
        assert "name_of_thing" in exc_info.value.headers

    def test_tab_separated(self) -> None:
        result = parse("title\tmin_players\nAzul\t2\n", "games.tsv")
        assert result.games[0].min_players == 2

    def test_expansions_link_to_parent_in_batch(self) -> None:
        text = (
            "title,is_expansion,parent_game\n"
            "Wingspan,false,\n"
            "European Expansion,true,wingspan\n"
            "Lost Expansion,yes,Unknown Base\n"
        )
        result = parse(text, "g.csv")
        base, linked, orphan = result.games
        assert result.expansion_count == 2
        assert linked.parent_record_id == base.record_id
        assert orphan.parent_record_id is None
        assert orphan.parent_title == "Unknown Base"


# ---------------------------------------------------------------------------
# Vendor CSV
# ---------------------------------------------------------------------------


class TestCollectionExport:
    def test_owned_filter_and_row_accounting(self) -> None:
        text = (
            "objectname,objectid,own,avgweight,playingtime,comment,itemtype\n"
            "Catan,13,1,2.3,90,Great with four,standalone\n"
            "Wishlist Game,99,0,1.0,20,,standalone\n"
            "Catan: Seafarers,325,1,2.5,60,,expansion\n"
        )
        result = parse(text, "collection.csv")

        assert result.format_tag is ImportFormat.VENDOR_CSV
        assert result.dialect == "collection_export"
        assert [game.title for game in result.games] == ["Catan", "Catan: Seafarers"]
        assert result.games[0].description == "**Notes:** Great with four"
        assert result.games[0].difficulty == "3 - Medium"
        assert result.games[0].play_time == "60+ Minutes"
        assert result.games[1].is_expansion is True
        _assert_rows_accounted(result, 3)

    def test_without_own_column_everything_is_kept(self) -> None:
        result = parse("objectname,objectid\nCatan,13\nAzul,230802\n", "collection.csv")
        assert len(result.games) == 2
        assert result.skipped_rows == 0

    def test_tab_separated_export(self) -> None:
        text = "objectname\tobjectid\town\tcomment\nCatan\t13\t1\tTrade, build, settle\nWishlist Game\t99\t0\t\n"
        result = parse(text, "collection.tsv")

        assert result.dialect == "collection_export"
        assert [game.title for game in result.games] == ["Catan"]
        assert result.games[0].external_id == "13"
        assert result.games[0].description == "**Notes:** Trade, build, settle"
        _assert_rows_accounted(result, 2)


class TestStatsExport:
    def test_unique_game_names_only(self) -> None:
        text = (
            "Player Name,Game Name,ELO,Matches\n"
            "Ann,Azul,1210,4\n"
            "Bo,azul,1190,4\n"
            "Ann,Player stats,,\n"
            "Ann,Splendor,1100,2\n"
        )
        result = parse(text)
        assert result.dialect == "stats_export"
        assert [game.title for game in result.games] == ["Azul", "Splendor"]
        _assert_rows_accounted(result, 4)

    def test_tab_separated_export(self) -> None:
        result = parse("Player Name\tGame Name\tELO\tMatches\nAnn\tAzul\t1210\t4\nBo\tTicket to Ride: Europe\t1190\t2\n")
        assert result.dialect == "stats_export"
        assert [game.title for game in result.games] == ["Azul", "Ticket to Ride: Europe"]


# ---------------------------------------------------------------------------
# Tagged JSON export
# ---------------------------------------------------------------------------


class TestTaggedJSONExport:
    def test_games_and_plays(self) -> None:
        result = parse(json.dumps(_tagged_export()), "backup.bgsplay")

        assert result.format_tag is ImportFormat.TAGGED_JSON_EXPORT
        assert len(result.games) == 10
        assert len(result.plays) == 4
        _assert_rows_accounted(result, 10)

    def test_zero_external_id_is_treated_as_missing(self) -> None:
        result = parse(json.dumps(_tagged_export()), "backup.json")
        assert result.games[0].external_id == "1001"
        assert result.games[1].external_id is None

    def test_play_details(self) -> None:
        result = parse(json.dumps(_tagged_export()), "backup.json")
        first = result.plays[0]

        assert first.game_title == "Game 1"
        assert first.external_id == "1001"
        assert first.duration_minutes == 45
        assert first.location == "Kitchen table"
        assert first.source_id == "play-1"
        assert first.played_at.tzinfo is not None
        assert [player.name for player in first.players] == ["Ann", "Bo"]
        assert first.players[0].is_winner is True
        assert first.players[0].score == 31
        assert first.players[0].external_username == "ann_b"
        assert first.players[1].is_first_play is True
        assert first.players[1].color == "blue"
        assert result.plays[3].notes == "rematch"

    def test_nameless_games_are_skipped(self) -> None:
        data = _tagged_export(3)
        data["games"].append({"id": 50, "name": "  "})
        result = parse(json.dumps(data), "backup.json")
        assert len(result.games) == 3
        _assert_rows_accounted(result, 4)

    def test_malformed_player_scores_are_ignored(self) -> None:
        data = _tagged_export(3)
        data["plays"][0]["playerScores"].insert(0, "Ann:31")
        data["plays"][1]["playerScores"] = [None, 7]
        result = parse(json.dumps(data), "backup.json")

        assert [player.name for player in result.plays[0].players] == ["Ann", "Bo"]
        assert result.plays[1].players == ()


# ---------------------------------------------------------------------------
# Spreadsheets
# ---------------------------------------------------------------------------


class TestSpreadsheet:
    def test_first_sheet_is_parsed_as_csv(self) -> None:
        buffer = io.BytesIO()
        pd.DataFrame({"title": ["Azul", "Catan"], "min_players": ["2", "3"]}).to_excel(buffer, index=False)

        result = parse(buffer.getvalue(), "library.xlsx")

        assert result.format_tag is ImportFormat.SPREADSHEET
        assert result.dialect == "generic_csv"
        assert [game.title for game in result.games] == ["Azul", "Catan"]
        assert result.games[1].min_players == 3


# ---------------------------------------------------------------------------
# Coercion helpers and links
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("weight", "label"),
    [(1.0, "1 - Light"), (2.0, "2 - Medium Light"), (2.9, "3 - Medium"), (3.2, "4 - Medium Heavy"), (4.6, "5 - Heavy")],
)
def test_weight_buckets(weight: float, label: str) -> None:
    assert weight_to_difficulty(weight) == label


@pytest.mark.parametrize(
    ("minutes", "label"),
    [(10, "0-15 Minutes"), (50, "45-60 Minutes"), (90, "60+ Minutes"), (150, "2+ Hours"), (240, "3+ Hours")],
)
def test_play_time_buckets(minutes: int, label: str) -> None:
    assert minutes_to_play_time(minutes) == label


def test_zero_weight_has_no_difficulty() -> None:
    assert normalize_difficulty(None, "0") is None


@pytest.mark.parametrize("raw", ["TRUE", "yes", "1"])
def test_true_values(raw: str) -> None:
    assert parse_bool(raw) is True


def test_other_values_are_false() -> None:
    assert parse_bool("y") is False
    assert parse_bool("") is None


def test_reference_links() -> None:
    links = [
        "https://boardgamegeek.com/boardgame/13/catan",
        "https://boardgamegeek.com/boardgameexpansion/325/catan-seafarers",
        "https://boardgamegeek.com/boardgame/13/catan-again",
        "https://example.com/not-a-game",
    ]
    ids, invalid = extract_reference_ids(links)
    assert ids == ["13", "325"]
    assert invalid == ["https://example.com/not-a-game"]

    csv_text, _ = reference_links_to_csv(links)
    result = parse(csv_text, "links.csv")
    assert [game.external_id for game in result.games] == ["13", "325"]
