from __future__ import annotations

import json

import pytest

from app.parsers.detection import ImportFormat, detect_format
from app.parsers.errors import UnsupportedFormatError


def _tagged_export() -> str:
    return json.dumps({"games": [], "plays": [], "players": []})


class TestDetectFormat:
    def test_zip_magic_is_spreadsheet(self) -> None:
        assert detect_format(b"PK\x03\x04rest-of-zip", "upload.bin") is ImportFormat.SPREADSHEET

    def test_ole_magic_is_spreadsheet(self) -> None:
        assert detect_format(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1....") is ImportFormat.SPREADSHEET

    def test_spreadsheet_extension(self) -> None:
        assert detect_format(b"whatever", "Collection.XLSX") is ImportFormat.SPREADSHEET

    def test_tagged_json_by_content(self) -> None:
        assert detect_format(_tagged_export()) is ImportFormat.TAGGED_JSON_EXPORT

    def test_tagged_json_by_extension_with_bom(self) -> None:
        content = ("\ufeff" + _tagged_export()).encode("utf-8")
        assert detect_format(content, "backup.bgsplay") is ImportFormat.TAGGED_JSON_EXPORT

    def test_other_json_is_rejected(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            detect_format(json.dumps([{"title": "Catan"}]), "games.json")

    def test_invalid_json_is_rejected(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            detect_format("{not json", "games.json")

    def test_collection_export_header(self) -> None:
        text = "objectname,objectid,own\nCatan,13,1\n"
        assert detect_format(text, "collection.csv") is ImportFormat.VENDOR_CSV

    def test_tab_separated_collection_export_header(self) -> None:
        text = "objectname\tobjectid\town\nCatan\t13\t1\n"
        assert detect_format(text, "collection.tsv") is ImportFormat.VENDOR_CSV

    def test_stats_export_header(self) -> None:
        text = "Player Name,Game Name,ELO,Matches\nAnn,Azul,1200,4\n"
        assert detect_format(text) is ImportFormat.VENDOR_CSV

    def test_generic_csv(self) -> None:
        assert detect_format("title,min_players\nCatan,3\n", "games.csv") is ImportFormat.GENERIC_CSV

    def test_empty_content(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            detect_format(b"   \n", "games.csv")

    def test_unrecognized_single_token(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            detect_format("justoneword")
