"""
Pure format detection over file extension and content signature.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import PurePath

from app.parsers.csv_tokenizer import sniff_delimiter
from app.parsers.errors import UnsupportedFormatError

_ZIP_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xlsm", ".xls"})
JSON_EXTENSIONS = frozenset({".json", ".bgsplay"})
DELIMITED_EXTENSIONS = frozenset({".csv", ".tsv", ".txt"})


class ImportFormat(str, Enum):
    SPREADSHEET = "spreadsheet"
    TAGGED_JSON_EXPORT = "tagged_json_export"
    VENDOR_CSV = "vendor_csv"
    GENERIC_CSV = "generic_csv"


def decode_text(content: bytes | str) -> str:
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    return content.decode("utf-8-sig", errors="replace")


def _extension(filename: str | None) -> str:
    if not filename:
        return ""
    return PurePath(filename).suffix.lower()


def is_tagged_json_export(data: object) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("games"), list)
        and isinstance(data.get("plays"), list)
        and isinstance(data.get("players"), list)
    )


def is_collection_export_header(first_line: str) -> bool:
    columns = {column.strip().strip('"').lower() for column in first_line.split(sniff_delimiter(first_line))}
    return "objectname" in columns


def is_stats_export_header(first_line: str) -> bool:
    lowered = first_line.lower()
    return "player name" in lowered and "game name" in lowered and ("elo" in lowered or "matches" in lowered)


def detect_delimited_format(text: str) -> ImportFormat:
    first_line = text.lstrip("\ufeff").split("\n", 1)[0].rstrip("\r")
    if is_collection_export_header(first_line) or is_stats_export_header(first_line):
        return ImportFormat.VENDOR_CSV
    return ImportFormat.GENERIC_CSV


def detect_format(content: bytes | str, filename: str | None = None) -> ImportFormat:
    """
    Classify uploaded content into one of the supported import formats.

    Raises:
        UnsupportedFormatError: if the content matches no known format.
    """

    extension = _extension(filename)

    if isinstance(content, bytes) and (content.startswith(_ZIP_MAGIC) or content.startswith(_OLE_MAGIC)):
        return ImportFormat.SPREADSHEET
    if extension in SPREADSHEET_EXTENSIONS:
        return ImportFormat.SPREADSHEET

    text = decode_text(content)
    if not text.strip():
        raise UnsupportedFormatError("Uploaded content is empty.", filename=filename)

    looks_like_json = text.lstrip().startswith(("{", "["))
    if extension in JSON_EXTENSIONS or (extension not in DELIMITED_EXTENSIONS and looks_like_json):
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise UnsupportedFormatError(f"Invalid JSON content: {exc}", filename=filename) from exc
        if is_tagged_json_export(data):
            return ImportFormat.TAGGED_JSON_EXPORT
        raise UnsupportedFormatError(
            "JSON content is not a recognized play-tracker export (expected games, plays and players arrays).",
            filename=filename,
        )

    if extension in DELIMITED_EXTENSIONS or "," in text or "\t" in text or "\n" in text.strip():
        return detect_delimited_format(text)

    raise UnsupportedFormatError("Could not detect the format of the uploaded content.", filename=filename)
