"""
Upload format parsing.

`parse` detects the format of uploaded content and dispatches to the matching
parser variant. Spreadsheets are converted to CSV first and detected again.
"""

from __future__ import annotations

from app.parsers.base import FormatParser, ParseResult, link_expansions
from app.parsers.detection import ImportFormat, decode_text, detect_delimited_format, detect_format
from app.parsers.errors import ImportFormatError, MissingColumnError, UnsupportedFormatError
from app.parsers.formats import GenericCSVParser, TaggedJSONExportParser, VendorCSVParser
from app.parsers.spreadsheet import spreadsheet_to_csv

PARSERS: dict[ImportFormat, FormatParser] = {
    ImportFormat.TAGGED_JSON_EXPORT: TaggedJSONExportParser(),
    ImportFormat.VENDOR_CSV: VendorCSVParser(),
    ImportFormat.GENERIC_CSV: GenericCSVParser(),
}


def parse(content: bytes | str, filename: str | None = None) -> ParseResult:
    """
    Parse uploaded content into canonical records.

    Args:
        content: Raw upload bytes or already-decoded text.
        filename: Original filename, used for extension hints.

    Returns:
        ParseResult tagged with the detected format. Spreadsheet uploads keep
        the `spreadsheet` tag; their `dialect` records the CSV variant used.

    Raises:
        ImportFormatError: if the content cannot be parsed.
    """

    format_tag = detect_format(content, filename)
    if format_tag is ImportFormat.SPREADSHEET:
        if isinstance(content, str):
            raise UnsupportedFormatError("Spreadsheet uploads must be binary.", filename=filename)
        csv_text = spreadsheet_to_csv(content, filename=filename)
        inner_tag = detect_delimited_format(csv_text)
        result = PARSERS[inner_tag].parse(csv_text)
        return ParseResult(
            format_tag=ImportFormat.SPREADSHEET,
            games=result.games,
            plays=result.plays,
            skipped_rows=result.skipped_rows,
            input_rows=result.input_rows,
            dialect=inner_tag.value,
        )

    try:
        return PARSERS[format_tag].parse(decode_text(content))
    except ImportFormatError as exc:
        exc.filename = exc.filename or filename
        raise


__all__ = [
    "FormatParser",
    "ImportFormat",
    "ImportFormatError",
    "MissingColumnError",
    "ParseResult",
    "UnsupportedFormatError",
    "detect_format",
    "link_expansions",
    "parse",
]
