"""
Character-level CSV tokenizer.

Walks the input once with three states. Quoted fields may contain the
delimiter, line breaks, and doubled quotes. `\n`, `\r\n` and a lone `\r` all
end a record. Fields are trimmed and rows whose fields are all empty are
dropped.
"""

from __future__ import annotations

from enum import Enum, auto

QUOTE = '"'


class _State(Enum):
    FIELD = auto()
    QUOTED_FIELD = auto()
    RECORD_BOUNDARY = auto()


def sniff_delimiter(text: str) -> str:
    """
    Use tab when the header line has tabs and no commas.
    """

    header = text.split("\n", 1)[0]
    if "\t" in header and "," not in header:
        return "\t"
    return ","


def tokenize_csv(text: str, delimiter: str = ",") -> list[list[str]]:
    rows: list[list[str]] = []
    row: list[str] = []
    field: list[str] = []
    state = _State.RECORD_BOUNDARY

    def end_field() -> None:
        row.append("".join(field).strip())
        field.clear()

    def end_record() -> None:
        if any(value for value in row):
            rows.append(list(row))
        row.clear()

    index = 0
    length = len(text)
    while index < length:
        char = text[index]

        if state is _State.QUOTED_FIELD:
            if char == QUOTE:
                if index + 1 < length and text[index + 1] == QUOTE:
                    field.append(QUOTE)
                    index += 1
                else:
                    state = _State.FIELD
            else:
                field.append(char)
        elif char == QUOTE:
            state = _State.QUOTED_FIELD
        elif char == delimiter:
            end_field()
            state = _State.FIELD
        elif char == "\n" or char == "\r":
            end_field()
            end_record()
            if char == "\r" and index + 1 < length and text[index + 1] == "\n":
                index += 1
            state = _State.RECORD_BOUNDARY
        else:
            field.append(char)
            state = _State.FIELD

        index += 1

    # Unterminated quotes keep whatever was collected.
    if state is not _State.RECORD_BOUNDARY or field or row:
        end_field()
        end_record()

    return rows
