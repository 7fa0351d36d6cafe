"""
tests/test_csv_tokenizer.py

Pytest unit tests for the character-level CSV tokenizer.
"""

from __future__ import annotations

from app.parsers.csv_tokenizer import sniff_delimiter, tokenize_csv


class TestTokenizeCsv:
    def test_simple_rows(self) -> None:
        assert tokenize_csv("title,min_players\nCatan,3\n") == [["title", "min_players"], ["Catan", "3"]]

    def test_quoted_field_keeps_delimiter_and_newline(self) -> None:
        text = 'title,description\n"Catan","Trade, build\nand settle"\n'
        rows = tokenize_csv(text)
        assert rows == [["title", "description"], ["Catan", "Trade, build\nand settle"]]

    def test_doubled_quote_is_literal_quote(self) -> None:
        rows = tokenize_csv('title\n"The ""Big"" Game"\n')
        assert rows[1] == ['The "Big" Game']

    def test_all_line_endings_end_a_record(self) -> None:
        rows = tokenize_csv("a\r\nb\rc\nd")
        assert rows == [["a"], ["b"], ["c"], ["d"]]

    def test_fields_are_trimmed_and_blank_rows_dropped(self) -> None:
        rows = tokenize_csv("title , age\n\n , \n  Wingspan ,  10 \n")
        assert rows == [["title", "age"], ["Wingspan", "10"]]

    def test_missing_trailing_newline(self) -> None:
        assert tokenize_csv("title\nAzul") == [["title"], ["Azul"]]

    def test_unterminated_quote_keeps_collected_text(self) -> None:
        rows = tokenize_csv('title\n"Unclosed, game')
        assert rows == [["title"], ["Unclosed, game"]]

    def test_empty_input(self) -> None:
        assert tokenize_csv("") == []

    def test_tab_delimiter(self) -> None:
        assert tokenize_csv("title\tage\nAzul\t8\n", "\t") == [["title", "age"], ["Azul", "8"]]


class TestSniffDelimiter:
    def test_tab_header_without_commas(self) -> None:
        assert sniff_delimiter("title\tage\nAzul\t8") == "\t"

    def test_comma_wins_when_both_present(self) -> None:
        assert sniff_delimiter("title,notes\twith tab\n") == ","

    def test_default_is_comma(self) -> None:
        assert sniff_delimiter("title\n") == ","
