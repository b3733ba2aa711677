import io

import pytest

from bulk_worker.processing.csv_rows import CsvHeader, clean_field, read_rows
from bulk_worker.processing.exceptions import MalformedSourceError
from bulk_worker.processing.models import Action


def _rows(text: str) -> tuple[CsvHeader, list[tuple[int, list[str]]]]:
    header, records = read_rows(io.StringIO(text))
    return header, list(records)


class TestCleanField:
    def test_strips_and_collapses_whitespace(self) -> None:
        assert clean_field("  KEY   001 \t") == "KEY 001"

    def test_removes_invisible_characters(self) -> None:
        assert clean_field("\ufeffKEY\u200b-1\u00a0") == "KEY-1"


class TestHeader:
    def test_columns_matched_case_insensitively(self) -> None:
        header = CsvHeader.parse(["UNIQUE KEY", "Action", "Proof (optional)"])
        assert header.unique_key_index == 0
        assert header.action_index == 1
        assert header.proof_index == 2
        assert header.width == 3

    def test_proof_column_is_optional(self) -> None:
        header = CsvHeader.parse(["Action", "Unique Key"])
        assert header.proof_index is None
        assert header.unique_key_index == 1

    def test_missing_required_column_raises(self) -> None:
        with pytest.raises(MalformedSourceError, match="action"):
            CsvHeader.parse(["Unique Key", "Proof"])

    def test_decode_short_row_fills_blanks(self) -> None:
        header = CsvHeader.parse(["Unique Key", "Action", "Proof"])
        row = header.decode(4, ["K-4"])
        assert row.unique_key == "K-4"
        assert row.action_value == ""
        assert row.proof_reference is None
        assert row.file_row_number == 5


class TestReadRows:
    def test_numbers_data_rows_from_one(self) -> None:
        _header, records = _rows("Unique Key,Action\nK1,Accept\nK2,Reject\n")
        assert [index for index, _ in records] == [1, 2]

    def test_empty_stream_raises(self) -> None:
        with pytest.raises(MalformedSourceError, match="empty"):
            read_rows(io.StringIO(""))

    def test_quoted_fields_with_commas(self) -> None:
        header, records = _rows('Unique Key,Action,Proof\nK1,Accept,"doc 1, page 2"\n')
        row = header.decode(*records[0])
        assert row.proof_reference == "doc 1, page 2"

    def test_leading_bom_is_ignored(self) -> None:
        header, records = _rows("\ufeffUnique Key,Action\nK1,accept\n")
        row = header.decode(*records[0])
        assert row.unique_key == "K1"
        assert row.action is Action.ACCEPT

    def test_blank_lines_keep_their_row_number(self) -> None:
        _header, records = _rows("Unique Key,Action\nK1,Accept\n\nK3,Reject\n")
        assert records == [(1, ["K1", "Accept"]), (2, []), (3, ["K3", "Reject"])]

    def test_action_parse_is_case_insensitive(self) -> None:
        assert Action.parse("rEjEcT") is Action.REJECT
        assert Action.parse(" accept ") is Action.ACCEPT
        assert Action.parse("maybe") is None


class TestReadRowsFromFile:
    def test_decodes_every_row(
        self, write_csv, decisions_csv_lines: list[str]
    ) -> None:
        path = write_csv("decisions.csv", decisions_csv_lines)

        with path.open(encoding="utf-8-sig", newline="") as stream:
            header, records = read_rows(stream)
            rows = [header.decode(index, fields) for index, fields in records]

        assert [row.unique_key for row in rows] == ["K1", "K2", "K3"]
        assert [row.action for row in rows] == [Action.ACCEPT, Action.REJECT, Action.ACCEPT]
        assert rows[1].proof_reference == "box 4, folder 2"
        assert rows[2].proof_reference is None
