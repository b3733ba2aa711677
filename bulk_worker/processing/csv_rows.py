import csv
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TextIO

from bulk_worker.processing.exceptions import MalformedSourceError
from bulk_worker.processing.models import DecisionRow

UNIQUE_KEY_COLUMN = "unique key"
ACTION_COLUMN = "action"
PROOF_COLUMNS = ("proof", "proof(optional)", "proof (optional)")

_INVISIBLE = re.compile(r"[\u00A0\u2000-\u200F\u2028-\u202F\u205F-\u206F\u3000\uFEFF]")
_WHITESPACE = re.compile(r"\s+")


def clean_field(value: str) -> str:
    """Drop invisible characters and collapse runs of whitespace."""
    return _WHITESPACE.sub(" ", _INVISIBLE.sub("", value)).strip()


@dataclass(frozen=True)
class CsvHeader:
    """Column positions resolved once from the header row."""

    columns: tuple[str, ...]
    unique_key_index: int
    action_index: int
    proof_index: int | None = None

    @property
    def width(self) -> int:
        return len(self.columns)

    @classmethod
    def parse(cls, fields: list[str]) -> "CsvHeader":
        columns = tuple(clean_field(f) for f in fields)
        lookup = {name.lower(): i for i, name in reversed(list(enumerate(columns)))}

        missing = [
            name for name in (UNIQUE_KEY_COLUMN, ACTION_COLUMN) if name not in lookup
        ]
        if missing:
            raise MalformedSourceError(
                f"CSV header is missing required columns: {', '.join(missing)}"
            )

        proof_index = next(
            (lookup[name] for name in PROOF_COLUMNS if name in lookup), None
        )
        return cls(
            columns=columns,
            unique_key_index=lookup[UNIQUE_KEY_COLUMN],
            action_index=lookup[ACTION_COLUMN],
            proof_index=proof_index,
        )

    def decode(self, index: int, fields: list[str]) -> DecisionRow:
        """Map a data record onto a DecisionRow by header position."""

        def at(position: int | None) -> str:
            if position is None or position >= len(fields):
                return ""
            return clean_field(fields[position])

        proof = at(self.proof_index)
        return DecisionRow(
            index=index,
            unique_key=at(self.unique_key_index),
            action_value=at(self.action_index),
            proof_reference=proof or None,
        )


def read_rows(stream: TextIO) -> tuple[CsvHeader, Iterator[tuple[int, list[str]]]]:
    """Parse the header and return it with a lazy iterator of numbered data records.

    Data records are numbered from 1, blank lines included, so numbers line up
    with the row numbers the upload validator stored its errors under. A blank
    record comes through as an empty field list.

    Raises:
        MalformedSourceError: if the stream has no header row.
    """
    reader = csv.reader(stream)
    header_fields = next(reader, None)
    if header_fields is None:
        raise MalformedSourceError("CSV file is empty")
    header = CsvHeader.parse(header_fields)

    return header, enumerate(reader, start=1)
