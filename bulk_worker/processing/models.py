from dataclasses import dataclass, field
from enum import Enum


class Action(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"

    @classmethod
    def parse(cls, raw: str | None) -> "Action | None":
        """Case-insensitive lookup; None for blank or unknown values."""
        if raw is None:
            return None
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return None


class ResolvedStatus(str, Enum):
    """Status written to a record once its decision is applied."""

    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


ACTION_STATUS: dict[Action, ResolvedStatus] = {
    Action.ACCEPT: ResolvedStatus.ACCEPTED,
    Action.REJECT: ResolvedStatus.REJECTED,
}


class RowFailureReason(str, Enum):
    """Structured tag stored with every failed row."""

    STORED_VALIDATION_ERROR = "STORED_VALIDATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    COLUMN_COUNT_MISMATCH = "COLUMN_COUNT_MISMATCH"
    NO_MATCHING_RECORD = "NO_MATCHING_RECORD"
    RESOLVER_ERROR = "RESOLVER_ERROR"


@dataclass(frozen=True)
class DecisionRow:
    """One data row of the CSV, decoded against the header.

    ``index`` is 1-based over data rows; the header is not counted.
    """

    index: int
    unique_key: str
    action_value: str
    proof_reference: str | None = None

    @property
    def action(self) -> Action | None:
        return Action.parse(self.action_value)

    @property
    def file_row_number(self) -> int:
        """Line number used by the upload validator (header is line 1)."""
        return self.index + 1


@dataclass(frozen=True)
class FailedRow:
    row_index: int
    reason: RowFailureReason
    message: str
    unique_key: str = ""
    action: str = ""
    proof_reference: str | None = None
    failure_type: str | None = None


@dataclass
class StreamResult:
    """Outcome of one pass over a job's rows, counted for this run only."""

    start_row: int
    last_row: int
    processed_rows: int = 0
    success_count: int = 0
    failure_count: int = 0
    failed_rows: list[FailedRow] = field(default_factory=list)
    error_report_path: str | None = None
