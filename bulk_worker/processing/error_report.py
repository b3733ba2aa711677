import csv
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from bulk_worker.clock import utcnow
from bulk_worker.processing.models import FailedRow

REPORT_HEADER = ("row_number", "unique_key", "action", "proof", "reason", "error")


class ErrorReportWriter:
    """Writes the failed rows of a run to a CSV next to the other session artifacts."""

    def __init__(
        self,
        reports_dir: Path,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._reports_dir = reports_dir
        self._clock = clock

    def write(self, session_id: int, failed_rows: list[FailedRow]) -> str:
        """Write the report and return its path as stored on the job."""
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        path = self._reports_dir / f"{session_id}_errors_{stamp}.csv"
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(REPORT_HEADER)
            for row in failed_rows:
                error = row.message
                if row.failure_type:
                    error = f"{error} (type: {row.failure_type})"
                writer.writerow(
                    (
                        row.row_index,
                        row.unique_key,
                        row.action,
                        row.proof_reference or "",
                        row.reason.value,
                        error,
                    )
                )
        return str(path)
