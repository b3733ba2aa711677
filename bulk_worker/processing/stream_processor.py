from typing import TextIO

from bulk_worker.database.models import JobRecord, SessionError
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.checkpoint_store import CheckpointStore
from bulk_worker.database.repositories.session_errors_repository import (
    SessionErrorsRepository,
)
from bulk_worker.logging.logger import Log
from bulk_worker.processing.csv_rows import CsvHeader, read_rows
from bulk_worker.processing.error_report import ErrorReportWriter
from bulk_worker.processing.models import (
    ACTION_STATUS,
    DecisionRow,
    FailedRow,
    RowFailureReason,
    StreamResult,
)
from bulk_worker.recovery.failure_classifier import FailureClassifier
from bulk_worker.resolver.base import BaseResolver


def format_stored_errors(errors: list[SessionError]) -> str:
    return "; ".join(f"[{e.column_name}] {e.error_message}" for e in errors)


def validate_row(row: DecisionRow) -> list[str]:
    """Cheap structural re-check; full validation already ran at upload time."""
    problems: list[str] = []
    if not row.unique_key:
        problems.append("Unique Key is required")
    if not row.action_value:
        problems.append("Action is required")
    elif row.action is None:
        problems.append("Action must be 'Accept' or 'Reject'")
    return problems


class RowStreamProcessor:
    """Applies every row after a job's checkpoint to the resolver, in file order.

    Each row ends as exactly one success or one failure, and the checkpoint is
    advanced after every row so a later run starts at the next unvisited row.
    Row-level problems are recorded and never abort the stream; anything that
    escapes ``process`` is a job-level failure for the caller to classify.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        session_errors: SessionErrorsRepository,
        resolver: BaseResolver,
        report_writer: ErrorReportWriter,
        classifier: FailureClassifier,
        audit: AuditLog,
    ) -> None:
        self._checkpoints = checkpoints
        self._session_errors = session_errors
        self._resolver = resolver
        self._report_writer = report_writer
        self._classifier = classifier
        self._audit = audit

    def process(self, job: JobRecord, rows: TextIO, resolved_by: str) -> StreamResult:
        start_row = job.last_processed_row
        if start_row > 0:
            Log.info(f"Job {job.id}: resuming from row {start_row + 1}")

        stored_errors = self._session_errors.errors_by_row(job.session_id)
        header, records = read_rows(rows)
        result = StreamResult(start_row=start_row, last_row=start_row)

        for index, fields in records:
            if index <= start_row:
                continue

            result.processed_rows += 1
            failure = self._process_record(
                job.id, header, index, fields, stored_errors, resolved_by
            )
            if failure is None:
                result.success_count += 1
            else:
                result.failure_count += 1
                result.failed_rows.append(failure)

            if not self._checkpoints.advance_checkpoint(job.id, index):
                Log.warning(
                    f"Job {job.id}: checkpoint not advanced to row {index}, "
                    "another attempt is already past it"
                )
            result.last_row = index

        if result.failed_rows:
            result.error_report_path = self._report_writer.write(
                job.session_id, result.failed_rows
            )

        self._checkpoints.record_progress(
            job.id,
            processed_rows=result.processed_rows,
            success_count=result.success_count,
            failure_count=result.failure_count,
            error_report_path=result.error_report_path,
        )
        Log.info(
            f"Job {job.id}: rows {start_row + 1}-{result.last_row} processed="
            f"{result.processed_rows} success={result.success_count} "
            f"failed={result.failure_count}"
        )
        return result

    def _process_record(
        self,
        job_id: int,
        header: CsvHeader,
        index: int,
        fields: list[str],
        stored_errors: dict[int, list[SessionError]],
        resolved_by: str,
    ) -> FailedRow | None:
        row = header.decode(index, fields)

        errors = stored_errors.get(row.file_row_number)
        if errors:
            Log.info(f"Row {index} skipped, flagged at upload")
            self._audit_skip(
                job_id, index, "stored validation errors", RowFailureReason.STORED_VALIDATION_ERROR
            )
            return self._failed(
                row,
                RowFailureReason.STORED_VALIDATION_ERROR,
                format_stored_errors(errors),
            )

        if len(fields) != header.width:
            Log.warning(
                f"Row {index} has {len(fields)} columns, expected {header.width}"
            )
            self._audit_skip(
                job_id, index, "real-time validation", RowFailureReason.COLUMN_COUNT_MISMATCH
            )
            return self._failed(
                row,
                RowFailureReason.COLUMN_COUNT_MISMATCH,
                f"Expected {header.width} columns, got {len(fields)}",
            )

        problems = validate_row(row)
        if problems:
            Log.info(f"Row {index} skipped: {'; '.join(problems)}")
            self._audit_skip(
                job_id, index, "real-time validation", RowFailureReason.VALIDATION_ERROR
            )
            return self._failed(row, RowFailureReason.VALIDATION_ERROR, "; ".join(problems))

        status = ACTION_STATUS[row.action]
        try:
            affected = self._resolver.update(
                row.unique_key, resolved_by, status, row.proof_reference
            )
        except Exception as exc:
            failure_type = self._classifier.classify(exc)
            Log.error(f"Row {index} ({row.unique_key}) resolver error: {exc} ({failure_type.value})")
            return self._failed(
                row, RowFailureReason.RESOLVER_ERROR, str(exc), failure_type.value
            )

        if affected == 0:
            Log.warning(f"Row {index}: no unresolved record for {row.unique_key}")
            return self._failed(
                row,
                RowFailureReason.NO_MATCHING_RECORD,
                "No matching record found or already processed",
            )
        return None

    def _audit_skip(
        self, job_id: int, index: int, cause: str, reason: RowFailureReason
    ) -> None:
        self._audit.append(
            job_id, "ROW_SKIPPED", f"Row {index} skipped due to {cause} ({reason.value})"
        )

    def _failed(
        self,
        row: DecisionRow,
        reason: RowFailureReason,
        message: str,
        failure_type: str | None = None,
    ) -> FailedRow:
        return FailedRow(
            row_index=row.index,
            reason=reason,
            message=message,
            unique_key=row.unique_key,
            action=row.action_value,
            proof_reference=row.proof_reference,
            failure_type=failure_type,
        )
