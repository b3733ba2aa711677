from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PauseKind(str, Enum):
    """Who paused a job. Only AUTOMATIC pauses are resumed by the sweep by default."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


@dataclass
class JobRecord:
    """Represents a row from the bulk_jobs table."""

    id: int
    session_id: int
    job_ref: str
    status: JobStatus
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_processed_row: int = 0
    retry_count: int = 0
    failure_reason: str | None = None
    failure_type: str | None = None
    pause_kind: PauseKind | None = None
    resume_pending: bool = False
    last_retry_at: datetime | None = None
    next_retry_at: datetime | None = None
    error_report_path: str | None = None
    row_source: str | None = None
    initiated_by: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def resume_row(self) -> int:
        """First data row a run of this job will visit."""
        return self.last_processed_row + 1


@dataclass
class AuditEntry:
    """Represents a row from the bulk_job_audit table."""

    job_id: int
    action: str
    message: str
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SessionError:
    """Upload-time validation error stored against a session row."""

    row_number: int
    column_name: str
    error_message: str


JOB_COLUMNS = """
    id, session_id, job_ref, status, total_rows, processed_rows,
    success_count, failure_count, last_processed_row, retry_count,
    failure_reason, failure_type, pause_kind, resume_pending,
    last_retry_at, next_retry_at, error_report_path, row_source,
    initiated_by, created_at, started_at, completed_at, updated_at
"""


def job_from_row(row: dict) -> JobRecord:
    """Build a JobRecord from a dict_row result of JOB_COLUMNS."""
    return JobRecord(
        id=row["id"],
        session_id=row["session_id"],
        job_ref=row["job_ref"],
        status=JobStatus(row["status"]),
        total_rows=row["total_rows"],
        processed_rows=row["processed_rows"],
        success_count=row["success_count"],
        failure_count=row["failure_count"],
        last_processed_row=row["last_processed_row"],
        retry_count=row["retry_count"],
        failure_reason=row["failure_reason"],
        failure_type=row["failure_type"],
        pause_kind=PauseKind(row["pause_kind"]) if row["pause_kind"] else None,
        resume_pending=row["resume_pending"],
        last_retry_at=row["last_retry_at"],
        next_retry_at=row["next_retry_at"],
        error_report_path=row["error_report_path"],
        row_source=row["row_source"],
        initiated_by=row["initiated_by"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        updated_at=row["updated_at"],
    )
