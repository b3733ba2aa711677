from dataclasses import dataclass
from datetime import datetime

from bulk_worker.database.models import AuditEntry, JobRecord, JobStatus, PauseKind
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.job_repository import JobRepository
from bulk_worker.processing.exceptions import JobNotFoundError
from bulk_worker.recovery.pause_resume import PauseResumeController


@dataclass(frozen=True)
class JobSnapshot:
    """Point-in-time view of a job for operators."""

    job_id: int
    session_id: int
    status: JobStatus
    total_rows: int
    processed_rows: int
    success_count: int
    failure_count: int
    last_processed_row: int
    resume_row: int
    retry_count: int
    pause_kind: PauseKind | None
    failure_type: str | None
    failure_reason: str | None
    next_retry_at: datetime | None
    error_report_path: str | None

    @property
    def percent_complete(self) -> float:
        if self.total_rows <= 0:
            return 100.0 if self.status is JobStatus.COMPLETED else 0.0
        return round(min(self.last_processed_row, self.total_rows) * 100 / self.total_rows, 1)

    @classmethod
    def of(cls, job: JobRecord) -> "JobSnapshot":
        return cls(
            job_id=job.id,
            session_id=job.session_id,
            status=job.status,
            total_rows=job.total_rows,
            processed_rows=job.processed_rows,
            success_count=job.success_count,
            failure_count=job.failure_count,
            last_processed_row=job.last_processed_row,
            resume_row=job.resume_row,
            retry_count=job.retry_count,
            pause_kind=job.pause_kind,
            failure_type=job.failure_type,
            failure_reason=job.failure_reason,
            next_retry_at=job.next_retry_at,
            error_report_path=job.error_report_path,
        )


class JobOperations:
    """Operator entry points. Repeating a call that already took effect returns False."""

    def __init__(
        self,
        jobs: JobRepository,
        audit: AuditLog,
        controller: PauseResumeController,
    ) -> None:
        self._jobs = jobs
        self._audit = audit
        self._controller = controller

    def pause(self, job_id: int, reason: str) -> bool:
        return self._controller.pause(job_id, reason, kind=PauseKind.MANUAL)

    def resume(self, job_id: int) -> bool:
        return self._controller.resume(job_id)

    def resume_point(self, job_id: int) -> int:
        return self._get(job_id).resume_row

    def status(self, job_id: int) -> JobSnapshot:
        return JobSnapshot.of(self._get(job_id))

    def audit_trail(self, job_id: int) -> list[AuditEntry]:
        return self._audit.find_by_job_id(job_id)

    def _get(self, job_id: int) -> JobRecord:
        job = self._jobs.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job
