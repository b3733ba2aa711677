from collections.abc import Callable
from datetime import datetime

from bulk_worker.clock import utcnow
from bulk_worker.database.connection import transaction
from bulk_worker.database.models import JobStatus, PauseKind
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.checkpoint_store import CheckpointStore
from bulk_worker.database.repositories.job_repository import JobRepository
from bulk_worker.database.repositories.session_repository import SessionRepository
from bulk_worker.logging.logger import Log
from bulk_worker.queue.job_queue import PostgresJobQueue
from bulk_worker.queue.models import message_for_job


class PauseResumeController:
    """Explicit RUNNING <-> PAUSED transitions, each with an audit entry.

    A successful resume re-enqueues the job in the same transaction as the
    PAUSED -> RUNNING write; the worker that receives the message continues
    from ``last_processed_row + 1``.
    """

    def __init__(
        self,
        jobs: JobRepository,
        checkpoints: CheckpointStore,
        audit: AuditLog,
        sessions: SessionRepository,
        queue: PostgresJobQueue,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._checkpoints = checkpoints
        self._audit = audit
        self._sessions = sessions
        self._queue = queue
        self._clock = clock

    def pause(
        self,
        job_id: int,
        reason: str,
        kind: PauseKind = PauseKind.MANUAL,
        failure_type: str | None = None,
        next_retry_at: datetime | None = None,
    ) -> bool:
        job = self._jobs.find_by_id(job_id)
        if job is None:
            Log.error(f"Job {job_id} not found for pause")
            return False
        if job.status is not JobStatus.RUNNING:
            Log.warning(f"Job {job_id} is {job.status.value}, cannot pause")
            return False

        failure_reason = reason if kind is PauseKind.AUTOMATIC else None
        if not self._checkpoints.pause(
            job_id,
            kind,
            reason=failure_reason,
            failure_type=failure_type,
            next_retry_at=next_retry_at,
        ):
            Log.warning(f"Job {job_id} left RUNNING concurrently, pause rejected")
            return False

        self._audit.append(job_id, "JOB_PAUSED", f"Job paused ({kind.value.lower()}): {reason}")
        self._sessions.record_job_outcome(job.session_id, JobStatus.PAUSED)
        Log.info(
            f"Job {job_id} paused at row {job.last_processed_row}: {reason}"
        )
        return True

    def resume(self, job_id: int) -> bool:
        job = self._jobs.find_by_id(job_id)
        if job is None:
            Log.error(f"Job {job_id} not found for resume")
            return False
        if job.status is not JobStatus.PAUSED:
            Log.warning(f"Job {job_id} is {job.status.value}, cannot resume")
            return False

        automatic = job.pause_kind is PauseKind.AUTOMATIC
        with transaction() as conn:
            if not self._checkpoints.resume(
                job_id, count_retry=automatic, now=self._clock(), conn=conn
            ):
                Log.warning(f"Job {job_id} left PAUSED concurrently, resume rejected")
                return False
            self._queue.publish(message_for_job(job), conn=conn)

        self._audit.append(
            job_id, "JOB_RESUMED", f"Job resumed from row {job.resume_row}"
        )
        self._sessions.record_job_outcome(job.session_id, JobStatus.RUNNING)
        Log.info(f"Job {job_id} resumed from row {job.resume_row}")
        return True
