from collections.abc import Callable
from datetime import datetime, timedelta

from bulk_worker.clock import utcnow
from bulk_worker.config.retry_policy import RetryPolicy
from bulk_worker.database.connection import transaction
from bulk_worker.database.models import JobRecord, JobStatus, PauseKind
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.checkpoint_store import CheckpointStore
from bulk_worker.database.repositories.job_repository import JobRepository
from bulk_worker.logging.logger import Log
from bulk_worker.queue.job_queue import PostgresJobQueue
from bulk_worker.queue.models import message_for_job
from bulk_worker.recovery.failure_classifier import FailureClassifier, FailureType
from bulk_worker.recovery.pause_resume import PauseResumeController


class RetryScheduler:
    """Re-arms failed and paused jobs. Both sweeps are safe to run concurrently.

    The retry sweep moves due FAILED/PAUSED jobs back to PENDING with the
    next exponential backoff and enqueues a message that is not deliverable
    before that backoff elapses. The resume sweep resumes PAUSED jobs through
    the pause/resume controller.
    """

    def __init__(
        self,
        jobs: JobRepository,
        checkpoints: CheckpointStore,
        audit: AuditLog,
        classifier: FailureClassifier,
        controller: PauseResumeController,
        queue: PostgresJobQueue,
        policy: RetryPolicy,
        resume_manual_pauses: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._checkpoints = checkpoints
        self._audit = audit
        self._classifier = classifier
        self._controller = controller
        self._queue = queue
        self._policy = policy
        self._resume_manual_pauses = resume_manual_pauses
        self._clock = clock

    def retry_sweep(self) -> int:
        """Re-arm every job whose retry is due. Returns how many were re-armed."""
        now = self._clock()
        jobs = self._jobs.find_ready_for_retry(now, self._policy.max_attempts)
        if jobs:
            Log.info(f"Found {len(jobs)} jobs ready for retry")

        rearmed = 0
        for job in jobs:
            try:
                if self.retry(job, now):
                    rearmed += 1
            except Exception:
                Log.exception(f"Error scheduling retry for job {job.id}")
        return rearmed

    def resume_sweep(self) -> int:
        """Resume paused jobs that are due. Returns how many were resumed."""
        now = self._clock()
        paused = self._jobs.find_by_status(JobStatus.PAUSED)
        if paused:
            Log.info(f"Found {len(paused)} paused jobs")

        resumed = 0
        for job in paused:
            if job.pause_kind is PauseKind.MANUAL and not self._resume_manual_pauses:
                Log.debug(f"Job {job.id} was paused by an operator, leaving it paused")
                continue
            if job.next_retry_at is not None and job.next_retry_at > now:
                Log.debug(f"Job {job.id} not due for resume until {job.next_retry_at}")
                continue
            try:
                if self._controller.resume(job.id):
                    resumed += 1
            except Exception:
                Log.exception(f"Error resuming job {job.id}")
        return resumed

    def can_retry(self, job: JobRecord) -> bool:
        if job.retry_count >= self._policy.max_attempts:
            Log.debug(f"Job {job.id} has used all {self._policy.max_attempts} retries")
            return False
        failure_type = FailureType.parse(job.failure_type)
        if failure_type is None:
            return True
        return self._classifier.should_retry(
            failure_type, job.retry_count, self._policy.max_attempts
        )

    def next_delay_ms(self, job: JobRecord) -> int:
        return self._policy.backoff_ms(job.retry_count + 1)

    def retry(self, job: JobRecord, now: datetime | None = None) -> bool:
        now = now or self._clock()
        if not self.can_retry(job):
            Log.warning(
                f"Job {job.id} cannot be retried (failure type {job.failure_type}, "
                f"retries {job.retry_count}/{self._policy.max_attempts})"
            )
            return False

        delay_ms = self.next_delay_ms(job)
        next_retry_at = now + timedelta(milliseconds=delay_ms)
        with transaction() as conn:
            if not self._checkpoints.rearm(
                job.id,
                expected=job.status,
                expected_retry_count=job.retry_count,
                last_retry_at=now,
                next_retry_at=next_retry_at,
                conn=conn,
            ):
                Log.warning(f"Job {job.id} changed concurrently, retry not scheduled")
                return False
            self._queue.publish(message_for_job(job), available_at=next_retry_at, conn=conn)

        attempt = job.retry_count + 1
        self._audit.append(
            job.id,
            "AUTO_RETRY_SCHEDULED",
            f"Automatic retry scheduled for attempt {attempt}/{self._policy.max_attempts} "
            f"(delay: {delay_ms}ms)",
        )
        Log.info(f"Job {job.id} scheduled for retry in {delay_ms}ms")
        return True
