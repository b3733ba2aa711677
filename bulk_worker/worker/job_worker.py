from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from bulk_worker.clock import utcnow
from bulk_worker.config.retry_policy import RetryPolicy
from bulk_worker.config.settings import Settings
from bulk_worker.database.models import JobRecord, JobStatus, PauseKind
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.checkpoint_store import CheckpointStore
from bulk_worker.database.repositories.job_repository import JobRepository
from bulk_worker.database.repositories.session_repository import SessionRepository
from bulk_worker.logging.logger import Log
from bulk_worker.processing.row_source import RowSourceOpener
from bulk_worker.processing.stream_processor import RowStreamProcessor
from bulk_worker.queue.models import JobMessage
from bulk_worker.recovery.failure_classifier import FailureClassifier, FailureType
from bulk_worker.recovery.pause_resume import PauseResumeController


class HandleOutcome(str, Enum):
    PROCESSED = "PROCESSED"
    SKIPPED = "SKIPPED"
    DEFERRED = "DEFERRED"

    @property
    def acknowledge(self) -> bool:
        """DEFERRED messages are left on the queue to be redelivered."""
        return self is not HandleOutcome.DEFERRED


class JobWorker:
    """Drive one dispatch message to a terminal or recoverable job state.

    Job-level errors never escape ``handle``: they are classified and turned
    into a FAILED or PAUSED transition with an audit entry.
    """

    def __init__(
        self,
        jobs: JobRepository,
        checkpoints: CheckpointStore,
        audit: AuditLog,
        sessions: SessionRepository,
        stream_processor: RowStreamProcessor,
        row_sources: RowSourceOpener,
        classifier: FailureClassifier,
        controller: PauseResumeController,
        policy: RetryPolicy,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._checkpoints = checkpoints
        self._audit = audit
        self._sessions = sessions
        self._stream_processor = stream_processor
        self._row_sources = row_sources
        self._classifier = classifier
        self._controller = controller
        self._policy = policy
        self._settings = settings
        self._clock = clock

    def handle(self, message: JobMessage) -> HandleOutcome:
        job = self._jobs.find_by_id(message.job_id)
        if job is None:
            Log.warning(f"Job {message.job_id} not found, dropping message")
            return HandleOutcome.SKIPPED

        stale_before = self._clock() - timedelta(seconds=self._settings.claim_stale_after_seconds)
        claimed = self._checkpoints.claim(
            job.id,
            row_source=message.row_source or None,
            initiated_by=message.initiated_by or None,
            stale_before=stale_before,
        )
        if claimed is None:
            if job.status is JobStatus.RUNNING:
                Log.info(f"Job {job.id} is running elsewhere, leaving message for redelivery")
                return HandleOutcome.DEFERRED
            Log.info(f"Job {job.id} is {job.status.value}, message ignored")
            return HandleOutcome.SKIPPED

        self.run(claimed, message)
        return HandleOutcome.PROCESSED

    def run(self, job: JobRecord, message: JobMessage) -> None:
        """Process a claimed job to completion, or route its failure."""
        if job.last_processed_row > 0:
            self._audit.append(
                job.id, "JOB_RESUMED_RUN", f"Processing resumed from row {job.resume_row}"
            )
        else:
            self._audit.append(job.id, "JOB_STARTED", "Job processing started")
        Log.info(f"Running job {job.id} (retry {job.retry_count}, row {job.resume_row})")

        row_source = job.row_source or message.row_source
        resolved_by = job.initiated_by or message.initiated_by
        try:
            with self._row_sources.open(row_source) as rows:
                result = self._stream_processor.process(job, rows, resolved_by)
        except Exception as exc:
            self._handle_failure(job, exc)
            return

        if not self._checkpoints.complete(job.id):
            Log.warning(f"Job {job.id} left RUNNING before completion was recorded")
            return
        self._audit.append(
            job.id,
            "JOB_COMPLETED",
            f"Job completed: {result.success_count} successful, "
            f"{result.failure_count} failed",
        )
        self._sessions.record_job_outcome(job.session_id, JobStatus.COMPLETED)
        Log.info(f"Job {job.id} completed successfully")

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        failure_type = self._classifier.classify(exc)
        reason = str(exc) or type(exc).__name__
        Log.error(f"Job {job.id} failed ({failure_type.value}): {reason}")

        retryable = self._classifier.should_retry(
            failure_type, job.retry_count, self._policy.max_attempts
        )
        if retryable and failure_type is FailureType.INFRASTRUCTURE:
            if self._pause_for_infrastructure(job, reason):
                return
            Log.warning(f"Job {job.id} could not be paused, scheduling a retry instead")
        if retryable:
            self._fail_for_retry(job, reason, failure_type)
            return
        self._fail_terminally(job, reason, failure_type)

    def _pause_for_infrastructure(self, job: JobRecord, reason: str) -> bool:
        delay_ms = self._classifier.retry_delay_ms(FailureType.INFRASTRUCTURE, job.retry_count)
        return self._controller.pause(
            job.id,
            reason,
            kind=PauseKind.AUTOMATIC,
            failure_type=FailureType.INFRASTRUCTURE.value,
            next_retry_at=self._clock() + timedelta(milliseconds=delay_ms),
        )

    def _fail_for_retry(self, job: JobRecord, reason: str, failure_type: FailureType) -> None:
        if not self._checkpoints.fail(job.id, reason, failure_type.value, self._clock()):
            Log.warning(f"Job {job.id} left RUNNING before its failure was recorded")
            return
        self._audit.append(
            job.id,
            "AUTO_RETRY_SCHEDULED",
            f"{failure_type.value} failure, automatic retry pending: {reason}",
        )
        self._sessions.record_job_outcome(job.session_id, JobStatus.FAILED)
        Log.warning(f"Job {job.id} will be retried (retry {job.retry_count + 1})")

    def _fail_terminally(self, job: JobRecord, reason: str, failure_type: FailureType) -> None:
        if not self._checkpoints.fail(job.id, reason, failure_type.value, None):
            Log.warning(f"Job {job.id} left RUNNING before its failure was recorded")
            return
        if failure_type is FailureType.PERMANENT:
            action, message = "JOB_FAILED_PERMANENT", f"Permanent failure: {reason}"
        else:
            action = "JOB_FAILED_MAX_RETRIES"
            message = f"Failed after {job.retry_count} retries ({failure_type.value}): {reason}"
        self._audit.append(job.id, action, message)
        self._sessions.record_job_outcome(job.session_id, JobStatus.FAILED)
        Log.error(f"Job {job.id} permanently failed: {reason}")
