from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row

from bulk_worker.database.connection import get_connection
from bulk_worker.database.models import (
    JOB_COLUMNS,
    JobRecord,
    JobStatus,
    PauseKind,
    job_from_row,
)
from bulk_worker.logging.logger import Log


class CheckpointStore:
    """Conditional writes on bulk_jobs.

    Every mutation is a single UPDATE guarded on the state the caller expects.
    A write that matches no row means another worker got there first; callers
    treat ``False``/``None`` as "abandon", never as an error.
    """

    def claim(
        self,
        job_id: int,
        row_source: str | None = None,
        initiated_by: str | None = None,
        stale_before: datetime | None = None,
    ) -> JobRecord | None:
        """Grant the caller exclusive rights to drive a job.

        Claimable: PENDING jobs, RUNNING jobs handed over by a resume, and
        RUNNING jobs whose last write is older than ``stale_before`` (the
        previous driver died mid-run).
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE bulk_jobs
                    SET status = 'RUNNING',
                        resume_pending = FALSE,
                        pause_kind = NULL,
                        row_source = COALESCE(row_source, %s),
                        initiated_by = COALESCE(initiated_by, %s),
                        started_at = COALESCE(started_at, NOW()),
                        updated_at = NOW()
                    WHERE id = %s
                      AND (
                        status = 'PENDING'
                        OR (status = 'RUNNING' AND resume_pending)
                        OR (status = 'RUNNING' AND %s::timestamptz IS NOT NULL
                            AND updated_at < %s::timestamptz)
                      )
                    RETURNING {JOB_COLUMNS}
                    """,
                    (row_source, initiated_by, job_id, stale_before, stale_before),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            Log.debug(f"Failed to claim job {job_id} - already running or finished")
            return None
        Log.info(f"Claimed job {job_id} for processing")
        return job_from_row(row)

    def try_transition(self, job_id: int, expected: JobStatus, new: JobStatus) -> bool:
        """Set status to ``new`` only if it is currently ``expected``."""
        updated = self._execute(
            """
            UPDATE bulk_jobs
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND status = %s
            """,
            (new.value, job_id, expected.value),
        )
        if updated:
            Log.info(f"Job {job_id} status {expected.value} -> {new.value}")
        else:
            Log.warning(
                f"Job {job_id} status {expected.value} -> {new.value} rejected, "
                "status changed concurrently"
            )
        return updated

    def advance_checkpoint(self, job_id: int, new_row: int) -> bool:
        """Move last_processed_row forward; never backwards."""
        updated = self._execute(
            """
            UPDATE bulk_jobs
            SET last_processed_row = %s, updated_at = NOW()
            WHERE id = %s AND last_processed_row < %s
            """,
            (new_row, job_id, new_row),
        )
        if not updated:
            Log.debug(f"Checkpoint for job {job_id} already at or past row {new_row}")
        return updated

    def record_progress(
        self,
        job_id: int,
        processed_rows: int,
        success_count: int,
        failure_count: int,
        error_report_path: str | None = None,
    ) -> bool:
        return self._execute(
            """
            UPDATE bulk_jobs
            SET processed_rows = %s,
                success_count = %s,
                failure_count = %s,
                error_report_path = COALESCE(%s, error_report_path),
                updated_at = NOW()
            WHERE id = %s
            """,
            (processed_rows, success_count, failure_count, error_report_path, job_id),
        )

    def complete(self, job_id: int) -> bool:
        return self._execute(
            """
            UPDATE bulk_jobs
            SET status = 'COMPLETED',
                completed_at = NOW(),
                failure_reason = NULL,
                failure_type = NULL,
                next_retry_at = NULL,
                updated_at = NOW()
            WHERE id = %s AND status = 'RUNNING'
            """,
            (job_id,),
        )

    def fail(
        self,
        job_id: int,
        reason: str,
        failure_type: str,
        next_retry_at: datetime | None,
    ) -> bool:
        """RUNNING -> FAILED. A NULL ``next_retry_at`` makes the failure terminal."""
        return self._execute(
            """
            UPDATE bulk_jobs
            SET status = 'FAILED',
                failure_reason = %s,
                failure_type = %s,
                next_retry_at = %s,
                completed_at = CASE WHEN %s::timestamptz IS NULL THEN NOW() ELSE NULL END,
                updated_at = NOW()
            WHERE id = %s AND status = 'RUNNING'
            """,
            (reason, failure_type, next_retry_at, next_retry_at, job_id),
        )

    def pause(
        self,
        job_id: int,
        kind: PauseKind,
        reason: str | None = None,
        failure_type: str | None = None,
        next_retry_at: datetime | None = None,
    ) -> bool:
        """RUNNING -> PAUSED. last_processed_row is left untouched."""
        return self._execute(
            """
            UPDATE bulk_jobs
            SET status = 'PAUSED',
                pause_kind = %s,
                failure_reason = COALESCE(%s, failure_reason),
                failure_type = COALESCE(%s, failure_type),
                next_retry_at = %s,
                updated_at = NOW()
            WHERE id = %s AND status = 'RUNNING'
            """,
            (kind.value, reason, failure_type, next_retry_at, job_id),
        )

    def resume(
        self,
        job_id: int,
        count_retry: bool,
        now: datetime,
        conn: psycopg.Connection[Any] | None = None,
    ) -> bool:
        """PAUSED -> RUNNING, handing the run over to whichever worker claims it next.

        ``count_retry`` charges the resume against the job's retry budget. Pass
        ``conn`` to make the transition part of the caller's transaction.
        """
        return self._execute(
            """
            UPDATE bulk_jobs
            SET status = 'RUNNING',
                resume_pending = TRUE,
                retry_count = retry_count + CASE WHEN %s THEN 1 ELSE 0 END,
                last_retry_at = CASE WHEN %s THEN %s ELSE last_retry_at END,
                next_retry_at = NULL,
                updated_at = NOW()
            WHERE id = %s AND status = 'PAUSED'
            """,
            (count_retry, count_retry, now, job_id),
            conn,
        )

    def rearm(
        self,
        job_id: int,
        expected: JobStatus,
        expected_retry_count: int,
        last_retry_at: datetime,
        next_retry_at: datetime,
        conn: psycopg.Connection[Any] | None = None,
    ) -> bool:
        """FAILED/PAUSED -> PENDING with the retry counter bumped exactly once."""
        return self._execute(
            """
            UPDATE bulk_jobs
            SET status = 'PENDING',
                retry_count = retry_count + 1,
                last_retry_at = %s,
                next_retry_at = %s,
                pause_kind = NULL,
                resume_pending = FALSE,
                completed_at = NULL,
                updated_at = NOW()
            WHERE id = %s AND status = %s AND retry_count = %s
            """,
            (last_retry_at, next_retry_at, job_id, expected.value, expected_retry_count),
            conn,
        )

    def _execute(
        self, sql: str, params: tuple, conn: psycopg.Connection[Any] | None = None
    ) -> bool:
        if conn is not None:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.rowcount > 0
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                updated = cur.rowcount > 0
            conn.commit()
        return updated
