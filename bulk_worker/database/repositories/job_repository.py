from datetime import datetime

from psycopg.rows import dict_row

from bulk_worker.database.connection import get_connection
from bulk_worker.database.models import JOB_COLUMNS, JobRecord, JobStatus, job_from_row


class JobRepository:
    """Read operations for the bulk_jobs table."""

    def find_by_id(self, job_id: int) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {JOB_COLUMNS} FROM bulk_jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return job_from_row(row)

    def find_ready_for_retry(self, now: datetime, max_attempts: int) -> list[JobRecord]:
        """Failed or paused jobs whose next retry is due, oldest due first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {JOB_COLUMNS}
                    FROM bulk_jobs
                    WHERE next_retry_at IS NOT NULL
                      AND next_retry_at <= %s
                      AND retry_count < %s
                      AND status IN ('FAILED', 'PAUSED')
                    ORDER BY next_retry_at ASC
                    """,
                    (now, max_attempts),
                )
                rows = cur.fetchall()
        return [job_from_row(row) for row in rows]

    def find_by_status(self, status: JobStatus) -> list[JobRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {JOB_COLUMNS} FROM bulk_jobs WHERE status = %s ORDER BY id",
                    (status.value,),
                )
                rows = cur.fetchall()
        return [job_from_row(row) for row in rows]
