from psycopg.rows import dict_row

from bulk_worker.database.connection import get_connection
from bulk_worker.database.models import AuditEntry
from bulk_worker.logging.logger import Log


class AuditLog:
    """Append-only trail of job state transitions (bulk_job_audit table)."""

    def append(self, job_id: int, action: str, message: str) -> None:
        """Record an event. Failures are logged; they never abort a transition."""
        try:
            with get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO bulk_job_audit (job_id, action, message)
                    VALUES (%s, %s, %s)
                    """,
                    (job_id, action, message),
                )
                conn.commit()
        except Exception as exc:
            Log.error(f"Could not write audit entry {action} for job {job_id}: {exc}")

    def find_by_job_id(self, job_id: int) -> list[AuditEntry]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, job_id, action, message, created_at
                    FROM bulk_job_audit
                    WHERE job_id = %s
                    ORDER BY created_at ASC, id ASC
                    """,
                    (job_id,),
                )
                rows = cur.fetchall()

        return [
            AuditEntry(
                id=row["id"],
                job_id=row["job_id"],
                action=row["action"],
                message=row["message"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
