from bulk_worker.database.connection import get_connection
from bulk_worker.database.models import JobStatus
from bulk_worker.logging.logger import Log

_SESSION_STATUS_FOR_JOB = {
    JobStatus.PENDING: "PROCESSING",
    JobStatus.RUNNING: "PROCESSING",
    JobStatus.PAUSED: "PROCESSING",
    JobStatus.COMPLETED: "COMPLETED",
    JobStatus.FAILED: "FAILED",
}


def session_status_for(job_status: JobStatus) -> str:
    return _SESSION_STATUS_FOR_JOB[job_status]


class SessionRepository:
    """Keeps the owning upload session's aggregate status in step with its job."""

    def record_job_outcome(self, session_id: int, job_status: JobStatus) -> bool:
        session_status = session_status_for(job_status)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE bulk_sessions
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (session_status, session_id),
                )
                updated = cur.rowcount > 0
            conn.commit()

        if not updated:
            Log.warning(f"Session {session_id} not found while recording job outcome")
        else:
            Log.debug(f"Session {session_id} status set to {session_status}")
        return updated
